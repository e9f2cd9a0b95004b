"""
Broker cost basis: weighted average buy price of the active brokers and the
premium of the current price over it.
"""
from typing import Iterable

from .config import CostBasisConfig, EngineConfig, DEFAULT_CONFIG
from .models import BrokerActivity, CostBasis
from .utils import pct_change, safe_div

VALUE = 'VALUE'
FAIR = 'FAIR'
SWEET_SPOT = 'SWEET_SPOT'
EXTENDED = 'EXTENDED'
DANGER = 'DANGER'
UNKNOWN = 'UNKNOWN'


def weighted_average_cost(activities: Iterable[BrokerActivity], lot_size: int) -> float:
    """Sum of buy value over brokers with buy volume / (their buy lots * lot_size)."""
    total_value = 0.0
    total_lots = 0.0
    for b in activities:
        if b.buy_volume > 0:
            total_value += b.buy_value
            total_lots += b.buy_volume
    return safe_div(total_value, total_lots * lot_size)


def classify_zone(premium_pct: float, cfg: CostBasisConfig) -> str:
    if premium_pct < cfg.value_max:
        return VALUE
    if premium_pct < cfg.fair_max:
        return FAIR
    if premium_pct < cfg.sweet_spot_max:
        return SWEET_SPOT
    if premium_pct <= cfg.danger_min:
        return EXTENDED
    return DANGER


def assess_cost_basis(activities: Iterable[BrokerActivity], current_price: float,
                      config: EngineConfig = DEFAULT_CONFIG) -> CostBasis:
    avg_cost = weighted_average_cost(activities, config.lot_size)
    if avg_cost <= 0 or current_price <= 0:
        return CostBasis(avg_cost=avg_cost, current_price=current_price)
    premium = pct_change(current_price, avg_cost)
    return CostBasis(
        avg_cost=round(avg_cost, 2),
        current_price=current_price,
        premium_pct=round(premium, 2),
        zone=classify_zone(premium, config.cost_basis),
    )
