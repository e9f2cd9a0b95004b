"""
Broker Classification Utility.

Classifies broker codes against the configured watch-lists and converts
validated transaction rows into BrokerActivity records.
"""
from typing import Iterable, List, Optional

from .config import BrokerLists, EngineConfig, DEFAULT_CONFIG
from .models import BrokerActivity, TransactionRow
from .utils import safe_div


def is_foreign(broker_code: str, brokers: Optional[BrokerLists] = None) -> bool:
    brokers = brokers or DEFAULT_CONFIG.brokers
    return broker_code.upper() in brokers.foreign


def is_bandar(broker_code: str, brokers: Optional[BrokerLists] = None) -> bool:
    """Check if broker is on the bandar watch-list."""
    brokers = brokers or DEFAULT_CONFIG.brokers
    return broker_code.upper() in brokers.bandar


def is_big_dog(broker_code: str, brokers: Optional[BrokerLists] = None) -> bool:
    """Check if broker is a tier-1 'big dog'."""
    brokers = brokers or DEFAULT_CONFIG.brokers
    return broker_code.upper() in brokers.big_dog


def is_institutional(broker_code: str, brokers: Optional[BrokerLists] = None) -> bool:
    brokers = brokers or DEFAULT_CONFIG.brokers
    return broker_code.upper() in brokers.institutional


def is_retail(broker_code: str, brokers: Optional[BrokerLists] = None) -> bool:
    brokers = brokers or DEFAULT_CONFIG.brokers
    return broker_code.upper() in brokers.retail


def average_price(value: float, volume_lots: float, lot_size: int) -> float:
    """Average price per share: value / (lots * lot_size), 0 when no volume."""
    return safe_div(value, volume_lots * lot_size)


def build_broker_activity(row: TransactionRow, config: EngineConfig = DEFAULT_CONFIG) -> BrokerActivity:
    """Convert a validated transaction row into a BrokerActivity."""
    return BrokerActivity(
        code=row.code,
        name=row.name or row.code,
        buy_volume=row.buy_volume,
        buy_value=row.buy_value,
        sell_volume=row.sell_volume,
        sell_value=row.sell_value,
        net_volume=row.buy_volume - row.sell_volume,
        net_value=row.buy_value - row.sell_value,
        is_foreign=is_foreign(row.code, config.brokers),
        avg_buy_price=average_price(row.buy_value, row.buy_volume, config.lot_size),
        avg_sell_price=average_price(row.sell_value, row.sell_volume, config.lot_size),
    )


def sort_by_abs_net(activities: Iterable[BrokerActivity]) -> List[BrokerActivity]:
    """Order by |net value| descending; ties broken by code for determinism."""
    return sorted(activities, key=lambda b: (-abs(b.net_value), b.code))


def top_by_abs_net(activities: Iterable[BrokerActivity], n: int) -> List[BrokerActivity]:
    return sort_by_abs_net(activities)[:n]
