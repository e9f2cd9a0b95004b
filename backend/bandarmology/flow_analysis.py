"""
Flow Analysis Module

Foreign flow aggregation, multi-day foreign streaks, broker concentration,
bandar watch-list activity, block trades, queue pressure and SID
participation.
"""
import datetime
import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional

import numpy as np

from .config import BrokerLists, ConcentrationConfig, FlowConfig, StreakConfig
from .models import (
    BandarBroker,
    BlockTrades,
    BrokerActivity,
    BrokerConcentration,
    BrokerDayNet,
    DominantBroker,
    ForeignFlow,
    ForeignFlowPoint,
    ForeignStreak,
    SidData,
    Totals,
)
from .broker_utils import is_bandar, sort_by_abs_net
from .utils import safe_div, to_billions

logger = logging.getLogger(__name__)


def summarize_foreign_flow(activities: List[BrokerActivity]) -> ForeignFlow:
    """Sum the foreign brokers' buy/sell sides; net = buy - sell."""
    foreign = [b for b in activities if b.is_foreign]
    buy_volume = sum(b.buy_volume for b in foreign)
    sell_volume = sum(b.sell_volume for b in foreign)
    buy_value = sum(b.buy_value for b in foreign)
    sell_value = sum(b.sell_value for b in foreign)
    return ForeignFlow(
        buy_volume=buy_volume,
        sell_volume=sell_volume,
        net_volume=buy_volume - sell_volume,
        buy_value=buy_value,
        sell_value=sell_value,
        net_value=buy_value - sell_value,
        buy_brokers=tuple(b.code for b in foreign if b.buy_value > 0),
        sell_brokers=tuple(b.code for b in foreign if b.sell_value > 0),
    )


def compute_totals(activities: List[BrokerActivity]) -> Totals:
    buy_volume = sum(b.buy_volume for b in activities)
    sell_volume = sum(b.sell_volume for b in activities)
    buy_value = sum(b.buy_value for b in activities)
    sell_value = sum(b.sell_value for b in activities)
    return Totals(
        buy_volume=buy_volume,
        buy_value=buy_value,
        sell_volume=sell_volume,
        sell_value=sell_value,
        net_volume=buy_volume - sell_volume,
        net_value=buy_value - sell_value,
    )


def _classify_streak(days: int, cfg: StreakConfig, buying: bool) -> Optional[str]:
    if days >= cfg.strong_days:
        return 'STRONG_BULLISH' if buying else 'STRONG_BEARISH'
    if days >= cfg.moderate_days:
        return 'BULLISH' if buying else 'BEARISH'
    if days >= cfg.weak_days:
        return 'MODERATE_BULLISH' if buying else 'MODERATE_BEARISH'
    return None


def detect_foreign_streak(history: List[ForeignFlowPoint], cfg: StreakConfig) -> ForeignStreak:
    """
    Walk foreign net flow from the most recent day backwards and count
    consecutive same-signed days. A sign change or a zero day ends the streak.

    Sell streaks report a negative `consecutive_days`.
    """
    if not history:
        return ForeignStreak()

    newest_first = sorted(history, key=lambda p: p.date, reverse=True)
    first = newest_first[0].foreign_net_value
    if first == 0:
        return ForeignStreak()

    buying = first > 0
    days = 0
    total = 0.0
    for point in newest_first:
        value = point.foreign_net_value
        if (value > 0) != buying or value == 0:
            break
        days += 1
        total += value

    signed_days = days if buying else -days
    signal = _classify_streak(days, cfg, buying)
    if signal is None:
        return ForeignStreak(consecutive_days=signed_days, total_net_value=total)

    if buying:
        description = (f"Foreign buying streak: {days} consecutive days, "
                       f"total Rp {to_billions(total):.1f}B net inflow")
    else:
        description = (f"Foreign selling streak: {days} consecutive days, "
                       f"total Rp {abs(to_billions(total)):.1f}B net outflow")
    return ForeignStreak(
        detected=True,
        signal=signal,
        consecutive_days=signed_days,
        total_net_value=total,
        description=description,
    )


def detect_broker_concentration(history: List[BrokerDayNet], cfg: ConcentrationConfig) -> BrokerConcentration:
    """
    Tally how often each broker appears among a day's top net buyers over the
    last `cfg.days` trading days. Brokers appearing on at least
    `cfg.min_appearances` days are dominant.
    """
    if not history:
        return BrokerConcentration()

    by_date: Dict[datetime.date, List[BrokerDayNet]] = defaultdict(list)
    for record in history:
        by_date[record.date].append(record)

    dates = sorted(by_date)[-cfg.days:]
    appearances: Dict[str, Dict[str, float]] = {}
    for day in dates:
        ranked = sorted(by_date[day], key=lambda r: (-r.net_value, r.code))
        top = [r for r in ranked[:cfg.top_n] if r.net_value > 0]
        for record in top:
            entry = appearances.setdefault(record.code, {'count': 0, 'total_net': 0.0})
            entry['count'] += 1
            entry['total_net'] += record.net_value

    dominant = sorted(
        ((code, data) for code, data in appearances.items() if data['count'] >= cfg.min_appearances),
        key=lambda item: (-item[1]['count'], -item[1]['total_net'], item[0]),
    )[:cfg.max_dominant]

    if not dominant:
        return BrokerConcentration()

    top_code, top_data = dominant[0]
    top_days = int(top_data['count'])
    if len(dominant) == 1 and top_days >= cfg.high_concentration_days:
        signal = 'HIGH_CONCENTRATION'
    elif len(dominant) >= 2:
        signal = 'COORDINATED_BUYING'
    else:
        signal = 'MODERATE_CONCENTRATION'

    codes = '+'.join(code for code, _ in dominant)
    return BrokerConcentration(
        detected=True,
        signal=signal,
        dominant_brokers=tuple(
            DominantBroker(code=code, days_active=int(data['count']), total_net_value=data['total_net'])
            for code, data in dominant
        ),
        concentration_days=top_days,
        description=f"{len(dominant)} broker(s) dominating buy side for {top_days}+ days - {codes} controlling flow",
    )


def select_bandar_brokers(activities: List[BrokerActivity], brokers: BrokerLists,
                          cfg: FlowConfig) -> List[BandarBroker]:
    """Watch-list brokers plus anyone moving more than the bandar net threshold."""
    matched = [
        b for b in activities
        if is_bandar(b.code, brokers) or abs(b.net_value) > cfg.bandar_min_net_value
    ]
    return [
        BandarBroker(code=b.code, net_value=b.net_value, is_foreign=b.is_foreign)
        for b in sort_by_abs_net(matched)[:cfg.bandar_top_n]
    ]


def detect_large_lots(activities: List[BrokerActivity], threshold: float) -> BlockTrades:
    hits = [b for b in activities if b.buy_value > threshold or b.sell_value > threshold]
    return BlockTrades(
        count=len(hits),
        volume=sum(max(b.buy_volume, b.sell_volume) for b in hits),
        value=sum(max(b.buy_value, b.sell_value) for b in hits),
        brokers=tuple(b.code for b in hits),
    )


def detect_negotiated_trades(activities: List[BrokerActivity], threshold: float) -> BlockTrades:
    """Negotiated (nego) block trades: the side above threshold supplies the volume."""
    hits = [b for b in activities if b.buy_value > threshold or b.sell_value > threshold]
    return BlockTrades(
        count=len(hits),
        volume=sum(b.buy_volume if b.buy_value > threshold else b.sell_volume for b in hits),
        value=sum(max(b.buy_value, b.sell_value) for b in hits),
        brokers=tuple(b.code for b in hits),
    )


def queue_pressure(buy_lots: float, sell_lots: float) -> int:
    """0..100 score of buy/sell queue imbalance; 50 when there is no volume at all."""
    ratio = safe_div(buy_lots, sell_lots or 1)
    return int(round(min(100.0, max(0.0, abs(ratio - 1) * 50))))


def synthetic_sid(rng: Optional[np.random.Generator]) -> SidData:
    """
    Simulated SID (retail holder account) participation. Without an injected
    generator there is no SID source, so the counts stay at zero.
    """
    if rng is None:
        return SidData()
    count = int(math.floor(1000 + rng.random() * 5000))
    change = int(math.floor((rng.random() - 0.5) * 200))
    return SidData(
        count=count,
        change=change,
        change_pct=round(safe_div(change, count - change) * 100, 2),
    )
