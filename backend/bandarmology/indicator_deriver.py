"""
Indicator Deriver

Builds an IndicatorBundle for one symbol/day from broker transaction rows,
daily volume history, foreign-flow history and the current price bar.

Malformed rows raise InvalidInputError. Missing data or an unexpected failure
while deriving returns the degraded bundle (zeros, neutral signals,
degraded=True), which every scoring policy maps to a neutral result.
"""
import logging
from typing import List, Optional

import numpy as np

from .broker_utils import build_broker_activity, sort_by_abs_net
from .config import DEFAULT_CONFIG, EngineConfig
from .exceptions import InvalidInputError
from .flow_analysis import (
    compute_totals,
    detect_broker_concentration,
    detect_foreign_streak,
    detect_large_lots,
    detect_negotiated_trades,
    queue_pressure,
    select_bandar_brokers,
    summarize_foreign_flow,
    synthetic_sid,
)
from .models import (
    BrokerDayNet,
    ForeignFlowPoint,
    IndicatorBundle,
    PriceAction,
    PriceBar,
    QuantitativeIndicators,
    TransactionRow,
    VolumeAnalysis,
    VolumePoint,
    VwapReading,
    validate_model,
    validate_rows,
)
from .price_action import detect_price_action
from .quantitative import compute_quantitative
from .volume_analysis import analyze_volume

logger = logging.getLogger(__name__)


class IndicatorDeriver:
    """
    Stateless deriver bound to one EngineConfig and an optional random
    generator (used only for synthetic SID participation).
    """

    def __init__(self, config: Optional[EngineConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        self.config = config or DEFAULT_CONFIG
        self.rng = rng

    def derive(self, symbol: str, transaction_rows, volume_history, foreign_flow_history,
               price_bar, broker_history=None) -> IndicatorBundle:
        """
        Derive all indicators for `symbol`.

        Args:
            symbol: Ticker, e.g. 'BBCA'.
            transaction_rows: Per-broker aggregates for the latest date.
            volume_history: Prior daily {date, total_volume} rows, any order.
            foreign_flow_history: Prior daily {date, foreign_net_value} rows, any order.
            price_bar: Current OHLCV bar.
            broker_history: Optional per-day {date, code, net_value} rows for concentration.

        Returns:
            IndicatorBundle (degraded when there is nothing to derive from).
        """
        if not symbol or not str(symbol).strip():
            raise InvalidInputError("symbol must not be blank")
        symbol = str(symbol).strip().upper()

        rows = validate_rows(TransactionRow, transaction_rows, 'transaction_rows')
        volumes = validate_rows(VolumePoint, volume_history, 'volume_history')
        flows = validate_rows(ForeignFlowPoint, foreign_flow_history, 'foreign_flow_history')
        history = validate_rows(BrokerDayNet, broker_history, 'broker_history')
        bar = validate_model(PriceBar, price_bar, 'price_bar')

        if not rows:
            logger.info(f"No transaction data for {symbol}, returning degraded bundle")
            return self.degraded_bundle(symbol, bar)

        try:
            return self._build(symbol, rows, volumes, flows, history, bar)
        except Exception:
            logger.exception(f"Indicator derivation failed for {symbol}, falling back to degraded bundle")
            return self.degraded_bundle(symbol, bar)

    def _build(self, symbol: str, rows: List[TransactionRow], volumes: List[VolumePoint],
               flows: List[ForeignFlowPoint], history: List[BrokerDayNet],
               bar: PriceBar) -> IndicatorBundle:
        cfg = self.config
        activities = [build_broker_activity(row, cfg) for row in rows]
        totals = compute_totals(activities)

        volume_analysis = analyze_volume(
            totals.buy_volume,
            totals.sell_volume,
            volumes,
            bar.change_pct,
            cfg.volume,
            cfg.bid_ask,
        )

        bundle = IndicatorBundle(
            symbol=symbol,
            date=bar.date,
            foreign_flow=summarize_foreign_flow(activities),
            broker_summary=tuple(sort_by_abs_net(activities)[:cfg.flow.summary_top_n]),
            bandar_brokers=tuple(select_bandar_brokers(activities, cfg.brokers, cfg.flow)),
            large_lots=detect_large_lots(activities, cfg.flow.large_lot_value),
            negotiated_trades=detect_negotiated_trades(activities, cfg.flow.nego_value),
            queue_pressure=queue_pressure(totals.buy_volume, totals.sell_volume),
            sid=synthetic_sid(self.rng),
            volume_analysis=volume_analysis,
            foreign_streak=detect_foreign_streak(flows, cfg.streak),
            broker_concentration=detect_broker_concentration(history, cfg.concentration),
            price_action=detect_price_action(bar, volume_analysis.volume_ratio, cfg.price_action),
            quantitative=compute_quantitative(
                bar, activities, volume_analysis.volume_vs_avg_pct, cfg.lot_size, cfg.quant
            ),
            totals=totals,
        )
        logger.debug(
            f"{symbol}: {len(activities)} brokers, volume ratio {volume_analysis.volume_ratio}, "
            f"foreign net {bundle.foreign_flow.net_value:,.0f}"
        )
        return bundle

    def degraded_bundle(self, symbol: str, bar: Optional[PriceBar] = None) -> IndicatorBundle:
        """Well-defined neutral bundle: zero flows, neutral signals, degraded=True."""
        close = bar.close if bar else 0.0
        return IndicatorBundle(
            symbol=symbol,
            date=bar.date if bar else None,
            degraded=True,
            volume_analysis=VolumeAnalysis(),
            price_action=PriceAction(change_pct=bar.change_pct if bar else 0.0),
            quantitative=QuantitativeIndicators(vwap=VwapReading(value=close)),
        )


def derive_indicators(symbol: str, transaction_rows, volume_history, foreign_flow_history,
                      price_bar, broker_history=None, config: Optional[EngineConfig] = None,
                      rng: Optional[np.random.Generator] = None) -> IndicatorBundle:
    """Functional entry point; see IndicatorDeriver.derive."""
    return IndicatorDeriver(config=config, rng=rng).derive(
        symbol,
        transaction_rows,
        volume_history,
        foreign_flow_history,
        price_bar,
        broker_history=broker_history,
    )
