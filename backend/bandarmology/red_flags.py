"""
Red-flag detector.

Scans an IndicatorBundle for adverse patterns independently of whichever
scoring policy produced the score. Overall risk is the highest severity
found, LOW when nothing fires.
"""
import logging
from typing import List, Optional

from .broker_utils import top_by_abs_net
from .config import DEFAULT_CONFIG, EngineConfig
from .models import SEVERITY_RANK, IndicatorBundle, RedFlag, RedFlagReport

logger = logging.getLogger(__name__)


def _distribution(bundle: IndicatorBundle, config: EngineConfig) -> Optional[RedFlag]:
    cfg = config.red_flags
    va = bundle.volume_analysis
    change = bundle.price_action.change_pct
    if not va.has_valid_average:
        return None
    ratio = va.volume_ratio
    if ratio >= cfg.distribution_critical_ratio and change <= cfg.distribution_critical_change_pct:
        severity = 'CRITICAL'
    elif ratio >= cfg.distribution_volume_ratio and change <= cfg.distribution_change_pct:
        severity = 'HIGH'
    else:
        return None
    return RedFlag(
        kind='DISTRIBUTION',
        severity=severity,
        description=f"High volume ({ratio:.1f}x avg) with falling price ({change:.1f}%) - distribution",
    )


def _coordinated_exit(bundle: IndicatorBundle, config: EngineConfig) -> Optional[RedFlag]:
    cfg = config.red_flags
    top = top_by_abs_net(bundle.broker_summary, cfg.coordinated_exit_top_n)
    sellers = [b.code for b in top if b.net_value < 0]
    if len(sellers) < cfg.coordinated_exit_sellers:
        return None
    return RedFlag(
        kind='COORDINATED_EXIT',
        severity='HIGH',
        description=f"{len(sellers)} of the top {len(top)} brokers net selling: {', '.join(sellers)}",
    )


def _foreign_exodus(bundle: IndicatorBundle, config: EngineConfig) -> Optional[RedFlag]:
    days = bundle.foreign_streak.consecutive_days
    if days > -config.streak.exodus_days:
        return None
    return RedFlag(
        kind='FOREIGN_EXODUS',
        severity='CRITICAL',
        description=f"Foreign investors net selling for {abs(days)} consecutive days",
    )


def _unsustainable_rally(bundle: IndicatorBundle, config: EngineConfig) -> Optional[RedFlag]:
    cfg = config.red_flags
    va = bundle.volume_analysis
    change = bundle.price_action.change_pct
    if not va.has_valid_average:
        return None
    if change > cfg.rally_change_pct and va.volume_ratio < cfg.rally_volume_ratio:
        return RedFlag(
            kind='UNSUSTAINABLE_RALLY',
            severity='MEDIUM',
            description=f"Price up {change:.1f}% on below-average volume ({va.volume_ratio:.1f}x)",
        )
    return None


def _possible_pump(bundle: IndicatorBundle, config: EngineConfig) -> Optional[RedFlag]:
    """Big price and volume spike with neither concentration nor foreign buying behind it."""
    cfg = config.red_flags
    va = bundle.volume_analysis
    change = bundle.price_action.change_pct
    if not va.has_valid_average:
        return None
    spiking = change >= cfg.pump_change_pct and va.volume_ratio >= cfg.pump_volume_ratio
    uncorroborated = not bundle.broker_concentration.detected and bundle.foreign_flow.net_value <= 0
    if spiking and uncorroborated:
        return RedFlag(
            kind='POSSIBLE_PUMP',
            severity='HIGH',
            description=(f"+{change:.1f}% on {va.volume_ratio:.1f}x volume without broker "
                         f"concentration or foreign buying"),
        )
    return None


DETECTORS = (_distribution, _coordinated_exit, _foreign_exodus, _unsustainable_rally, _possible_pump)


def risk_level(flags: List[RedFlag]) -> str:
    if not flags:
        return 'LOW'
    return max((f.severity for f in flags), key=lambda s: SEVERITY_RANK[s])


def detect_red_flags(bundle: IndicatorBundle, config: Optional[EngineConfig] = None) -> RedFlagReport:
    config = config or DEFAULT_CONFIG
    flags = [flag for flag in (detector(bundle, config) for detector in DETECTORS) if flag]
    report = RedFlagReport(flags=tuple(flags), risk_level=risk_level(flags))
    if flags:
        logger.debug(f"{bundle.symbol}: {len(flags)} red flag(s), risk {report.risk_level}")
    return report
