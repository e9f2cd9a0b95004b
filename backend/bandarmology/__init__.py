"""
Bandarmology Scoring Engine

Broker-flow ("bandarmology") analysis for IDX stocks: derives indicators
from per-broker transaction aggregates, scores them with a named policy,
scans for red flags and renders a narrative report.

Architecture:
- IndicatorDeriver: transaction rows + history -> IndicatorBundle
- ScoringPolicy: IndicatorBundle + price bar -> ScoreResult (conservative by default)
- detect_red_flags: policy-independent risk scan
- narrate: ScoreResult + bundle -> NarrativeReport
- run_backtest: synthetic strategy replay

Usage:
    from bandarmology import derive_indicators, score, narrate

    bundle = derive_indicators('BBCA', rows, volumes, foreign_flows, bar)
    result = score(bar, bundle)
    print(narrate(result, bundle, price_bar=bar).render_text())
"""
from .backtest import BacktestConfig, run_backtest
from .config import DEFAULT_CONFIG, EngineConfig
from .exceptions import BandarmologyError, ConfigurationError, InvalidInputError, UnknownPolicyError
from .indicator_deriver import IndicatorDeriver, derive_indicators
from .models import (
    IndicatorBundle,
    MarketContext,
    PriceBar,
    RedFlagReport,
    ScoreResult,
    TransactionRow,
)
from .narrative import NarrativeReport, narrate
from .red_flags import detect_red_flags
from .scoring import ScoringPolicy, available_policies, get_policy, score

__all__ = [
    "BacktestConfig",
    "run_backtest",
    "DEFAULT_CONFIG",
    "EngineConfig",
    "BandarmologyError",
    "ConfigurationError",
    "InvalidInputError",
    "UnknownPolicyError",
    "IndicatorDeriver",
    "derive_indicators",
    "IndicatorBundle",
    "MarketContext",
    "PriceBar",
    "RedFlagReport",
    "ScoreResult",
    "TransactionRow",
    "NarrativeReport",
    "narrate",
    "detect_red_flags",
    "ScoringPolicy",
    "available_policies",
    "get_policy",
    "score",
]
