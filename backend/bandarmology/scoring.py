"""
Scoring Engine

Turns an IndicatorBundle plus the current price bar into a bounded score,
a discrete signal, a 1-5 conviction and an ordered factor ledger.

Every scoring formula is a named ScoringPolicy. A policy starts from the
baseline (50), records each additive adjustment in a FactorLedger, and maps
the clamped score to a signal through its declared SignalBands table. Gating
caps and the final clamp are ledger entries too, so for every result
score == baseline + sum(ledger deltas).
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from .broker_utils import is_big_dog, top_by_abs_net
from .config import DEFAULT_CONFIG, EngineConfig
from .cost_basis import SWEET_SPOT, assess_cost_basis
from .exceptions import ConfigurationError, UnknownPolicyError
from .models import (
    BUY,
    HOLD,
    REDUCE,
    SELL,
    STRONG_BUY,
    BrokerActivity,
    CostBasis,
    Factor,
    IdealSetup,
    IndicatorBundle,
    MarketContext,
    PriceBar,
    ScoreResult,
    validate_model,
)

logger = logging.getLogger(__name__)

GATE = 'gate'
CLAMP = 'clamp'
_BOOKKEEPING = frozenset({GATE, CLAMP})

CONVICTION_BY_SIGNAL = {STRONG_BUY: 5, BUY: 4, HOLD: 3, REDUCE: 2, SELL: 1}
CONVICTION_BOOSTERS = ('high_concentration', 'sweet_spot', 'big_dog_accumulating')
MAX_CONVICTION = 5


@dataclass(frozen=True)
class SignalBands:
    """
    Score-to-signal table.

    `cuts` lists (minimum score, signal) pairs from the strongest signal down.
    The last minimum must equal `lower`, so every score in [lower, upper]
    maps to exactly one signal.
    """
    lower: int
    upper: int
    cuts: Tuple[Tuple[int, str], ...]

    def __post_init__(self):
        if self.lower > self.upper:
            raise ConfigurationError(f"Band lower bound {self.lower} exceeds upper bound {self.upper}")
        minimums = [m for m, _ in self.cuts]
        if not minimums:
            raise ConfigurationError("Signal bands need at least one cut")
        if any(a <= b for a, b in zip(minimums, minimums[1:])):
            raise ConfigurationError(f"Signal cuts must be strictly descending: {minimums}")
        if minimums[-1] != self.lower or minimums[0] > self.upper:
            raise ConfigurationError(
                f"Signal cuts {minimums} must cover the clamp interval [{self.lower}, {self.upper}]"
            )
        signals = [s for _, s in self.cuts]
        if len(set(signals)) != len(signals):
            raise ConfigurationError(f"Duplicate signals in bands: {signals}")

    def clamp(self, score: int) -> int:
        return max(self.lower, min(self.upper, int(score)))

    def classify(self, score: int) -> str:
        score = self.clamp(score)
        for minimum, signal in self.cuts:
            if score >= minimum:
                return signal
        return self.cuts[-1][1]

    def cut_for(self, signal: str) -> int:
        for minimum, name in self.cuts:
            if name == signal:
                return minimum
        raise ConfigurationError(f"Signal {signal} is not part of these bands")

    @property
    def signals(self) -> Tuple[str, ...]:
        return tuple(s for _, s in self.cuts)


class FactorLedger:
    """
    Append-only record of score adjustments, in the order applied.
    The running score is always baseline + sum(deltas).
    """

    def __init__(self, baseline: int = 50):
        self.baseline = baseline
        self._entries: List[Factor] = []

    def add(self, category: str, delta: int, text: str) -> None:
        self._entries.append(Factor(category=category, delta=int(delta), text=text))

    @property
    def score(self) -> int:
        return self.baseline + sum(f.delta for f in self._entries)

    def cap(self, ceiling: int, text: str) -> bool:
        """Pull the running score down to `ceiling` if it is above it."""
        excess = self.score - ceiling
        if excess > 0:
            self.add(GATE, -excess, f"{text} (capped at {ceiling})")
            return True
        return False

    def clamp(self, lower: int, upper: int) -> None:
        current = self.score
        if current > upper:
            self.add(CLAMP, upper - current, f"Score clamped to {upper}")
        elif current < lower:
            self.add(CLAMP, lower - current, f"Score clamped to {lower}")

    def bullish_categories(self) -> Set[str]:
        return {f.category for f in self._entries if f.delta > 0 and f.category not in _BOOKKEEPING}

    def entries(self) -> Tuple[Factor, ...]:
        return tuple(self._entries)

    def texts(self) -> Tuple[str, ...]:
        return tuple(f.text for f in self._entries)

    def __len__(self):
        return len(self._entries)


@dataclass(frozen=True)
class ScoringContext:
    """Everything a policy may read for one evaluation."""
    price_bar: PriceBar
    bundle: IndicatorBundle
    market_context: MarketContext
    config: EngineConfig
    cost_basis: CostBasis

    @property
    def change_pct(self) -> float:
        return self.price_bar.change_pct

    def top_brokers(self, n: int = 3) -> List[BrokerActivity]:
        return top_by_abs_net(self.bundle.broker_summary, n)

    @property
    def top3_net_value(self) -> float:
        return sum(b.net_value for b in self.top_brokers(3))

    def big_dog_activity(self) -> List[BrokerActivity]:
        return [b for b in self.bundle.broker_summary if is_big_dog(b.code, self.config.brokers)]


def standard_conviction_factors(ctx: ScoringContext) -> List[str]:
    """High-trust combinations that raise conviction under any policy."""
    factors = []
    if ctx.bundle.broker_concentration.signal in ('HIGH_CONCENTRATION', 'COORDINATED_BUYING'):
        factors.append('high_concentration')
    if ctx.cost_basis.zone == SWEET_SPOT:
        factors.append('sweet_spot')
    big_dogs = ctx.big_dog_activity()
    buyers = [b for b in big_dogs if b.net_value > 0]
    if len(buyers) >= 2 and sum(b.net_value for b in big_dogs) > 0:
        factors.append('big_dog_accumulating')
    return factors


def compute_conviction(signal: str, conviction_factors) -> int:
    """Base conviction from the signal band, +1 per booster, never above 5."""
    conviction = CONVICTION_BY_SIGNAL.get(signal, 3)
    for booster in CONVICTION_BOOSTERS:
        if booster in conviction_factors:
            conviction = min(MAX_CONVICTION, conviction + 1)
    return conviction


def base_metrics(ctx: ScoringContext) -> Dict[str, float]:
    va = ctx.bundle.volume_analysis
    return {
        'current_price': ctx.price_bar.close,
        'avg_broker_cost': ctx.cost_basis.avg_cost,
        'premium_to_cost_pct': ctx.cost_basis.premium_pct,
        'foreign_net_value': ctx.bundle.foreign_flow.net_value,
        'top3_net_value': ctx.top3_net_value,
        'volume_ratio': va.volume_ratio,
        'bid_ask_ratio': va.bid_ask_imbalance.ratio,
        'queue_pressure': float(ctx.bundle.queue_pressure),
    }


class ScoringPolicy(ABC):
    """
    One scoring formula. Subclasses declare `name` and `bands` and record
    their adjustments in `apply`; clamping, signal mapping and conviction
    are handled here.
    """
    name: str = ''
    description: str = ''
    bands: SignalBands

    def evaluate(self, ctx: ScoringContext) -> ScoreResult:
        ledger = FactorLedger(ctx.config.scoring.baseline)
        conviction_factors: List[str] = []
        state = self.apply(ctx, ledger, conviction_factors) or {}

        ledger.clamp(self.bands.lower, self.bands.upper)
        final_score = ledger.score
        signal = self.bands.classify(final_score)

        metrics = base_metrics(ctx)
        metrics.update(self.extra_metrics(ctx, state))

        return ScoreResult(
            symbol=ctx.bundle.symbol,
            policy=self.name,
            score=final_score,
            signal=signal,
            conviction=compute_conviction(signal, conviction_factors),
            factors=ledger.texts(),
            ledger=ledger.entries(),
            conviction_factors=tuple(dict.fromkeys(conviction_factors)),
            metrics=metrics,
            ideal_setup=self.ideal_setup(ctx, state),
        )

    @abstractmethod
    def apply(self, ctx: ScoringContext, ledger: FactorLedger,
              conviction_factors: List[str]) -> Optional[Dict[str, Any]]:
        """Record adjustments in `ledger`; may return state for the hooks below."""

    def extra_metrics(self, ctx: ScoringContext, state: Dict[str, Any]) -> Dict[str, float]:
        return {}

    def ideal_setup(self, ctx: ScoringContext, state: Dict[str, Any]) -> Optional[IdealSetup]:
        return None


def builtin_policies() -> Dict[str, type]:
    """Name -> policy class for every shipped policy."""
    from .policy_conservative import ConservativePolicy
    from .policy_legacy import LegacyPolicy
    from .policy_priority_stack import PriorityStackPolicy

    return {cls.name: cls for cls in (ConservativePolicy, PriorityStackPolicy, LegacyPolicy)}


def available_policies() -> List[str]:
    return sorted(builtin_policies())


def get_policy(name: str) -> ScoringPolicy:
    policies = builtin_policies()
    try:
        return policies[name]()
    except KeyError:
        raise UnknownPolicyError(
            f"Unknown scoring policy '{name}'. Available: {', '.join(sorted(policies))}"
        ) from None


def resolve_policy(policy: Union[str, ScoringPolicy, None], config: EngineConfig) -> ScoringPolicy:
    if isinstance(policy, ScoringPolicy):
        return policy
    return get_policy(policy or config.scoring.default_policy)


def score(price_bar, bundle: IndicatorBundle, market_context=None,
          policy: Union[str, ScoringPolicy, None] = None,
          config: Optional[EngineConfig] = None) -> ScoreResult:
    """
    Score one symbol.

    Args:
        price_bar: Current PriceBar (model or dict).
        bundle: IndicatorBundle from derive_indicators.
        market_context: Optional MarketContext (index/sector change, ownership).
        policy: Policy name or instance; defaults to config.scoring.default_policy.
        config: Engine configuration.

    Returns:
        Frozen ScoreResult. Deterministic for identical inputs.
    """
    config = config or DEFAULT_CONFIG
    bar = validate_model(PriceBar, price_bar, 'price_bar')
    context = validate_model(MarketContext, market_context or {}, 'market_context')
    bundle = validate_model(IndicatorBundle, bundle, 'bundle')
    scoring_policy = resolve_policy(policy, config)

    ctx = ScoringContext(
        price_bar=bar,
        bundle=bundle,
        market_context=context,
        config=config,
        cost_basis=assess_cost_basis(bundle.broker_summary, bar.close, config),
    )
    result = scoring_policy.evaluate(ctx)
    logger.debug(
        f"{bundle.symbol} [{result.policy}] score={result.score} signal={result.signal} "
        f"conviction={result.conviction} factors={len(result.ledger)}"
    )
    return result
