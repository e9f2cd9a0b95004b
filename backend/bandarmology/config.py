"""
Engine Configuration

Threshold bands, window sizes, lot-size convention and broker watch-lists
for the indicator deriver, scoring policies and narrative generator.

Module-level constants are the defaults; the frozen dataclasses below group
them so a caller can pass one explicit EngineConfig through the whole
pipeline instead of relying on globals.
"""
import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, FrozenSet

from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Shares per lot on IDX
LOT_SIZE = 100

BILLION = 1_000_000_000

# Known foreign brokers (by code)
FOREIGN_BROKERS = ('AK', 'BK', 'KZ', 'YP', 'GR', 'AI', 'ZZ', 'YU', 'CC')

# Brokerage firms with significant market presence (bandar watch-list)
BANDAR_BROKERS = ('YU', 'CC', 'SQ', 'NI', 'OD', 'GW', 'BK', 'AK', 'PD', 'XL')

# Tier-1 "big dog" brokers
BIG_DOG_BROKERS = ('YU', 'CC', 'NI', 'GW', 'SQ', 'OD', 'BK', 'AK')
INSTITUTIONAL_BROKERS = ('YU', 'CC', 'NI', 'GW', 'SQ', 'OD', 'BK', 'AK', 'MS', 'JP', 'GS')
RETAIL_BROKERS = ('DX', 'ZZ', 'QQ', 'MG', 'PD', 'HP')

DEFAULT_POLICY = "conservative"


@dataclass(frozen=True)
class BrokerLists:
    """Broker code watch-lists used for classification."""
    foreign: FrozenSet[str] = frozenset(FOREIGN_BROKERS)
    bandar: FrozenSet[str] = frozenset(BANDAR_BROKERS)
    big_dog: FrozenSet[str] = frozenset(BIG_DOG_BROKERS)
    institutional: FrozenSet[str] = frozenset(INSTITUTIONAL_BROKERS)
    retail: FrozenSet[str] = frozenset(RETAIL_BROKERS)


@dataclass(frozen=True)
class VolumeConfig:
    """
    Volume spike and dry-up bands.

    Spike ratio buckets: [0, stealth_min) NORMAL, [stealth_min, breakout_min)
    STEALTH_ACCUMULATION, [breakout_min, inf) BREAKOUT.
    """
    window: int = 20
    min_samples: int = 5
    stealth_min: float = 1.5
    stealth_high: float = 2.5
    breakout_min: float = 3.0

    dry_up_window: int = 5
    dry_up_factor: float = 0.7
    dry_up_min_days: int = 2
    vdu_breakout_ratio: float = 1.3
    vdu_breakout_confidence_cap: float = 95.0
    vdu_accumulating_confidence_cap: float = 80.0


@dataclass(frozen=True)
class BidAskConfig:
    """Bid/ask imbalance bands. Distribution fires below 1 / threshold."""
    threshold: float = 1.15
    stealth_ratio: float = 1.3
    stealth_price_drop_pct: float = -0.5
    high_severity_ratio: float = 1.5
    flat_price_pct: float = 2.0
    ratio_cap: float = 10.0


@dataclass(frozen=True)
class StreakConfig:
    strong_days: int = 5
    moderate_days: int = 3
    weak_days: int = 2
    exodus_days: int = 10


@dataclass(frozen=True)
class ConcentrationConfig:
    days: int = 7
    top_n: int = 3
    min_appearances: int = 2
    high_concentration_days: int = 4
    max_dominant: int = 3


@dataclass(frozen=True)
class PriceActionConfig:
    compression_range_pct: float = 2.0
    compression_change_pct: float = 1.0
    bear_trap_breach: float = 0.97
    bear_trap_recovery: float = 1.02
    bear_trap_min_change_pct: float = -1.0
    volume_confirmation_ratio: float = 1.3
    pullback_min_change_pct: float = -3.0
    pullback_volume_ratio: float = 0.7
    floor_bounce_pct: float = 1.5
    floor_hold: float = 0.98
    gap_min_pct: float = 1.0
    gap_min_change_pct: float = 2.0


@dataclass(frozen=True)
class QuantConfig:
    mfi_neutral: float = 50.0
    mfi_floor: float = 20.0
    mfi_ceiling: float = 80.0
    mfi_volume_trigger_pct: float = 20.0
    mfi_overbought: float = 70.0
    mfi_oversold: float = 30.0
    obv_divergence_volume_pct: float = 10.0
    vwap_deadband_pct: float = 2.0
    cmf_threshold: float = 0.1


@dataclass(frozen=True)
class FlowConfig:
    summary_top_n: int = 15
    bandar_top_n: int = 5
    bandar_min_net_value: float = 10 * BILLION
    large_lot_value: float = 1 * BILLION
    nego_value: float = 5 * BILLION


@dataclass(frozen=True)
class CostBasisConfig:
    """
    Premium-to-cost zones, in percent of the average broker cost:
    below value_max VALUE, below fair_max FAIR, below sweet_spot_max
    SWEET_SPOT, up to danger_min EXTENDED, above DANGER.
    """
    value_max: float = -5.0
    fair_max: float = 5.0
    sweet_spot_max: float = 20.0
    danger_min: float = 30.0


@dataclass(frozen=True)
class RedFlagConfig:
    distribution_volume_ratio: float = 2.0
    distribution_change_pct: float = -2.0
    distribution_critical_ratio: float = 3.0
    distribution_critical_change_pct: float = -5.0
    coordinated_exit_top_n: int = 5
    coordinated_exit_sellers: int = 3
    rally_change_pct: float = 1.0
    rally_volume_ratio: float = 1.0
    pump_change_pct: float = 5.0
    pump_volume_ratio: float = 3.0


@dataclass(frozen=True)
class ScoringConfig:
    default_policy: str = DEFAULT_POLICY
    baseline: int = 50
    foreign_strong_value: float = 1 * BILLION
    foreign_moderate_value: float = 0.5 * BILLION
    foreign_exodus_value: float = 5 * BILLION
    top_broker_value: float = 50 * BILLION
    min_bullish_categories: int = 2
    critical_bearish_cap: int = 50
    distribution_volume_ratio: float = 2.0
    # Index must fall further than this for a rising stock to count as outperforming
    weak_index_change_pct: float = -0.5
    sector_lead_pct: float = 1.0


@dataclass(frozen=True)
class PriorityStackConfig:
    """Bucket cut-offs for the priority-stack policy. Percentages unless noted."""
    concentration_high_pct: float = 50.0
    concentration_medium_pct: float = 35.0
    # Big-dog net selling must exceed this share of total buy lots to count
    big_dog_distribution_share: float = 0.1
    # Retail selling above this share of institutional buying is contra flow
    contra_retail_share: float = 0.5
    hidden_accumulation_pct: float = 10.0
    moderate_accumulation_pct: float = 5.0
    sweet_spot_max_pct: float = 20.0
    extended_pct: float = 30.0
    volume_spike_ratio: float = 3.0
    elevated_volume_ratio: float = 2.0
    cmf_threshold: float = 0.1
    vwap_reclaim_max_pct: float = 5.0
    concentrated_check_pct: float = 40.0
    excellent_setup: float = 80.0
    good_setup: float = 60.0
    fair_setup: float = 40.0


@dataclass(frozen=True)
class NarrativeConfig:
    # Foreign flow must exceed this to be called out in the reasoning block
    reasoning_flow_value: float = 100 * BILLION


@dataclass(frozen=True)
class EngineConfig:
    """Single configuration object passed into deriver, scoring and narrative."""
    lot_size: int = LOT_SIZE
    brokers: BrokerLists = field(default_factory=BrokerLists)
    volume: VolumeConfig = field(default_factory=VolumeConfig)
    bid_ask: BidAskConfig = field(default_factory=BidAskConfig)
    streak: StreakConfig = field(default_factory=StreakConfig)
    concentration: ConcentrationConfig = field(default_factory=ConcentrationConfig)
    price_action: PriceActionConfig = field(default_factory=PriceActionConfig)
    quant: QuantConfig = field(default_factory=QuantConfig)
    flow: FlowConfig = field(default_factory=FlowConfig)
    cost_basis: CostBasisConfig = field(default_factory=CostBasisConfig)
    red_flags: RedFlagConfig = field(default_factory=RedFlagConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    priority_stack: PriorityStackConfig = field(default_factory=PriorityStackConfig)
    narrative: NarrativeConfig = field(default_factory=NarrativeConfig)

    def __post_init__(self):
        if self.lot_size <= 0:
            raise ConfigurationError(f"lot_size must be positive, got {self.lot_size}")
        vol = self.volume
        if not (0 < vol.stealth_min <= vol.stealth_high <= vol.breakout_min):
            raise ConfigurationError(
                f"Volume bands must be monotonic: {vol.stealth_min}/{vol.stealth_high}/{vol.breakout_min}"
            )
        if vol.min_samples < 1 or vol.window < vol.min_samples:
            raise ConfigurationError(
                f"Volume window ({vol.window}) must cover min_samples ({vol.min_samples})"
            )
        if self.bid_ask.threshold <= 1.0:
            raise ConfigurationError("bid_ask.threshold must be above 1.0")
        st = self.streak
        if not (0 < st.weak_days <= st.moderate_days <= st.strong_days):
            raise ConfigurationError("Streak day bands must be monotonic")
        cb = self.cost_basis
        if not (cb.value_max <= cb.fair_max <= cb.sweet_spot_max <= cb.danger_min):
            raise ConfigurationError("Cost basis zones must be monotonic")
        ps = self.priority_stack
        if not (ps.concentration_medium_pct <= ps.concentration_high_pct
                and ps.moderate_accumulation_pct <= ps.hidden_accumulation_pct
                and ps.elevated_volume_ratio <= ps.volume_spike_ratio
                and ps.fair_setup <= ps.good_setup <= ps.excellent_setup):
            raise ConfigurationError("Priority-stack cut-offs must be monotonic")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config, applying BANDAR_* overrides from the environment / .env."""
        load_dotenv()
        volume = VolumeConfig(
            window=int(os.getenv("BANDAR_VOLUME_WINDOW", VolumeConfig.window)),
            min_samples=int(os.getenv("BANDAR_MIN_VOLUME_SAMPLES", VolumeConfig.min_samples)),
        )
        scoring = ScoringConfig(
            default_policy=os.getenv("BANDAR_SCORING_POLICY", DEFAULT_POLICY),
        )
        return cls(
            lot_size=int(os.getenv("BANDAR_LOT_SIZE", LOT_SIZE)),
            volume=volume,
            scoring=scoring,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        brokers = data['brokers']
        for key, codes in brokers.items():
            brokers[key] = sorted(codes)
        return data


DEFAULT_CONFIG = EngineConfig()
