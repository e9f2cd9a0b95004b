"""
Data models for the bandarmology engine.

Input models validate collaborator rows at the boundary of the core; output
models are frozen so a bundle or score cannot be mutated after construction.
Volumes are in lots, values in IDR.
"""
import datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import InvalidInputError

# Signals, strongest first
STRONG_BUY = 'STRONG_BUY'
BUY = 'BUY'
HOLD = 'HOLD'
REDUCE = 'REDUCE'
SELL = 'SELL'
SIGNALS = (STRONG_BUY, BUY, HOLD, REDUCE, SELL)

# Red-flag severities, ordered
SEVERITY_RANK = {'LOW': 0, 'MEDIUM': 1, 'HIGH': 2, 'CRITICAL': 3}


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class TransactionRow(BaseModel):
    """One broker's aggregated buy/sell activity for a symbol and date."""
    code: str = Field(..., min_length=1, max_length=10)
    name: Optional[str] = None
    buy_volume: float = Field(..., ge=0)
    buy_value: float = Field(..., ge=0)
    sell_volume: float = Field(..., ge=0)
    sell_value: float = Field(..., ge=0)

    @field_validator('code')
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("broker code must not be blank")
        return v


class PriceBar(BaseModel):
    open: float = Field(..., ge=0)
    high: float = Field(..., ge=0)
    low: float = Field(..., ge=0)
    close: float = Field(..., ge=0)
    volume: float = Field(default=0, ge=0)
    change_pct: float = 0.0
    date: Optional[datetime.date] = None

    @model_validator(mode='after')
    def _check_ohlc(self) -> "PriceBar":
        if self.high < self.low:
            raise ValueError(f"high ({self.high}) below low ({self.low})")
        for name in ('open', 'close'):
            value = getattr(self, name)
            if not self.low <= value <= self.high:
                raise ValueError(f"{name} ({value}) outside low/high range [{self.low}, {self.high}]")
        return self


class VolumePoint(BaseModel):
    date: datetime.date
    total_volume: float = Field(..., ge=0)


class ForeignFlowPoint(BaseModel):
    date: datetime.date
    foreign_net_value: float


class BrokerDayNet(BaseModel):
    """Net value of one broker on one day, used for concentration tracking."""
    date: datetime.date
    code: str = Field(..., min_length=1, max_length=10)
    net_value: float

    @field_validator('code')
    @classmethod
    def _normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("broker code must not be blank")
        return v


class Ownership(BaseModel):
    total_shares: float = Field(default=0, ge=0)
    controlling_stake_pct: float = Field(default=0, ge=0, le=100)
    controlling_stake_stable: bool = True


class MarketContext(BaseModel):
    index_change_pct: Optional[float] = None
    sector_change_pct: Optional[float] = None
    ownership: Optional[Ownership] = None


def validate_model(model, value, label: str):
    """Validate a single value into `model`, raising InvalidInputError."""
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = '.'.join(str(p) for p in first.get('loc', ()))
        raise InvalidInputError(
            f"Invalid {label}: {loc} {first.get('msg', str(e))}".strip(),
            errors=e.errors(),
        ) from e


def validate_rows(model, rows, label: str) -> List:
    """Validate a sequence of rows into `model` instances. None means empty."""
    if rows is None:
        return []
    if isinstance(rows, (str, bytes, dict)) or not hasattr(rows, '__iter__'):
        raise InvalidInputError(f"{label} must be a sequence of rows, got {type(rows).__name__}")
    return [validate_model(model, row, f"{label}[{idx}]") for idx, row in enumerate(rows)]


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class BrokerActivity(_Frozen):
    code: str
    name: str
    buy_volume: float
    buy_value: float
    sell_volume: float
    sell_value: float
    net_volume: float
    net_value: float
    is_foreign: bool
    avg_buy_price: float
    avg_sell_price: float


class ForeignFlow(_Frozen):
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    net_volume: float = 0.0
    buy_value: float = 0.0
    sell_value: float = 0.0
    net_value: float = 0.0
    buy_brokers: Tuple[str, ...] = ()
    sell_brokers: Tuple[str, ...] = ()


class BandarBroker(_Frozen):
    code: str
    net_value: float
    is_foreign: bool


class BlockTrades(_Frozen):
    """Brokers whose buy or sell value crossed a block-size threshold."""
    count: int = 0
    volume: float = 0.0
    value: float = 0.0
    brokers: Tuple[str, ...] = ()


class SidData(_Frozen):
    count: int = 0
    change: int = 0
    change_pct: float = 0.0


class VolumeSpike(_Frozen):
    detected: bool = False
    signal: str = 'NORMAL'
    severity: str = 'NONE'
    ratio: float = 1.0
    description: str = ''


class VolumeDryUp(_Frozen):
    detected: bool = False
    signal: str = 'NORMAL'
    severity: str = 'NONE'
    dry_up_days: int = 0
    confidence: float = 0.0
    description: str = ''


class BidAskImbalance(_Frozen):
    detected: bool = False
    signal: str = 'NEUTRAL'
    severity: str = 'NONE'
    ratio: float = 1.0
    buy_pressure: int = 0
    description: str = 'No significant bid-ask imbalance detected'


class VolumeAnalysis(_Frozen):
    total_volume: float = 0.0
    average_volume: float = 0.0
    volume_ratio: float = 1.0
    volume_vs_avg_pct: float = 0.0
    sample_count: int = 0
    has_valid_average: bool = False
    volume_spike: VolumeSpike = VolumeSpike()
    volume_dry_up: VolumeDryUp = VolumeDryUp()
    bid_ask_imbalance: BidAskImbalance = BidAskImbalance()


class ForeignStreak(_Frozen):
    detected: bool = False
    signal: str = 'NEUTRAL'
    consecutive_days: int = 0
    total_net_value: float = 0.0
    description: str = 'No sustained foreign flow pattern'


class DominantBroker(_Frozen):
    code: str
    days_active: int
    total_net_value: float


class BrokerConcentration(_Frozen):
    detected: bool = False
    signal: str = 'NEUTRAL'
    dominant_brokers: Tuple[DominantBroker, ...] = ()
    concentration_days: int = 0
    description: str = 'No significant broker concentration'


class PatternHit(_Frozen):
    detected: bool = False
    signal: str = 'NORMAL'
    value: float = 0.0
    description: str = ''


class PriceAction(_Frozen):
    change_pct: float = 0.0
    range_pct: float = 0.0
    compression: PatternHit = PatternHit()
    bear_trap: PatternHit = PatternHit()
    healthy_pullback: PatternHit = PatternHit()
    floor_defense: PatternHit = PatternHit()
    gap_up_breakout: PatternHit = PatternHit()

    def detected_patterns(self) -> List[str]:
        names = ('compression', 'bear_trap', 'healthy_pullback', 'floor_defense', 'gap_up_breakout')
        return [n for n in names if getattr(self, n).detected]


class MfiReading(_Frozen):
    value: float = 50.0
    signal: str = 'NEUTRAL'


class ObvReading(_Frozen):
    value: float = 0.0
    signal: str = 'NEUTRAL'
    description: str = 'No OBV divergence detected'


class VwapReading(_Frozen):
    value: float = 0.0
    price_vs_vwap_pct: float = 0.0
    signal: str = 'AT_VWAP'


class CmfReading(_Frozen):
    value: float = 0.0
    signal: str = 'NEUTRAL'


class QuantitativeIndicators(_Frozen):
    mfi: MfiReading = MfiReading()
    obv: ObvReading = ObvReading()
    vwap: VwapReading = VwapReading()
    cmf: CmfReading = CmfReading()


class Totals(_Frozen):
    buy_volume: float = 0.0
    buy_value: float = 0.0
    sell_volume: float = 0.0
    sell_value: float = 0.0
    net_volume: float = 0.0
    net_value: float = 0.0


class IndicatorBundle(_Frozen):
    """All derived signals for one symbol/day. Built fresh per call."""
    symbol: str
    date: Optional[datetime.date] = None
    degraded: bool = False
    foreign_flow: ForeignFlow = ForeignFlow()
    broker_summary: Tuple[BrokerActivity, ...] = ()
    bandar_brokers: Tuple[BandarBroker, ...] = ()
    large_lots: BlockTrades = BlockTrades()
    negotiated_trades: BlockTrades = BlockTrades()
    queue_pressure: int = 50
    sid: SidData = SidData()
    volume_analysis: VolumeAnalysis = VolumeAnalysis()
    foreign_streak: ForeignStreak = ForeignStreak()
    broker_concentration: BrokerConcentration = BrokerConcentration()
    price_action: PriceAction = PriceAction()
    quantitative: QuantitativeIndicators = QuantitativeIndicators()
    totals: Totals = Totals()


class CostBasis(_Frozen):
    avg_cost: float = 0.0
    current_price: float = 0.0
    premium_pct: float = 0.0
    zone: str = 'UNKNOWN'


class Factor(_Frozen):
    """One additive adjustment to the score, as recorded in the ledger."""
    category: str
    delta: int
    text: str


class IdealSetup(_Frozen):
    quality: str
    score: int
    checks: Dict[str, bool]
    passed_checks: int
    recommendation: str


class ScoreResult(_Frozen):
    symbol: str
    policy: str
    score: int
    signal: str
    conviction: int = Field(..., ge=1, le=5)
    factors: Tuple[str, ...] = ()
    ledger: Tuple[Factor, ...] = ()
    conviction_factors: Tuple[str, ...] = ()
    metrics: Dict[str, float] = Field(default_factory=dict)
    ideal_setup: Optional[IdealSetup] = None


class RedFlag(_Frozen):
    kind: str
    severity: str
    description: str


class RedFlagReport(_Frozen):
    flags: Tuple[RedFlag, ...] = ()
    risk_level: str = 'LOW'

    @property
    def has_flags(self) -> bool:
        return bool(self.flags)
