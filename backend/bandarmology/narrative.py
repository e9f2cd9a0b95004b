"""
Narrative Generator

Turns a ScoreResult and its IndicatorBundle into a structured report:
an executive summary, a macro thesis, titled bullet sections, the red-flag
scan and a short broker-based reasoning block. Sections are plain
{title, bullets} records; NarrativeReport.render_text() is the only place
that formats them for display.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .broker_utils import build_broker_activity, is_bandar, is_big_dog, is_foreign, top_by_abs_net
from .config import DEFAULT_CONFIG, EngineConfig
from .cost_basis import DANGER, SWEET_SPOT, VALUE, assess_cost_basis
from .models import (
    BrokerActivity,
    CostBasis,
    IndicatorBundle,
    PriceBar,
    RedFlagReport,
    ScoreResult,
    TransactionRow,
    validate_model,
)
from .red_flags import detect_red_flags
from .scoring import CLAMP, GATE
from .sector_profiles import SectorProfile, fundamentals_bullets, get_sector_profile, macro_thesis
from .utils import format_billions, format_pct, format_rupiah, safe_div, to_billions

logger = logging.getLogger(__name__)


class NarrativeSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    bullets: Tuple[str, ...] = ()


class Reasoning(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str
    details: Tuple[str, ...] = ()
    key_levels: Dict[str, float]


class NarrativeReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    summary: str
    macro_thesis: str
    sections: Tuple[NarrativeSection, ...] = ()
    red_flags: RedFlagReport = RedFlagReport()
    reasoning: Reasoning

    def section(self, title: str) -> Optional[NarrativeSection]:
        for s in self.sections:
            if s.title == title:
                return s
        return None

    def render_text(self) -> str:
        lines = [self.summary, '', f"MACRO THESIS: {self.macro_thesis}"]
        for s in self.sections:
            lines.append('')
            lines.append(s.title)
            lines.extend(f"  • {b}" for b in s.bullets)
        lines.append('')
        lines.append(f"REASONING: {self.reasoning.summary}")
        lines.extend(f"  - {d}" for d in self.reasoning.details)
        return '\n'.join(lines)


class NarrativeBuilder:
    """Accumulates sections in order."""

    def __init__(self):
        self._sections: List[NarrativeSection] = []

    def add(self, title: str, bullets: Iterable[str]) -> "NarrativeBuilder":
        self._sections.append(NarrativeSection(title=title, bullets=tuple(bullets)))
        return self

    def build(self) -> Tuple[NarrativeSection, ...]:
        return tuple(self._sections)


def _activities(broker_summary, config: EngineConfig) -> List[BrokerActivity]:
    result = []
    for idx, item in enumerate(broker_summary):
        if isinstance(item, BrokerActivity):
            result.append(item)
        else:
            row = validate_model(TransactionRow, item, f"broker_summary[{idx}]")
            result.append(build_broker_activity(row, config))
    return result


def _executive_summary(symbol: str, profile: SectorProfile, result: ScoreResult, bundle: IndicatorBundle,
                       brokers: List[BrokerActivity], cost: CostBasis, bar: PriceBar,
                       config: EngineConfig) -> List[str]:
    parts = [f"{symbol} ({profile.sector}) trading at {format_rupiah(bar.close)}"]

    foreign_b = to_billions(bundle.foreign_flow.net_value)
    if abs(foreign_b) > 1:
        side = 'net buying' if foreign_b > 0 else 'net selling'
        parts.append(f"Foreign {side} {abs(foreign_b):.1f}B IDR")

    top3_net = sum(b.net_value for b in top_by_abs_net(brokers, 3))
    if abs(top3_net) > config.scoring.top_broker_value:
        action = 'accumulating' if top3_net > 0 else 'distributing'
        parts.append(f"Top 3 brokers {action} {abs(to_billions(top3_net)):.1f}B")

    va = bundle.volume_analysis
    if va.has_valid_average and va.volume_ratio > 2:
        reading = 'breakout' if bar.change_pct > 0 else 'distribution'
        parts.append(f"Volume {va.volume_ratio:.1f}x average suggesting {reading}")

    if cost.zone == VALUE:
        parts.append(f"Trading {abs(cost.premium_pct):.1f}% below broker cost - value opportunity")
    elif cost.premium_pct > 25:
        parts.append(f"Trading {cost.premium_pct:.1f}% above broker cost - caution warranted")

    parts.append(f"Signal {result.signal} (score {result.score}, conviction {result.conviction}/5)")
    return parts


def _score_drivers(result: ScoreResult, limit: int = 5) -> List[str]:
    ranked = sorted(
        (f for f in result.ledger if f.category not in (GATE, CLAMP)),
        key=lambda f: -abs(f.delta),
    )
    bullets = [f"{f.delta:+d} {f.text}" for f in ranked[:limit]]
    bullets.extend(f.text for f in result.ledger if f.category == GATE)
    return bullets


def _concentration_section(bundle: IndicatorBundle, brokers: List[BrokerActivity],
                           profile: SectorProfile) -> List[str]:
    top3 = top_by_abs_net(brokers, 3)
    if not top3:
        return ['No broker transactions available']
    total_buy = sum(b.buy_value for b in brokers)
    share = safe_div(sum(b.buy_value for b in top3), total_buy) * 100
    bullets = [
        f"Top 3 brokers control {share:.1f}% of buying value",
        f"Leading brokers: {', '.join(b.code for b in top3)}",
    ]
    bc = bundle.broker_concentration
    if bc.detected:
        bullets.append(bc.description)
    gross_net = sum(abs(b.net_value) for b in brokers)
    float_capture = safe_div(gross_net, profile.market_cap) * 100
    bullets.append(f"Estimated float capture: {float_capture:.2f}%")
    return bullets


def _cost_basis_section(cost: CostBasis) -> List[str]:
    if cost.avg_cost <= 0:
        return ['Broker cost basis unavailable']
    bullets = [
        f"Average broker cost: {format_rupiah(cost.avg_cost)}",
        f"Current price: {format_rupiah(cost.current_price)}",
        f"Premium/Discount: {format_pct(cost.premium_pct)}",
    ]
    if cost.zone == SWEET_SPOT:
        bullets.append('SWEET SPOT: modestly above cost, early accumulation cycle')
    elif cost.zone == DANGER:
        bullets.append('DANGER ZONE: >30% above cost, distribution risk high')
    elif cost.zone == VALUE:
        bullets.append('VALUE ZONE: below broker cost, accumulation opportunity')
    return bullets


def _foreign_section(bundle: IndicatorBundle) -> List[str]:
    ff = bundle.foreign_flow
    bullets = [
        f"Net foreign flow: {format_billions(ff.net_value)} IDR",
        f"Foreign buying via: {', '.join(ff.buy_brokers) or 'None'}",
        f"Foreign selling via: {', '.join(ff.sell_brokers) or 'None'}",
    ]
    net_b = to_billions(ff.net_value)
    if abs(net_b) > 1:
        bullets.append('Strong foreign conviction' if net_b > 0 else 'Significant foreign exodus')
    if bundle.foreign_streak.detected:
        bullets.append(bundle.foreign_streak.description)
    return bullets


def _volume_section(bundle: IndicatorBundle, change_pct: float, lot_size: int) -> List[str]:
    va = bundle.volume_analysis
    bullets = [f"Today's volume: {va.total_volume * lot_size / 1e6:.1f}M shares"]
    if va.has_valid_average:
        bullets.append(f"Average volume ({va.sample_count} days): {va.average_volume * lot_size / 1e6:.1f}M shares")
        bullets.append(f"Volume ratio: {va.volume_ratio:.1f}x average")
    else:
        bullets.append('Not enough history for a volume average')
    bullets.append(f"Price change (today): {format_pct(change_pct, 2)}")

    if va.has_valid_average:
        if va.volume_ratio > 2.5 and change_pct > 2:
            bullets.append('BREAKOUT CONFIRMED: high volume with price surge')
        elif va.volume_ratio > 2 and change_pct < -1:
            bullets.append('DISTRIBUTION: high volume with price drop')
        elif va.volume_ratio < 0.7:
            bullets.append('Low volume, consolidation before the next move')
    for reading in (va.volume_spike, va.volume_dry_up, va.bid_ask_imbalance):
        if reading.detected:
            bullets.append(reading.description)
    return bullets


def _sid_section(bundle: IndicatorBundle) -> List[str]:
    sid = bundle.sid
    if sid.count <= 0:
        return ['SID data unavailable']
    bullets = [
        f"SID holders: {sid.count:,}",
        f"Change: {sid.change:+d} ({sid.change_pct:.1f}%)",
    ]
    if sid.change > 50:
        bullets.append('RETAIL FOMO: SID surge often precedes a correction')
    elif sid.change < -30:
        bullets.append('WEAK HANDS EXITING: retail selling while institutions accumulate')
    return bullets


def _big_dog_section(brokers: List[BrokerActivity], config: EngineConfig) -> List[str]:
    big_dogs = [b for b in brokers if is_big_dog(b.code, config.brokers)]
    if not big_dogs:
        return ['No Big Dog activity detected']
    bullets = []
    for b in big_dogs[:5]:
        action = 'ACCUMULATING' if b.net_value > 0 else 'DISTRIBUTING'
        lots = b.buy_volume if b.buy_volume > 0 else b.sell_volume
        price = b.avg_buy_price if b.net_value > 0 else b.avg_sell_price
        bullets.append(f"{b.code}: {action} {lots / 1000:.1f}K lots @ {format_rupiah(price)}")
    return bullets


def _key_levels_section(price: float, cost: CostBasis) -> List[str]:
    bullets = [
        f"Support Level 1: {format_rupiah(price * 0.97)}",
        f"Support Level 2: {format_rupiah(price * 0.94)}",
        f"Resistance Level 1: {format_rupiah(price * 1.03)}",
        f"Resistance Level 2: {format_rupiah(price * 1.06)}",
    ]
    if cost.avg_cost > 0:
        bullets.append(f"Broker Average Cost: {format_rupiah(cost.avg_cost)} (key pivot)")
    return bullets


def _red_flag_section(report: RedFlagReport) -> List[str]:
    if not report.has_flags:
        return ['No red flags detected']
    return [f"[{f.severity}] {f.description}" for f in report.flags]


def build_reasoning(bundle: IndicatorBundle, brokers: List[BrokerActivity], bar: PriceBar,
                    cost: CostBasis, config: EngineConfig = DEFAULT_CONFIG) -> Reasoning:
    """Broker-flow reasoning: short headline reasons plus supporting details."""
    reasons = []
    details = []

    ff = bundle.foreign_flow
    flow_value = config.narrative.reasoning_flow_value
    if ff.net_value > flow_value:
        via = '+'.join(ff.buy_brokers[:3]) or 'multiple brokers'
        reasons.append(f"Foreign net buy Rp {round(to_billions(ff.net_value))}B via {via}")
        details.append(f"Strong foreign inflow: {', '.join(ff.buy_brokers)} actively buying")
    elif ff.net_value < -flow_value:
        via = '+'.join(ff.sell_brokers[:3]) or 'multiple brokers'
        reasons.append(f"Foreign net sell Rp {round(abs(to_billions(ff.net_value)))}B via {via}")
        details.append(f"Foreign outflow detected from {', '.join(ff.sell_brokers)}")

    active = [b for b in bundle.bandar_brokers if b.net_value > 0]
    if active:
        codes = '+'.join(b.code for b in active[:3])
        total = sum(b.net_value for b in active)
        share = round(safe_div(total, bundle.totals.buy_value) * 100)
        reasons.append(f"{codes} control {share}% of buying")
        details.append(f"Key bandar brokers accumulating: {codes} with Rp {round(to_billions(total))}B net buy")

    lots = bundle.large_lots
    if lots.count > 5:
        reasons.append(f"{lots.count} large block trades (Rp {round(to_billions(lots.value))}B)")
        details.append(f"Block trading activity: {', '.join(lots.brokers[:5])} handling large lots")

    va = bundle.volume_analysis
    if va.has_valid_average:
        if va.volume_vs_avg_pct > 50:
            reasons.append(f"Volume {round(va.volume_vs_avg_pct)}% above average")
            details.append('Unusual volume spike indicating institutional activity')
        elif va.volume_vs_avg_pct < -30:
            details.append('Low volume: accumulation phase or lack of interest')

    if cost.avg_cost > 0 and bar.close > 0:
        if 0 < cost.premium_pct < 10:
            details.append(f"Price {format_rupiah(bar.close)} is {cost.premium_pct:.1f}% above "
                           f"average broker cost {format_rupiah(cost.avg_cost)}")
        elif cost.premium_pct < 0:
            details.append(f"Price {format_rupiah(bar.close)} is {abs(cost.premium_pct):.1f}% below "
                           f"average broker cost {format_rupiah(cost.avg_cost)} - potential value")

    lists = config.brokers
    institutional = sum(
        b.buy_volume + b.sell_volume for b in brokers
        if is_foreign(b.code, lists) or is_bandar(b.code, lists)
    )
    gross = sum(b.buy_volume + b.sell_volume for b in brokers)
    if gross > 0:
        pct = round(institutional / gross * 100)
        if pct > 60:
            details.append(f"Institutional dominance: {pct}% of volume from foreign/major brokers")
        elif pct < 30:
            details.append(f"Retail-driven: only {pct}% institutional participation")

    return Reasoning(
        summary='. '.join(reasons) + '.' if reasons else 'Neutral broker activity',
        details=tuple(details),
        key_levels={
            'support': float(round(bar.low * 0.98)),
            'resistance': float(round(bar.high * 1.02)),
        },
    )


def narrate(score_result: ScoreResult, bundle: IndicatorBundle, broker_summary=None,
            price_bar=None, config: Optional[EngineConfig] = None) -> NarrativeReport:
    """
    Build the narrative report for one scored symbol.

    Args:
        score_result: Output of scoring.score for this bundle.
        bundle: The IndicatorBundle that was scored.
        broker_summary: Optional broker rows (BrokerActivity or transaction rows);
            defaults to the bundle's own broker summary.
        price_bar: Optional PriceBar; defaults to a flat bar at the scored price.
        config: Engine configuration.

    Returns:
        NarrativeReport
    """
    config = config or DEFAULT_CONFIG
    if price_bar is None:
        close = score_result.metrics.get('current_price', 0.0)
        bar = PriceBar(open=close, high=close, low=close, close=close,
                       change_pct=bundle.price_action.change_pct, date=bundle.date)
    else:
        bar = validate_model(PriceBar, price_bar, 'price_bar')

    brokers = _activities(bundle.broker_summary if broker_summary is None else broker_summary, config)
    cost = assess_cost_basis(brokers, bar.close, config)
    profile = get_sector_profile(bundle.symbol)
    flags = detect_red_flags(bundle, config)

    summary_parts = _executive_summary(bundle.symbol, profile, score_result, bundle, brokers, cost, bar, config)

    builder = NarrativeBuilder()
    builder.add('EXECUTIVE SUMMARY', summary_parts + _score_drivers(score_result))
    builder.add('FUNDAMENTAL SNAPSHOT', fundamentals_bullets(profile))
    builder.add('BROKER CONCENTRATION & SMART MONEY', _concentration_section(bundle, brokers, profile))
    builder.add('COST BASIS ANALYSIS', _cost_basis_section(cost))
    builder.add('FOREIGN FLOW', _foreign_section(bundle))
    builder.add('VOLUME & MOMENTUM', _volume_section(bundle, bar.change_pct, config.lot_size))
    builder.add('RETAIL PARTICIPATION (SID)', _sid_section(bundle))
    builder.add('BIG DOG ACTIVITY', _big_dog_section(brokers, config))
    builder.add('KEY LEVELS & TRADING ZONES', _key_levels_section(bar.close, cost))
    builder.add(f"RED FLAGS (risk: {flags.risk_level})", _red_flag_section(flags))

    if bundle.degraded:
        logger.info(f"Narrating degraded bundle for {bundle.symbol}")

    return NarrativeReport(
        symbol=bundle.symbol,
        summary='. '.join(summary_parts) + '.',
        macro_thesis=macro_thesis(profile, bundle.foreign_flow.net_value, bar.change_pct),
        sections=builder.build(),
        red_flags=flags,
        reasoning=build_reasoning(bundle, brokers, bar, cost, config),
    )
