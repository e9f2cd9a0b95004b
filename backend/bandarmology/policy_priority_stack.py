"""
Priority-stack scoring policy.

Five ranked buckets, each with its own maximum points:

    1. broker accumulation (concentration, big-dog flow, contra flow, % of float)
    2. volume + price (spikes, dry-up breakout, compression, gap breakout)
    3. foreign flow
    4. quantitative (OBV, CMF, MFI, VWAP)
    5. relative strength (vs index, vs sector)

Also computes an "ideal setup" score: the share of nine independent checks
passed, mapped to excellent/good/fair/poor.
"""
from typing import Any, Dict, List, Optional

from .broker_utils import is_big_dog, is_institutional, is_retail
from .config import PriorityStackConfig
from .models import BUY, HOLD, REDUCE, SELL, STRONG_BUY, IdealSetup, Ownership
from .scoring import FactorLedger, ScoringContext, ScoringPolicy, SignalBands
from .utils import safe_div, to_billions

WEIGHTS = {
    'broker_accumulation': {
        'concentration_high': 25,
        'concentration_medium': 18,
        'concentrated_selling': -15,
        'multi_day_accumulation': 15,
        'big_dog_presence': 5,
        'big_dog_distribution': -15,
        'hidden_accumulation': 12,
        'moderate_accumulation': 6,
        'contra_flow': 10,
        'extended': -10,
    },
    'volume_price': {
        'unusual_volume_spike': 15,
        'elevated_volume': 10,
        'volume_dry_up_breakout': 15,
        'price_compression': 12,
        'breakout_gap': 10,
    },
    'foreign_flow': {
        'strong_net_buy': 12,
        'moderate_net_buy': 8,
        'streak_bonus': 5,
        'strong_net_sell': -20,
    },
    'quantitative': {
        'obv_divergence': 8,
        'cmf_positive': 6,
        'cmf_negative': -5,
        'mfi_trending_up': 5,
        'vwap_reclaim': 5,
    },
    'relative_strength': {
        'vs_index_divergence': 6,
        'sector_leadership': 5,
    },
}

# Float assumed when no ownership data is supplied (shares)
DEFAULT_FLOAT_SHARES = 1_000_000_000
MANAGEABLE_FLOAT_SHARES = 5_000_000_000


def estimate_float(ownership: Optional[Ownership]) -> float:
    """Free float in shares: total minus the controlling stake, or 30% of total."""
    if ownership is None:
        return float(DEFAULT_FLOAT_SHARES)
    if ownership.total_shares > 0 and ownership.controlling_stake_pct > 0:
        return ownership.total_shares * (1 - ownership.controlling_stake_pct / 100)
    return ownership.total_shares * 0.3


def analyze_broker_accumulation(ctx: ScoringContext) -> Dict[str, Any]:
    """Lot-based broker accumulation statistics for the priority-1 bucket."""
    brokers = ctx.bundle.broker_summary
    lists = ctx.config.brokers
    lot_size = ctx.config.lot_size
    cfg = ctx.config.priority_stack

    total_buy = sum(b.buy_volume for b in brokers)
    total_sell = sum(b.sell_volume for b in brokers)
    net_volume = total_buy - total_sell

    top_buyers = sorted(brokers, key=lambda b: (-b.buy_volume, b.code))[:3]
    top3_buy = sum(b.buy_volume for b in top_buyers)
    top3_net = sum(b.net_volume for b in top_buyers)

    big_dogs = [b for b in brokers if is_big_dog(b.code, lists)]
    big_dog_net = sum(b.net_volume for b in big_dogs)

    institutional_buy = sum(b.buy_volume for b in brokers if is_institutional(b.code, lists))
    retail_sell = sum(b.sell_volume for b in brokers if is_retail(b.code, lists))

    float_shares = estimate_float(ctx.market_context.ownership)
    accumulation_pct = safe_div(abs(net_volume) * lot_size, float_shares) * 100

    return {
        'has_data': bool(brokers),
        'total_buy': total_buy,
        'net_volume': net_volume,
        'top3_concentration_pct': safe_div(top3_buy, total_buy) * 100,
        'top3_net_volume': top3_net,
        'big_dog_count': len(big_dogs),
        'big_dog_buyers': sum(1 for b in big_dogs if b.net_volume > 0),
        'big_dog_net': big_dog_net,
        'contra_flow': institutional_buy > 0 and retail_sell > institutional_buy * cfg.contra_retail_share,
        'float_shares': float_shares,
        'accumulation_pct': accumulation_pct,
        'avg_price': ctx.cost_basis.avg_cost,
        'price_vs_avg_pct': ctx.cost_basis.premium_pct if ctx.cost_basis.avg_cost > 0 else 0.0,
    }


class PriorityStackPolicy(ScoringPolicy):
    name = 'priority_stack'
    description = 'Five ranked priority buckets with an ideal-setup gauge'
    bands = SignalBands(
        lower=0,
        upper=100,
        cuts=((75, STRONG_BUY), (60, BUY), (45, HOLD), (30, REDUCE), (0, SELL)),
    )

    def __init__(self, weights: Optional[Dict[str, Dict[str, int]]] = None):
        self.weights = {group: dict(table) for group, table in WEIGHTS.items()}
        for group, table in (weights or {}).items():
            self.weights.setdefault(group, {}).update(table)

    def apply(self, ctx: ScoringContext, ledger: FactorLedger, conviction_factors: List[str]):
        broker = analyze_broker_accumulation(ctx)
        self._broker_accumulation(broker, ledger, conviction_factors, ctx.config.priority_stack)
        self._volume_price(ctx, ledger)
        self._foreign_flow(ctx, ledger)
        self._quantitative(ctx, ledger)
        self._relative_strength(ctx, ledger)
        return {'broker': broker}

    def _broker_accumulation(self, broker: Dict[str, Any], ledger: FactorLedger,
                             conviction_factors: List[str], cfg: PriorityStackConfig) -> None:
        w = self.weights['broker_accumulation']
        if not broker['has_data']:
            ledger.add('broker_accumulation', 0, 'No broker data')
            return

        concentration = broker['top3_concentration_pct']
        top3_net = broker['top3_net_volume']
        if concentration > cfg.concentration_high_pct and top3_net > 0:
            ledger.add('broker_accumulation', w['concentration_high'],
                       f"High concentration (NET BUYING): {concentration:.1f}% (top 3)")
            conviction_factors.append('high_concentration')
        elif concentration > cfg.concentration_medium_pct and top3_net > 0:
            ledger.add('broker_accumulation', w['concentration_medium'],
                       f"Moderate concentration (NET BUYING): {concentration:.1f}%")
        elif concentration > cfg.concentration_high_pct and top3_net <= 0:
            ledger.add('broker_accumulation', w['concentrated_selling'],
                       f"High concentration but NET SELLING: {concentration:.1f}%")
            conviction_factors.append('concentrated_selling')

        big_dog_net = broker['big_dog_net']
        if big_dog_net > 0 and broker['big_dog_count'] >= 2:
            ledger.add('broker_accumulation', w['multi_day_accumulation'],
                       f"Big dog accumulation: {broker['big_dog_buyers']} brokers buying")
            conviction_factors.append('big_dog_accumulating')
        elif big_dog_net > 0:
            ledger.add('broker_accumulation', w['big_dog_presence'], 'Big dog presence')
        elif big_dog_net < 0 and abs(big_dog_net) > broker['total_buy'] * cfg.big_dog_distribution_share:
            ledger.add('broker_accumulation', w['big_dog_distribution'], 'Big dog distribution')
            conviction_factors.append('big_dog_distributing')

        if broker['contra_flow'] and broker['net_volume'] > 0:
            ledger.add('broker_accumulation', w['contra_flow'], 'Contra flow: Institutions absorbing retail')
            conviction_factors.append('contra_flow')

        accumulation = broker['accumulation_pct']
        if accumulation > cfg.hidden_accumulation_pct:
            ledger.add('broker_accumulation', w['hidden_accumulation'],
                       f"Strong accumulation: {accumulation:.1f}% of float")
            conviction_factors.append('high_float_pct')
        elif accumulation > cfg.moderate_accumulation_pct:
            ledger.add('broker_accumulation', w['moderate_accumulation'],
                       f"Moderate accumulation: {accumulation:.1f}% of float")

        price_vs_avg = broker['price_vs_avg_pct']
        if 0 < price_vs_avg < cfg.sweet_spot_max_pct:
            ledger.add('broker_accumulation', 0, f"Sweet spot: {price_vs_avg:.1f}% above broker avg")
            conviction_factors.append('sweet_spot')
        elif price_vs_avg > cfg.extended_pct:
            ledger.add('broker_accumulation', w['extended'],
                       f"{price_vs_avg:.1f}% above broker avg (distribution risk)")
            conviction_factors.append('extended')

    def _volume_price(self, ctx: ScoringContext, ledger: FactorLedger) -> None:
        w = self.weights['volume_price']
        va = ctx.bundle.volume_analysis
        ratio = va.volume_ratio
        cfg = ctx.config.priority_stack
        if va.has_valid_average:
            if ratio > cfg.volume_spike_ratio:
                ledger.add('volume_price', w['unusual_volume_spike'], f"Volume spike: {ratio:.1f}x avg")
            elif ratio > cfg.elevated_volume_ratio:
                ledger.add('volume_price', w['elevated_volume'], f"Elevated volume: {ratio:.1f}x avg")

        if va.volume_dry_up.signal == 'VDU_BREAKOUT':
            ledger.add('volume_price', w['volume_dry_up_breakout'], va.volume_dry_up.description)

        pa = ctx.bundle.price_action
        if pa.compression.detected:
            ledger.add('volume_price', w['price_compression'],
                       f"Price compression: {pa.compression.value:.1f}% range")
        if pa.gap_up_breakout.detected:
            ledger.add('volume_price', w['breakout_gap'], 'Breakout on volume')

    def _foreign_flow(self, ctx: ScoringContext, ledger: FactorLedger) -> None:
        w = self.weights['foreign_flow']
        scoring = ctx.config.scoring
        days = ctx.bundle.foreign_streak.consecutive_days
        strong_days = ctx.config.streak.strong_days
        if days >= strong_days:
            ledger.add('foreign_flow', w['streak_bonus'], f"Foreign buy streak: {days} days")
        elif days <= -strong_days:
            ledger.add('foreign_flow', -w['streak_bonus'], f"Foreign sell streak: {abs(days)} days")

        net = ctx.bundle.foreign_flow.net_value
        if net > scoring.foreign_strong_value:
            ledger.add('foreign_flow', w['strong_net_buy'], f"Foreign inflow: Rp {to_billions(net):.2f}B")
        elif net > scoring.foreign_moderate_value:
            ledger.add('foreign_flow', w['moderate_net_buy'], f"Foreign inflow: Rp {to_billions(net):.2f}B")
        elif net < -scoring.foreign_strong_value:
            ledger.add('foreign_flow', w['strong_net_sell'], f"Foreign outflow: Rp {to_billions(net):.2f}B")

    def _quantitative(self, ctx: ScoringContext, ledger: FactorLedger) -> None:
        w = self.weights['quantitative']
        if ctx.bundle.degraded:
            ledger.add('quantitative', 0, 'No quant data')
            return
        q = ctx.bundle.quantitative
        cfg = ctx.config.priority_stack
        if q.obv.signal == 'BULLISH_DIVERGENCE':
            ledger.add('quantitative', w['obv_divergence'], 'OBV divergence')
        if q.cmf.value > cfg.cmf_threshold:
            ledger.add('quantitative', w['cmf_positive'], f"CMF: {q.cmf.value:.3f}")
        elif q.cmf.value < -cfg.cmf_threshold:
            ledger.add('quantitative', w['cmf_negative'], f"CMF: {q.cmf.value:.3f}")
        if q.mfi.signal == 'BULLISH':
            ledger.add('quantitative', w['mfi_trending_up'], f"MFI trending up: {q.mfi.value:.0f}")
        if 0 < q.vwap.price_vs_vwap_pct < cfg.vwap_reclaim_max_pct:
            ledger.add('quantitative', w['vwap_reclaim'], 'Reclaimed VWAP')

    def _relative_strength(self, ctx: ScoringContext, ledger: FactorLedger) -> None:
        w = self.weights['relative_strength']
        mc = ctx.market_context
        change = ctx.change_pct
        scoring = ctx.config.scoring
        weak_index = mc.index_change_pct is not None and mc.index_change_pct < scoring.weak_index_change_pct
        if weak_index and change > 0:
            ledger.add('relative_strength', w['vs_index_divergence'], 'Outperforming index')
        leading = mc.sector_change_pct is not None and change > mc.sector_change_pct + scoring.sector_lead_pct
        if leading and change > 0:
            ledger.add('relative_strength', w['sector_leadership'], 'Leading sector')

    def extra_metrics(self, ctx, state) -> Dict[str, float]:
        broker = state['broker']
        return {
            'broker_accumulation_pct': round(broker['accumulation_pct'], 4),
            'broker_avg_price': broker['avg_price'],
            'current_vs_avg_price_pct': round(broker['price_vs_avg_pct'], 2),
            'float_size': broker['float_shares'],
            'top3_broker_concentration_pct': round(broker['top3_concentration_pct'], 2),
            'big_dog_net_volume': broker['big_dog_net'],
            'cmf_value': ctx.bundle.quantitative.cmf.value,
            'foreign_streak_days': float(ctx.bundle.foreign_streak.consecutive_days),
        }

    def ideal_setup(self, ctx, state) -> IdealSetup:
        broker = state['broker']
        ownership = ctx.market_context.ownership
        q = ctx.bundle.quantitative
        price_vs_avg = broker['price_vs_avg_pct']
        cfg = ctx.config.priority_stack
        checks = {
            'ownership_stable': ownership is None or ownership.controlling_stake_stable,
            'manageable_float': 0 < broker['float_shares'] < MANAGEABLE_FLOAT_SHARES,
            'broker_accumulating': broker['accumulation_pct'] > cfg.moderate_accumulation_pct,
            'broker_concentrated': broker['top3_concentration_pct'] > cfg.concentrated_check_pct,
            'in_sweet_spot': 0 < price_vs_avg < cfg.sweet_spot_max_pct,
            'not_extended': price_vs_avg < cfg.extended_pct,
            'ongoing_accumulation': broker['big_dog_net'] > 0,
            'obv_positive': q.obv.signal == 'BULLISH_DIVERGENCE',
            'cmf_positive': q.cmf.value > 0,
        }
        passed = sum(1 for ok in checks.values() if ok)
        setup_score = safe_div(passed, len(checks)) * 100

        if setup_score >= cfg.excellent_setup:
            quality, recommendation = 'excellent', 'Excellent setup - High conviction'
        elif setup_score >= cfg.good_setup:
            quality, recommendation = 'good', 'Good setup - Consider sizing'
        elif setup_score >= cfg.fair_setup:
            quality, recommendation = 'fair', 'Fair setup - Monitor'
        else:
            quality, recommendation = 'poor', 'Poor setup - Caution'

        return IdealSetup(
            quality=quality,
            score=int(round(setup_score)),
            checks=checks,
            passed_checks=passed,
            recommendation=recommendation,
        )
