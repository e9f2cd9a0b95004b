"""
Conservative scoring policy (default).

Confirmation-gated, asymmetric weighting: one strong factor alone can never
produce a high-confidence signal, and any critical bearish factor caps the
score regardless of how much bullish evidence is present.

Gates, applied in order after all weighted factors:
    1. fewer than `min_bullish_categories` independent bullish categories
       -> cap just below the BUY cut
    2. no tier-1 signal (foreign buy streak, concentration, VDU breakout,
       gap-up breakout) -> cap just below the STRONG_BUY cut
    3. any critical bearish factor -> cap at `critical_bearish_cap`
"""
from typing import Dict, List, Optional

from .models import BUY, HOLD, REDUCE, SELL, STRONG_BUY
from .scoring import (
    FactorLedger,
    ScoringContext,
    ScoringPolicy,
    SignalBands,
    standard_conviction_factors,
)
from .utils import to_billions

WEIGHTS = {
    'foreign_flow': {'strong_buy': 8, 'moderate_buy': 4, 'strong_sell': -10},
    'foreign_streak': {
        'STRONG_BULLISH': 12, 'BULLISH': 8, 'MODERATE_BULLISH': 4,
        'STRONG_BEARISH': -12, 'BEARISH': -8, 'MODERATE_BEARISH': -4,
    },
    'broker_flow': {'accumulating': 8, 'distributing': -10},
    'cost_basis': {'VALUE': 5, 'SWEET_SPOT': 3, 'DANGER': -8},
    'volume_spike': {'stealth': 6, 'breakout_up': 4, 'breakout_down': -6},
    'volume_dry_up': {'VDU_BREAKOUT': 10, 'VDU_ACCUMULATING': 4},
    'bid_ask': {'STEALTH_ACCUMULATION': 6, 'HIDDEN_SUPPORT': 4, 'DISTRIBUTION': -8},
    'concentration': {'HIGH_CONCENTRATION': 10, 'COORDINATED_BUYING': 10, 'MODERATE_CONCENTRATION': 4},
    'price_action': {
        'compression': 3, 'bear_trap': 6, 'healthy_pullback': 3,
        'floor_defense': 5, 'gap_up_breakout': 8,
    },
    'quantitative': {'cmf_bullish': 2, 'cmf_bearish': -2, 'obv_bullish': 3, 'obv_bearish': -3},
    'relative_strength': {'outperform_index': 3},
}

TIER1_CONCENTRATION = ('HIGH_CONCENTRATION', 'COORDINATED_BUYING')

class ConservativePolicy(ScoringPolicy):
    name = 'conservative'
    description = 'Confirmation-gated weights with critical bearish caps'
    bands = SignalBands(
        lower=0,
        upper=100,
        cuts=((70, STRONG_BUY), (60, BUY), (45, HOLD), (35, REDUCE), (0, SELL)),
    )

    def __init__(self, weights: Optional[Dict[str, Dict[str, int]]] = None):
        self.weights = {group: dict(table) for group, table in WEIGHTS.items()}
        for group, table in (weights or {}).items():
            self.weights.setdefault(group, {}).update(table)

    def apply(self, ctx: ScoringContext, ledger: FactorLedger, conviction_factors: List[str]):
        critical = []
        tier1 = []

        critical += self._foreign(ctx, ledger, tier1)
        critical += self._broker_flow(ctx, ledger)
        self._cost_basis(ctx, ledger)
        critical += self._volume(ctx, ledger, tier1)
        self._concentration(ctx, ledger, tier1)
        self._price_action(ctx, ledger, tier1)
        self._quantitative(ctx, ledger)
        self._relative_strength(ctx, ledger)

        scoring = ctx.config.scoring
        bullish = ledger.bullish_categories()
        if len(bullish) < scoring.min_bullish_categories:
            ledger.cap(self.bands.cut_for(BUY) - 1,
                       f"Only {len(bullish)} independent bullish factor(s), confirmation required")
        if not tier1:
            ledger.cap(self.bands.cut_for(STRONG_BUY) - 1, "No tier-1 signal present")
        if critical:
            ledger.cap(scoring.critical_bearish_cap, f"Critical bearish factor: {', '.join(critical)}")

        conviction_factors.extend(standard_conviction_factors(ctx))
        return {'critical': critical, 'tier1': tier1, 'bullish_categories': sorted(bullish)}

    def extra_metrics(self, ctx, state) -> Dict[str, float]:
        return {
            'bullish_categories': float(len(state.get('bullish_categories', []))),
            'tier1_signals': float(len(state.get('tier1', []))),
            'critical_factors': float(len(state.get('critical', []))),
        }

    def _foreign(self, ctx: ScoringContext, ledger: FactorLedger, tier1: List[str]) -> List[str]:
        w = self.weights['foreign_flow']
        scoring = ctx.config.scoring
        critical = []

        net = ctx.bundle.foreign_flow.net_value
        if net > scoring.foreign_strong_value:
            ledger.add('foreign_flow', w['strong_buy'], f"Foreign net buy Rp {to_billions(net):.2f}B")
        elif net > scoring.foreign_moderate_value:
            ledger.add('foreign_flow', w['moderate_buy'], f"Foreign net buy Rp {to_billions(net):.2f}B")
        elif net < -scoring.foreign_strong_value:
            ledger.add('foreign_flow', w['strong_sell'], f"Foreign net sell Rp {abs(to_billions(net)):.2f}B")
        if net <= -scoring.foreign_exodus_value:
            critical.append('foreign net sell')

        streak = ctx.bundle.foreign_streak
        delta = self.weights['foreign_streak'].get(streak.signal)
        if streak.detected and delta:
            ledger.add('foreign_flow', delta, streak.description)
        days = streak.consecutive_days
        if days >= ctx.config.streak.moderate_days:
            tier1.append('foreign buy streak')
        if days <= -ctx.config.streak.strong_days:
            critical.append('foreign sell streak')
        return critical

    def _broker_flow(self, ctx: ScoringContext, ledger: FactorLedger) -> List[str]:
        w = self.weights['broker_flow']
        threshold = ctx.config.scoring.top_broker_value
        top3 = ctx.top3_net_value
        if top3 > threshold:
            ledger.add('broker_flow', w['accumulating'], f"Top 3 brokers accumulating Rp {to_billions(top3):.1f}B")
        elif top3 < -threshold:
            ledger.add('broker_flow', w['distributing'],
                       f"Top 3 brokers distributing Rp {abs(to_billions(top3)):.1f}B")
            return ['top broker distribution']
        return []

    def _cost_basis(self, ctx: ScoringContext, ledger: FactorLedger) -> None:
        cb = ctx.cost_basis
        delta = self.weights['cost_basis'].get(cb.zone)
        if not delta:
            return
        if cb.zone == 'VALUE':
            text = f"Price {abs(cb.premium_pct):.1f}% below broker cost - value zone"
        elif cb.zone == 'SWEET_SPOT':
            text = f"Sweet spot: {cb.premium_pct:.1f}% above broker cost"
        else:
            text = f"Danger zone: {cb.premium_pct:.1f}% above broker cost, distribution risk"
        ledger.add('cost_basis', delta, text)

    def _volume(self, ctx: ScoringContext, ledger: FactorLedger, tier1: List[str]) -> List[str]:
        va = ctx.bundle.volume_analysis
        critical = []

        spike = va.volume_spike
        w = self.weights['volume_spike']
        if spike.signal == 'STEALTH_ACCUMULATION':
            ledger.add('volume', w['stealth'], f"Stealth accumulation: {spike.ratio}x volume")
        elif spike.signal == 'BREAKOUT':
            if ctx.change_pct > 0:
                ledger.add('volume', w['breakout_up'], f"Volume breakout {spike.ratio}x with price up")
            elif ctx.change_pct < 0:
                ledger.add('volume', w['breakout_down'], f"Volume breakout {spike.ratio}x with price down")

        vdu = va.volume_dry_up
        delta = self.weights['volume_dry_up'].get(vdu.signal)
        if vdu.detected and delta:
            ledger.add('volume', delta, f"{vdu.description} ({vdu.confidence:.0f}% confidence)")
        if vdu.signal == 'VDU_BREAKOUT':
            tier1.append('VDU breakout')

        bai = va.bid_ask_imbalance
        delta = self.weights['bid_ask'].get(bai.signal)
        if bai.detected and delta:
            ledger.add('order_flow', delta, bai.description)
        heavy = va.has_valid_average and va.volume_ratio >= ctx.config.scoring.distribution_volume_ratio
        if bai.signal == 'DISTRIBUTION' and heavy:
            critical.append('distribution on heavy volume')
        return critical

    def _concentration(self, ctx: ScoringContext, ledger: FactorLedger, tier1: List[str]) -> None:
        bc = ctx.bundle.broker_concentration
        delta = self.weights['concentration'].get(bc.signal)
        if bc.detected and delta:
            ledger.add('concentration', delta, bc.description)
        if bc.signal in TIER1_CONCENTRATION:
            tier1.append('broker concentration')

    def _price_action(self, ctx: ScoringContext, ledger: FactorLedger, tier1: List[str]) -> None:
        pa = ctx.bundle.price_action
        w = self.weights['price_action']
        for pattern in pa.detected_patterns():
            ledger.add('price_action', w.get(pattern, 0), getattr(pa, pattern).description)
        if pa.gap_up_breakout.detected:
            tier1.append('gap-up breakout')

    def _quantitative(self, ctx: ScoringContext, ledger: FactorLedger) -> None:
        q = ctx.bundle.quantitative
        w = self.weights['quantitative']
        if q.cmf.signal == 'BULLISH':
            ledger.add('quantitative', w['cmf_bullish'], f"CMF {q.cmf.value:.3f} - buying pressure")
        elif q.cmf.signal == 'BEARISH':
            ledger.add('quantitative', w['cmf_bearish'], f"CMF {q.cmf.value:.3f} - selling pressure")
        if q.obv.signal == 'BULLISH_DIVERGENCE':
            ledger.add('quantitative', w['obv_bullish'], q.obv.description)
        elif q.obv.signal == 'BEARISH_DIVERGENCE':
            ledger.add('quantitative', w['obv_bearish'], q.obv.description)

    def _relative_strength(self, ctx: ScoringContext, ledger: FactorLedger) -> None:
        index_change = ctx.market_context.index_change_pct
        weak_index = ctx.config.scoring.weak_index_change_pct
        if index_change is not None and index_change < weak_index and ctx.change_pct > 0:
            ledger.add('relative_strength', self.weights['relative_strength']['outperform_index'],
                       f"Outperforming index ({ctx.change_pct:+.1f}% vs {index_change:+.1f}%)")
