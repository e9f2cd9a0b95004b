"""
Legacy flat-weight scoring policy.

Plain additive weights, no confirmation gating, clamped to [20, 80].
Kept as a baseline for regression comparisons against the other policies.
"""
from typing import List

from .models import BUY, HOLD, REDUCE
from .scoring import FactorLedger, ScoringContext, ScoringPolicy, SignalBands, standard_conviction_factors

WEIGHTS = {
    'foreign_flow': 15,
    'top_brokers': 10,
    'below_cost': 5,
    'volume_confirmation': 5,
    'volume_spike': {'STEALTH_ACCUMULATION': 12, 'BREAKOUT': 8},
    'volume_dry_up': {'VDU_BREAKOUT': 15, 'VDU_ACCUMULATING': 8},
    'bid_ask': {'STEALTH_ACCUMULATION': 12, 'HIDDEN_SUPPORT': 8, 'DISTRIBUTION': -12},
    'foreign_streak': {
        'STRONG_BULLISH': 18, 'BULLISH': 12, 'MODERATE_BULLISH': 6,
        'STRONG_BEARISH': -18, 'BEARISH': -12,
    },
    'concentration': {'HIGH_CONCENTRATION': 15, 'COORDINATED_BUYING': 15, 'MODERATE_CONCENTRATION': 6},
    'price_action': {
        'compression': 5, 'bear_trap': 12, 'healthy_pullback': 8,
        'floor_defense': 10, 'gap_up_breakout': 15,
    },
}


class LegacyPolicy(ScoringPolicy):
    name = 'legacy'
    description = 'Flat additive weights without gating (baseline only)'
    bands = SignalBands(lower=20, upper=80, cuts=((65, BUY), (50, HOLD), (20, REDUCE)))

    def apply(self, ctx: ScoringContext, ledger: FactorLedger, conviction_factors: List[str]):
        bundle = ctx.bundle
        scoring = ctx.config.scoring

        net = bundle.foreign_flow.net_value
        if net > scoring.foreign_strong_value:
            ledger.add('foreign_flow', WEIGHTS['foreign_flow'], 'Foreign buying >1B')
        elif net < -scoring.foreign_strong_value:
            ledger.add('foreign_flow', -WEIGHTS['foreign_flow'], 'Foreign selling >1B')

        top3 = ctx.top3_net_value
        if top3 > scoring.top_broker_value:
            ledger.add('broker_flow', WEIGHTS['top_brokers'], 'Top brokers accumulating')
        elif top3 < -scoring.top_broker_value:
            ledger.add('broker_flow', -WEIGHTS['top_brokers'], 'Top brokers distributing')

        cb = ctx.cost_basis
        if cb.avg_cost > 0 and cb.premium_pct < ctx.config.cost_basis.value_max:
            ledger.add('cost_basis', WEIGHTS['below_cost'], 'Below broker cost')

        va = bundle.volume_analysis
        if va.has_valid_average and va.volume_ratio > 2 and ctx.change_pct > 0:
            ledger.add('volume', WEIGHTS['volume_confirmation'], 'Volume spike + price up')

        spike = va.volume_spike
        delta = WEIGHTS['volume_spike'].get(spike.signal)
        if spike.detected and delta:
            label = 'Stealth accumulation' if spike.signal == 'STEALTH_ACCUMULATION' else 'Volume breakout'
            ledger.add('volume', delta, f"{label}: {spike.ratio}x volume")

        vdu = va.volume_dry_up
        delta = WEIGHTS['volume_dry_up'].get(vdu.signal)
        if vdu.detected and delta:
            ledger.add('volume', delta, vdu.description)

        bai = va.bid_ask_imbalance
        delta = WEIGHTS['bid_ask'].get(bai.signal)
        if bai.detected and delta:
            ledger.add('order_flow', delta, bai.description)

        fs = bundle.foreign_streak
        delta = WEIGHTS['foreign_streak'].get(fs.signal)
        if fs.detected and delta:
            ledger.add('foreign_flow', delta, fs.description)

        bc = bundle.broker_concentration
        delta = WEIGHTS['concentration'].get(bc.signal)
        if bc.detected and delta:
            ledger.add('concentration', delta, bc.description)

        pa = bundle.price_action
        for pattern in pa.detected_patterns():
            ledger.add('price_action', WEIGHTS['price_action'][pattern], getattr(pa, pattern).description)

        conviction_factors.extend(standard_conviction_factors(ctx))
