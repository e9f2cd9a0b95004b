"""Tests for the scoring core: bands, ledger, conviction and the score entry point."""
import pytest

from bandarmology import derive_indicators, score
from bandarmology.config import EngineConfig, ScoringConfig
from bandarmology.exceptions import ConfigurationError, InvalidInputError, UnknownPolicyError
from bandarmology.models import (
    BUY,
    HOLD,
    REDUCE,
    SELL,
    SIGNALS,
    STRONG_BUY,
    IndicatorBundle,
)
from bandarmology.policy_conservative import ConservativePolicy
from bandarmology.scoring import (
    CLAMP,
    GATE,
    FactorLedger,
    SignalBands,
    available_policies,
    compute_conviction,
    get_policy,
)

FLAT_BAR = {'open': 1000, 'high': 1000, 'low': 1000, 'close': 1000}


class TestSignalBands:

    def test_every_score_maps_to_one_signal(self):
        bands = ConservativePolicy.bands
        for value in range(-50, 151):
            assert bands.classify(value) in SIGNALS

    def test_conservative_cuts(self):
        bands = ConservativePolicy.bands
        assert bands.classify(70) == STRONG_BUY
        assert bands.classify(69) == BUY
        assert bands.classify(60) == BUY
        assert bands.classify(59) == HOLD
        assert bands.classify(45) == HOLD
        assert bands.classify(44) == REDUCE
        assert bands.classify(35) == REDUCE
        assert bands.classify(34) == SELL
        assert bands.classify(0) == SELL

    def test_non_descending_cuts_rejected(self):
        with pytest.raises(ConfigurationError):
            SignalBands(lower=0, upper=100, cuts=((50, BUY), (60, STRONG_BUY), (0, SELL)))

    def test_gap_below_last_cut_rejected(self):
        with pytest.raises(ConfigurationError):
            SignalBands(lower=0, upper=100, cuts=((60, BUY), (20, SELL)))

    def test_duplicate_signal_rejected(self):
        with pytest.raises(ConfigurationError):
            SignalBands(lower=0, upper=100, cuts=((60, BUY), (30, BUY), (0, SELL)))

    def test_cut_for_unknown_signal(self):
        with pytest.raises(ConfigurationError):
            SignalBands(lower=0, upper=100, cuts=((50, BUY), (0, SELL))).cut_for(STRONG_BUY)


class TestFactorLedger:

    def test_score_is_baseline_plus_deltas(self):
        ledger = FactorLedger(50)
        ledger.add('foreign_flow', 8, 'Foreign buying')
        ledger.add('volume', -6, 'Breakout down')
        assert ledger.score == 52
        assert ledger.texts() == ('Foreign buying', 'Breakout down')

    def test_cap_records_gate_entry(self):
        ledger = FactorLedger(50)
        ledger.add('concentration', 40, 'Concentrated')
        assert ledger.cap(59, 'Needs confirmation') is True
        assert ledger.score == 59
        last = ledger.entries()[-1]
        assert last.category == GATE
        assert last.delta == -31
        assert '(capped at 59)' in last.text

    def test_cap_below_ceiling_is_noop(self):
        ledger = FactorLedger(50)
        assert ledger.cap(59, 'Needs confirmation') is False
        assert len(ledger) == 0

    def test_clamp(self):
        ledger = FactorLedger(50)
        ledger.add('volume', 70, 'Huge')
        ledger.clamp(0, 100)
        assert ledger.score == 100
        assert ledger.entries()[-1].category == CLAMP

    def test_bookkeeping_not_counted_as_bullish(self):
        ledger = FactorLedger(50)
        ledger.add('volume', 5, 'Spike')
        ledger.add(CLAMP, 5, 'Clamp')
        ledger.add('foreign_flow', -5, 'Selling')
        assert ledger.bullish_categories() == {'volume'}


class TestConviction:

    def test_base_from_signal(self):
        assert compute_conviction(SELL, []) == 1
        assert compute_conviction(HOLD, []) == 3
        assert compute_conviction(STRONG_BUY, []) == 5

    def test_boosters_capped_at_five(self):
        boosters = ['high_concentration', 'sweet_spot', 'big_dog_accumulating']
        assert compute_conviction(SELL, boosters) == 4
        assert compute_conviction(BUY, boosters) == 5

    def test_unrelated_factors_do_not_boost(self):
        assert compute_conviction(HOLD, ['extended', 'contra_flow']) == 3


class TestRegistry:

    def test_available_policies(self):
        assert available_policies() == ['conservative', 'legacy', 'priority_stack']

    def test_unknown_policy(self):
        with pytest.raises(UnknownPolicyError) as exc:
            get_policy('yolo')
        assert 'conservative' in str(exc.value)
        assert isinstance(exc.value, KeyError)

    def test_default_policy_from_config(self):
        config = EngineConfig(scoring=ScoringConfig(default_policy='legacy'))
        result = score(FLAT_BAR, IndicatorBundle(symbol='BBCA'), config=config)
        assert result.policy == 'legacy'

    def test_policy_instance_accepted(self):
        result = score(FLAT_BAR, IndicatorBundle(symbol='BBCA'), policy=ConservativePolicy())
        assert result.policy == 'conservative'


class TestScore:

    def test_default_is_conservative(self):
        result = score(FLAT_BAR, IndicatorBundle(symbol='BBCA'))
        assert result.policy == 'conservative'

    def test_invalid_price_bar(self):
        with pytest.raises(InvalidInputError):
            score({'close': -5}, IndicatorBundle(symbol='BBCA'))

    def test_invalid_market_context(self):
        with pytest.raises(InvalidInputError):
            score(FLAT_BAR, IndicatorBundle(symbol='BBCA'),
                  market_context={'ownership': {'controlling_stake_pct': 150}})

    def test_idempotent(self):
        rows = [
            {'code': 'YU', 'buy_volume': 1000, 'buy_value': 1_500_000_000, 'sell_volume': 0, 'sell_value': 0},
            {'code': 'DX', 'buy_volume': 0, 'buy_value': 0, 'sell_volume': 800, 'sell_value': 800_000_000},
        ]
        bar = {'open': 1000, 'high': 1050, 'low': 990, 'close': 1040, 'change_pct': 2.0}
        bundle = derive_indicators('BBCA', rows, [], [], bar)
        for name in available_policies():
            first = score(bar, bundle, market_context={'index_change_pct': -1.0}, policy=name)
            second = score(bar, bundle, market_context={'index_change_pct': -1.0}, policy=name)
            assert first.model_dump_json() == second.model_dump_json()
