"""Tests for IndicatorDeriver: bundle construction and the degraded path."""
import datetime

import numpy as np
import pytest

from bandarmology import derive_indicators
from bandarmology.exceptions import InvalidInputError
from bandarmology.indicator_deriver import IndicatorDeriver

B = 1_000_000_000


@pytest.fixture
def price_bar():
    return {'open': 1040, 'high': 1060, 'low': 1030, 'close': 1050, 'volume': 2000,
            'change_pct': 1.0, 'date': '2024-04-10'}


@pytest.fixture
def rows():
    return [
        {'code': 'YU', 'buy_volume': 1000, 'buy_value': 1 * B, 'sell_volume': 0, 'sell_value': 0},
        {'code': 'DX', 'buy_volume': 0, 'buy_value': 0, 'sell_volume': 1000, 'sell_value': 105_000_000},
    ]


def _volume_history(n=10, volume=1000):
    return [{'date': f"2024-04-{day:02d}", 'total_volume': volume} for day in range(1, n + 1)]


def _foreign_history(*values):
    return [{'date': f"2024-04-{day:02d}", 'foreign_net_value': v} for day, v in enumerate(values, start=1)]


class TestDerive:

    def test_builds_full_bundle(self, rows, price_bar):
        bundle = derive_indicators('bbca', rows, _volume_history(), _foreign_history(B, B, B), price_bar)

        assert bundle.symbol == 'BBCA'
        assert bundle.date == datetime.date(2024, 4, 10)
        assert bundle.degraded is False
        assert bundle.foreign_flow.net_value == 1 * B
        assert bundle.foreign_flow.buy_brokers == ('YU',)
        assert [b.code for b in bundle.broker_summary] == ['YU', 'DX']
        assert bundle.totals.buy_volume == 1000
        assert bundle.volume_analysis.total_volume == 2000
        assert bundle.volume_analysis.volume_ratio == pytest.approx(2.0)
        assert bundle.foreign_streak.signal == 'BULLISH'
        assert bundle.queue_pressure == 0

    def test_average_price_in_rupiah_per_share(self, rows, price_bar):
        bundle = derive_indicators('BBCA', rows, [], [], price_bar)
        yu = bundle.broker_summary[0]
        assert yu.avg_buy_price == pytest.approx(10_000.0)

    def test_identical_inputs_identical_bundles(self, rows, price_bar):
        first = derive_indicators('BBCA', rows, _volume_history(), _foreign_history(B, -B), price_bar)
        second = derive_indicators('BBCA', rows, _volume_history(), _foreign_history(B, -B), price_bar)
        assert first.model_dump_json() == second.model_dump_json()

    def test_sid_only_with_generator(self, rows, price_bar):
        plain = derive_indicators('BBCA', rows, [], [], price_bar)
        seeded = derive_indicators('BBCA', rows, [], [], price_bar, rng=np.random.default_rng(1))
        assert plain.sid.count == 0
        assert seeded.sid.count > 0

    def test_history_across_month_end_in_any_order(self, rows, price_bar):
        flows = [
            {'date': '2024-04-01', 'foreign_net_value': B},
            {'date': '2024-03-28', 'foreign_net_value': -B},
            {'date': '2024-04-02', 'foreign_net_value': B},
            {'date': '2024-03-29', 'foreign_net_value': -B},
        ]
        bundle = derive_indicators('BBCA', rows, [], flows, price_bar)
        assert bundle.foreign_streak.consecutive_days == 2
        assert bundle.foreign_streak.signal == 'MODERATE_BULLISH'

    def test_broker_history_feeds_concentration(self, rows, price_bar):
        history = [{'date': f"2024-04-{d:02d}", 'code': 'YU', 'net_value': B} for d in range(1, 6)]
        bundle = derive_indicators('BBCA', rows, [], [], price_bar, broker_history=history)
        assert bundle.broker_concentration.signal == 'HIGH_CONCENTRATION'


class TestDegraded:

    def test_empty_rows_give_degraded_bundle(self, price_bar):
        bundle = derive_indicators('BBCA', [], _volume_history(), [], price_bar)
        assert bundle.degraded is True
        assert bundle.foreign_flow.net_value == 0
        assert bundle.broker_summary == ()
        assert bundle.queue_pressure == 50
        assert bundle.quantitative.vwap.value == 1050
        assert bundle.volume_analysis.volume_ratio == 1.0

    def test_internal_failure_falls_back(self, rows, price_bar, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("pattern engine exploded")

        monkeypatch.setattr("bandarmology.indicator_deriver.detect_price_action", _boom)
        bundle = IndicatorDeriver().derive('BBCA', rows, [], [], price_bar)
        assert bundle.degraded is True
        assert bundle.symbol == 'BBCA'


class TestValidation:

    def test_malformed_row_raises(self, price_bar):
        bad = [{'code': 'YU', 'buy_volume': 'lots', 'buy_value': 1, 'sell_volume': 0, 'sell_value': 0}]
        with pytest.raises(InvalidInputError):
            derive_indicators('BBCA', bad, [], [], price_bar)

    def test_blank_symbol_raises(self, rows, price_bar):
        with pytest.raises(InvalidInputError):
            derive_indicators('  ', rows, [], [], price_bar)

    def test_missing_price_bar_fields_raise(self, rows):
        with pytest.raises(InvalidInputError):
            derive_indicators('BBCA', rows, [], [], {'close': 1000})

    def test_unpadded_history_dates_raise(self, rows, price_bar):
        flows = [{'date': '2024-4-9', 'foreign_net_value': B}, {'date': '2024-4-10', 'foreign_net_value': B}]
        with pytest.raises(InvalidInputError):
            derive_indicators('BBCA', rows, [], flows, price_bar)

    def test_inconsistent_price_bar_raises(self, rows):
        with pytest.raises(InvalidInputError):
            derive_indicators('BBCA', rows, [], [], {'open': 1000, 'high': 990, 'low': 1010, 'close': 1000})
