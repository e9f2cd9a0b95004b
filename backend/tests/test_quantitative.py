"""Unit tests for the single-period quantitative indicators."""
import math

import pytest

from bandarmology.broker_utils import build_broker_activity
from bandarmology.config import QuantConfig
from bandarmology.models import PriceBar, TransactionRow
from bandarmology.quantitative import (
    chaikin_money_flow,
    compute_quantitative,
    money_flow_index,
    on_balance_volume,
    vwap,
)

CFG = QuantConfig()


class TestMoneyFlowIndex:

    def test_flat_is_neutral(self):
        result = money_flow_index(0.0, 100.0, CFG)
        assert result.value == 50.0
        assert result.signal == 'NEUTRAL'

    def test_volume_surge_up_is_capped(self):
        result = money_flow_index(3.0, 100.0, CFG)
        assert result.value == 80.0
        assert result.signal == 'OVERBOUGHT'

    def test_volume_surge_down(self):
        result = money_flow_index(-2.0, 40.0, CFG)
        assert result.value == pytest.approx(28.0)
        assert result.signal == 'OVERSOLD'

    def test_mild_volume_leaves_mfi_neutral(self):
        assert money_flow_index(3.0, 10.0, CFG).value == 50.0


class TestOnBalanceVolume:

    def test_signed_by_price_direction(self):
        assert on_balance_volume(1000, 1.5, 0.0, CFG).value == 1000
        assert on_balance_volume(1000, -1.5, 0.0, CFG).value == -1000
        assert on_balance_volume(1000, 0.0, 0.0, CFG).value == 0

    def test_bullish_divergence(self):
        result = on_balance_volume(1000, -1.0, 20.0, CFG)
        assert result.signal == 'BULLISH_DIVERGENCE'

    def test_bearish_divergence(self):
        result = on_balance_volume(1000, 1.0, -20.0, CFG)
        assert result.signal == 'BEARISH_DIVERGENCE'


class TestVwap:

    def test_lot_size_is_applied(self):
        # 1,000,000 IDR / (10 lots x 100 shares) = 1,000
        activity = build_broker_activity(TransactionRow(
            code='YU', buy_volume=10, buy_value=1_000_000, sell_volume=0, sell_value=0,
        ))
        result = vwap([activity], 1000.0, 100, CFG)
        assert result.value == pytest.approx(1000.0)
        assert result.signal == 'AT_VWAP'

    def test_no_volume_falls_back_to_close(self):
        result = vwap([], 1500.0, 100, CFG)
        assert result.value == 1500.0
        assert result.price_vs_vwap_pct == 0.0

    def test_above_vwap(self):
        activity = build_broker_activity(TransactionRow(
            code='YU', buy_volume=10, buy_value=1_000_000, sell_volume=0, sell_value=0,
        ))
        assert vwap([activity], 1100.0, 100, CFG).signal == 'ABOVE_VWAP'


class TestChaikinMoneyFlow:

    def test_zero_range_is_neutral(self):
        result = chaikin_money_flow(PriceBar(open=100, high=100, low=100, close=100), CFG)
        assert result.value == 0.0
        assert result.signal == 'NEUTRAL'

    def test_close_at_high_is_bullish(self):
        result = chaikin_money_flow(PriceBar(open=100, high=110, low=90, close=110), CFG)
        assert result.value == 1.0
        assert result.signal == 'BULLISH'

    def test_close_at_low_is_bearish(self):
        result = chaikin_money_flow(PriceBar(open=100, high=110, low=90, close=90), CFG)
        assert result.signal == 'BEARISH'


def test_degenerate_inputs_stay_finite():
    bar = PriceBar(open=0, high=0, low=0, close=0, volume=0)
    result = compute_quantitative(bar, [], 0.0, 100, CFG)
    for value in (result.mfi.value, result.obv.value, result.vwap.value, result.cmf.value):
        assert math.isfinite(value)
