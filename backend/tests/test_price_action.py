"""Unit tests for single-bar price-action patterns."""
from bandarmology.config import PriceActionConfig
from bandarmology.models import PriceBar
from bandarmology.price_action import detect_price_action

CFG = PriceActionConfig()


def _bar(open_, high, low, close, change_pct):
    return PriceBar(open=open_, high=high, low=low, close=close, change_pct=change_pct)


def test_compression():
    result = detect_price_action(_bar(1000, 1010, 1000, 1005, 0.5), 1.0, CFG)
    assert result.compression.detected is True
    assert result.range_pct < 2.0
    assert 'compression' in result.detected_patterns()


def test_bear_trap_needs_volume():
    bar = _bar(1000, 1005, 960, 1000, 0.0)
    assert detect_price_action(bar, 1.5, CFG).bear_trap.detected is True
    assert detect_price_action(bar, 1.0, CFG).bear_trap.detected is False


def test_healthy_pullback():
    result = detect_price_action(_bar(1000, 1005, 975, 980, -2.0), 0.5, CFG)
    assert result.healthy_pullback.detected is True
    assert result.healthy_pullback.value == -2.0


def test_heavy_selloff_is_not_a_pullback():
    result = detect_price_action(_bar(1000, 1005, 940, 950, -5.0), 0.5, CFG)
    assert result.healthy_pullback.detected is False


def test_floor_defense():
    result = detect_price_action(_bar(1000, 1015, 990, 1010, 1.0), 1.5, CFG)
    assert result.floor_defense.detected is True


def test_gap_up_breakout():
    # previous close implied by +10% change is 1000, open gaps 5% above it
    result = detect_price_action(_bar(1050, 1110, 1045, 1100, 10.0), 1.5, CFG)
    assert result.gap_up_breakout.detected is True
    assert result.gap_up_breakout.value == 5.0


def test_zero_close_detects_nothing():
    result = detect_price_action(_bar(0, 0, 0, 0, 0.0), 3.0, CFG)
    assert result.detected_patterns() == []
    assert result.range_pct == 0.0
