"""
Price Action Module

Single-day candle patterns evaluated against the volume-ratio context.
Each detector is independent; several may fire on the same bar.
"""
from .config import PriceActionConfig
from .models import PatternHit, PriceAction, PriceBar
from .utils import safe_div


def detect_compression(bar: PriceBar, range_pct: float, cfg: PriceActionConfig) -> PatternHit:
    if range_pct <= cfg.compression_range_pct and abs(bar.change_pct) <= cfg.compression_change_pct:
        return PatternHit(
            detected=True,
            signal='COMPRESSION',
            value=round(range_pct, 2),
            description=f"Tight range: {range_pct:.1f}% - Bandar suppressing price during accumulation",
        )
    return PatternHit(value=round(range_pct, 2), description='Normal price movement')


def detect_bear_trap(bar: PriceBar, volume_ratio: float, cfg: PriceActionConfig) -> PatternHit:
    """False breakdown: low pierces below the open, then price snaps back on volume."""
    breached = bar.low < bar.open * cfg.bear_trap_breach
    recovered = bar.close > bar.low * cfg.bear_trap_recovery and bar.change_pct > cfg.bear_trap_min_change_pct
    if breached and recovered and volume_ratio >= cfg.volume_confirmation_ratio:
        return PatternHit(
            detected=True,
            signal='BEAR_TRAP',
            value=bar.low,
            description=(f"Bear trap: Price broke support to {bar.low:,.0f} then snapped back to "
                         f"{bar.close:,.0f} on {volume_ratio:.1f}x volume - Weak hands shaken out"),
        )
    return PatternHit(description='No breakdown pattern')


def detect_healthy_pullback(bar: PriceBar, volume_ratio: float, cfg: PriceActionConfig) -> PatternHit:
    if cfg.pullback_min_change_pct < bar.change_pct < 0 and volume_ratio < cfg.pullback_volume_ratio:
        return PatternHit(
            detected=True,
            signal='HEALTHY_PULLBACK',
            value=bar.change_pct,
            description=(f"Healthy pullback: {bar.change_pct:.1f}% on {volume_ratio:.1f}x volume "
                         f"(below avg) - Bandar not selling, just lack of buying"),
        )
    return PatternHit(description='No correction pattern detected')


def detect_floor_defense(bar: PriceBar, volume_ratio: float, cfg: PriceActionConfig) -> PatternHit:
    bounce_pct = safe_div(bar.close - bar.low, bar.low) * 100
    held = bounce_pct > cfg.floor_bounce_pct and bar.low > bar.open * cfg.floor_hold
    if held and volume_ratio >= cfg.volume_confirmation_ratio:
        return PatternHit(
            detected=True,
            signal='FLOOR_DEFENSE',
            value=bar.low,
            description=(f"Floor defended at Rp {bar.low:,.0f}: Absorbed selling and bounced "
                         f"{bounce_pct:.1f}% on volume"),
        )
    return PatternHit(description='No floor defense detected')


def detect_gap_up_breakout(bar: PriceBar, volume_ratio: float, cfg: PriceActionConfig) -> PatternHit:
    """Gap measured against the previous close implied by today's change."""
    previous_close = safe_div(bar.close, 1 + bar.change_pct / 100)
    gap_pct = safe_div(bar.open - previous_close, previous_close) * 100
    sustained = bar.close > bar.open and bar.change_pct > cfg.gap_min_change_pct
    if gap_pct > cfg.gap_min_pct and sustained and volume_ratio >= cfg.volume_confirmation_ratio:
        return PatternHit(
            detected=True,
            signal='GAP_UP_BREAKOUT',
            value=round(gap_pct, 2),
            description=(f"Gap up breakout: +{gap_pct:.1f}% open gap sustained with "
                         f"{volume_ratio:.1f}x volume - Accumulation phase complete"),
        )
    return PatternHit(description='No gap up detected')


def detect_price_action(bar: PriceBar, volume_ratio: float, cfg: PriceActionConfig) -> PriceAction:
    """
    Run every price-action detector on one bar.

    Args:
        bar: Today's OHLCV bar.
        volume_ratio: Today's lots vs the rolling average (1.0 when unknown).
        cfg: Pattern thresholds.

    Returns:
        PriceAction with one PatternHit per detector.
    """
    range_pct = safe_div(bar.high - bar.low, bar.close) * 100
    if bar.close <= 0:
        return PriceAction(change_pct=bar.change_pct, range_pct=0.0)

    return PriceAction(
        change_pct=bar.change_pct,
        range_pct=round(range_pct, 2),
        compression=detect_compression(bar, range_pct, cfg),
        bear_trap=detect_bear_trap(bar, volume_ratio, cfg),
        healthy_pullback=detect_healthy_pullback(bar, volume_ratio, cfg),
        floor_defense=detect_floor_defense(bar, volume_ratio, cfg),
        gap_up_breakout=detect_gap_up_breakout(bar, volume_ratio, cfg),
    )
