"""
Quantitative Indicator Calculator

Single-period proxies for MFI, OBV, VWAP and CMF. Every function returns
finite, neutral values for degenerate inputs (zero range, zero volume).
"""
from typing import List

import numpy as np

from .config import QuantConfig
from .models import (
    BrokerActivity,
    CmfReading,
    MfiReading,
    ObvReading,
    PriceBar,
    QuantitativeIndicators,
    VwapReading,
)
from .utils import safe_div


def money_flow_index(change_pct: float, volume_vs_avg_pct: float, cfg: QuantConfig) -> MfiReading:
    """
    MFI proxy: neutral 50, pushed up or down only when volume runs above
    average in the same session as a price move.
    """
    mfi = cfg.mfi_neutral
    if volume_vs_avg_pct > cfg.mfi_volume_trigger_pct and change_pct > 0:
        mfi = min(cfg.mfi_ceiling, cfg.mfi_neutral + volume_vs_avg_pct * 0.5 + change_pct)
    elif volume_vs_avg_pct > cfg.mfi_volume_trigger_pct and change_pct < 0:
        mfi = max(cfg.mfi_floor, cfg.mfi_neutral - volume_vs_avg_pct * 0.5 + change_pct)
    mfi = float(np.clip(mfi, cfg.mfi_floor, cfg.mfi_ceiling))

    if mfi > cfg.mfi_overbought:
        signal = 'OVERBOUGHT'
    elif mfi < cfg.mfi_oversold:
        signal = 'OVERSOLD'
    elif mfi > cfg.mfi_neutral:
        signal = 'BULLISH'
    elif mfi == cfg.mfi_neutral:
        signal = 'NEUTRAL'
    else:
        signal = 'BEARISH'
    return MfiReading(value=round(mfi, 2), signal=signal)


def on_balance_volume(volume: float, change_pct: float, volume_vs_avg_pct: float,
                      cfg: QuantConfig) -> ObvReading:
    """Today's volume signed by price direction, with a simple divergence check."""
    obv = float(np.sign(change_pct)) * volume
    if change_pct < 0 and volume_vs_avg_pct > cfg.obv_divergence_volume_pct:
        return ObvReading(value=obv, signal='BULLISH_DIVERGENCE',
                          description='Price down but volume increasing - Accumulation underway')
    if change_pct > 0 and volume_vs_avg_pct < -cfg.obv_divergence_volume_pct:
        return ObvReading(value=obv, signal='BEARISH_DIVERGENCE',
                          description='Price up but volume declining - Distribution possible')
    return ObvReading(value=obv)


def vwap(activities: List[BrokerActivity], close: float, lot_size: int, cfg: QuantConfig) -> VwapReading:
    """VWAP from broker flow: total value / (total lots * lot_size); close when no volume."""
    total_value = sum(b.buy_value + b.sell_value for b in activities)
    total_lots = sum(b.buy_volume + b.sell_volume for b in activities)
    value = safe_div(total_value, total_lots * lot_size) if total_lots > 0 else close
    if value <= 0:
        value = close

    deviation = safe_div(close - value, value) * 100
    if deviation > cfg.vwap_deadband_pct:
        signal = 'ABOVE_VWAP'
    elif deviation < -cfg.vwap_deadband_pct:
        signal = 'BELOW_VWAP'
    else:
        signal = 'AT_VWAP'
    return VwapReading(value=round(value, 2), price_vs_vwap_pct=round(deviation, 2), signal=signal)


def chaikin_money_flow(bar: PriceBar, cfg: QuantConfig) -> CmfReading:
    """Single-period money-flow multiplier; 0 when high == low."""
    spread = bar.high - bar.low
    cmf = safe_div((bar.close - bar.low) - (bar.high - bar.close), spread)
    if cmf > cfg.cmf_threshold:
        signal = 'BULLISH'
    elif cmf < -cfg.cmf_threshold:
        signal = 'BEARISH'
    else:
        signal = 'NEUTRAL'
    return CmfReading(value=round(cmf, 3), signal=signal)


def compute_quantitative(bar: PriceBar, activities: List[BrokerActivity], volume_vs_avg_pct: float,
                         lot_size: int, cfg: QuantConfig) -> QuantitativeIndicators:
    return QuantitativeIndicators(
        mfi=money_flow_index(bar.change_pct, volume_vs_avg_pct, cfg),
        obv=on_balance_volume(bar.volume, bar.change_pct, volume_vs_avg_pct, cfg),
        vwap=vwap(activities, bar.close, lot_size, cfg),
        cmf=chaikin_money_flow(bar, cfg),
    )
