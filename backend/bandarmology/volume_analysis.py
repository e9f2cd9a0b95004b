"""
Volume Analysis Module

Volume spike, volume dry-up (VDU) and bid/ask imbalance detection.
Volumes are compared in lots: today's buy+sell lots from the broker rows
against the rolling average of the historical daily totals.
"""
import logging
from typing import List, Optional, Tuple

import pandas as pd

from .config import BidAskConfig, VolumeConfig
from .models import BidAskImbalance, VolumeAnalysis, VolumeDryUp, VolumePoint, VolumeSpike
from .utils import safe_div

logger = logging.getLogger(__name__)

INSUFFICIENT_DATA = 'INSUFFICIENT_DATA'


def volume_frame(history: List[VolumePoint]) -> pd.DataFrame:
    """Build an oldest-first DataFrame of daily total volume."""
    if not history:
        return pd.DataFrame(columns=['date', 'total_volume'])
    df = pd.DataFrame([{'date': p.date, 'total_volume': p.total_volume} for p in history])
    return df.sort_values('date', kind='mergesort').reset_index(drop=True)


def rolling_average(df: pd.DataFrame, window: int, min_samples: int) -> Tuple[Optional[float], int]:
    """
    Average of the most recent `window` points.

    Returns:
        (average, sample_count) - average is None when fewer than
        `min_samples` points are available.
    """
    recent = df['total_volume'].tail(window)
    count = int(len(recent))
    if count < min_samples:
        return None, count
    avg = recent.mean()
    return (float(avg) if not pd.isna(avg) else 0.0), count


def detect_volume_spike(ratio: float, cfg: VolumeConfig, valid: bool = True) -> VolumeSpike:
    if not valid:
        return VolumeSpike(signal=INSUFFICIENT_DATA, ratio=1.0,
                           description='Not enough volume history for a reliable average')
    shown = round(ratio, 2)
    if ratio >= cfg.breakout_min:
        return VolumeSpike(
            detected=True,
            signal='BREAKOUT',
            severity='EXTREME',
            ratio=shown,
            description=f"Volume {ratio:.1f}x above avg - News-driven or distribution",
        )
    if ratio >= cfg.stealth_min:
        return VolumeSpike(
            detected=True,
            signal='STEALTH_ACCUMULATION',
            severity='HIGH' if ratio >= cfg.stealth_high else 'MODERATE',
            ratio=shown,
            description=f"Volume {ratio:.1f}x above avg - Possible bandar accumulation",
        )
    return VolumeSpike(ratio=shown, description='Volume within normal range')


def detect_volume_dry_up(df: pd.DataFrame, average: Optional[float], ratio: float,
                         cfg: VolumeConfig) -> VolumeDryUp:
    """
    Count recent days trading below `dry_up_factor` x the rolling average.
    A dry-up phase followed by a volume surge is the VDU breakout pattern.
    """
    if average is None or average <= 0:
        return VolumeDryUp(signal=INSUFFICIENT_DATA, description='Not enough volume history')

    recent = df['total_volume'].tail(cfg.dry_up_window)
    dry_up_days = int((recent < average * cfg.dry_up_factor).sum())

    if dry_up_days < cfg.dry_up_min_days:
        return VolumeDryUp(dry_up_days=dry_up_days, description='No dry-up phase')

    if ratio >= cfg.vdu_breakout_ratio:
        confidence = min(cfg.vdu_breakout_confidence_cap, 50 + dry_up_days * 15 + ratio * 10)
        return VolumeDryUp(
            detected=True,
            signal='VDU_BREAKOUT',
            severity='HIGH',
            dry_up_days=dry_up_days,
            confidence=round(confidence, 1),
            description=f"Dry-up ({dry_up_days} days) + {ratio:.1f}x surge - accumulation complete",
        )

    confidence = min(cfg.vdu_accumulating_confidence_cap, 30 + dry_up_days * 15)
    return VolumeDryUp(
        detected=True,
        signal='VDU_ACCUMULATING',
        severity='MODERATE',
        dry_up_days=dry_up_days,
        confidence=round(confidence, 1),
        description=f"Dry-up phase ({dry_up_days} days) - quiet accumulation",
    )


def bid_ask_ratio(buy_lots: float, sell_lots: float, cap: float) -> float:
    """Buy/sell lot ratio. No volume on either side is neutral (1.0); no sellers hits the cap."""
    if sell_lots <= 0:
        return 1.0 if buy_lots <= 0 else cap
    return min(cap, safe_div(buy_lots, sell_lots, default=1.0))


def detect_bid_ask_imbalance(buy_lots: float, sell_lots: float, change_pct: float,
                             cfg: BidAskConfig) -> BidAskImbalance:
    """
    Accumulation above `threshold`, distribution below 1/threshold. The two
    branches are exclusive since threshold > 1.
    """
    ratio = bid_ask_ratio(buy_lots, sell_lots, cfg.ratio_cap)
    buy_pressure = int(round((ratio - 1) * 100))

    if ratio > cfg.threshold and change_pct <= cfg.flat_price_pct:
        if change_pct < cfg.stealth_price_drop_pct and ratio > cfg.stealth_ratio:
            return BidAskImbalance(
                detected=True,
                signal='STEALTH_ACCUMULATION',
                severity='HIGH',
                ratio=round(ratio, 2),
                buy_pressure=buy_pressure,
                description=(f"Aggressive buying ({ratio:.1f}x bid/ask) despite "
                             f"{change_pct:.1f}% price drop - Bandar absorbing"),
            )
        if abs(change_pct) <= cfg.flat_price_pct:
            return BidAskImbalance(
                detected=True,
                signal='HIDDEN_SUPPORT',
                severity='HIGH' if ratio > cfg.high_severity_ratio else 'MODERATE',
                ratio=round(ratio, 2),
                buy_pressure=buy_pressure,
                description=f"Bid support ({ratio:.1f}x) keeping price stable - Floor defense",
            )
    elif ratio < 1 / cfg.threshold and change_pct >= -cfg.flat_price_pct:
        return BidAskImbalance(
            detected=True,
            signal='DISTRIBUTION',
            severity='HIGH',
            ratio=round(ratio, 2),
            buy_pressure=buy_pressure,
            description=f"Selling pressure ({safe_div(1, ratio):.1f}x ask/bid) - Distribution",
        )

    return BidAskImbalance(ratio=round(ratio, 2), buy_pressure=buy_pressure)


def analyze_volume(buy_lots: float, sell_lots: float, history: List[VolumePoint],
                   change_pct: float, volume_cfg: VolumeConfig,
                   bid_ask_cfg: BidAskConfig) -> VolumeAnalysis:
    """Build the volume section of the indicator bundle."""
    total = buy_lots + sell_lots
    df = volume_frame(history)
    average, count = rolling_average(df, volume_cfg.window, volume_cfg.min_samples)
    valid = average is not None and average > 0

    if valid:
        ratio = safe_div(total, average)
        vs_avg = (ratio - 1) * 100
    else:
        logger.debug(f"Volume average unavailable ({count} samples), using neutral ratio")
        ratio = 1.0
        vs_avg = 0.0

    if average is None:
        average = float(df['total_volume'].mean()) if count else 0.0

    return VolumeAnalysis(
        total_volume=total,
        average_volume=round(average, 2),
        volume_ratio=ratio,
        volume_vs_avg_pct=round(vs_avg, 2),
        sample_count=count,
        has_valid_average=valid,
        volume_spike=detect_volume_spike(ratio, volume_cfg, valid),
        volume_dry_up=detect_volume_dry_up(df, average if valid else None, ratio, volume_cfg),
        bid_ask_imbalance=detect_bid_ask_imbalance(buy_lots, sell_lots, change_pct, bid_ask_cfg),
    )
