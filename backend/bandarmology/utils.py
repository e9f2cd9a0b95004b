"""
Numeric and formatting helpers shared by the deriver, scoring and narrative.

Every ratio in the engine goes through safe_div so a zero or non-finite
denominator yields a defined value instead of NaN/Infinity.
"""
import math
from typing import Optional

from .config import BILLION


def safe_float(val) -> float:
    """Safely convert a value to float, returning 0.0 on failure."""
    if val is None:
        return 0.0
    try:
        result = float(val)
    except (ValueError, TypeError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning `default` for a zero denominator or a non-finite result."""
    if not denominator:
        return default
    result = numerator / denominator
    if not math.isfinite(result):
        return default
    return result


def pct_change(current: float, reference: float) -> float:
    """Percentage difference of current vs reference; 0 when reference is 0."""
    return safe_div(current - reference, reference) * 100


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def to_billions(value: float) -> float:
    return safe_float(value) / BILLION


def format_billions(value: float, signed: bool = True, digits: int = 2) -> str:
    """Format an IDR amount as e.g. '+1.25B'."""
    billions = to_billions(value)
    sign = '+' if signed and billions > 0 else ''
    return f"{sign}{billions:.{digits}f}B"


def format_rupiah(value: Optional[float]) -> str:
    """Format a price as 'Rp 10,000' (floored, thousands separators)."""
    if value is None:
        return "Rp N/A"
    return f"Rp {math.floor(safe_float(value)):,}"


def format_pct(value: float, digits: int = 1) -> str:
    sign = '+' if value > 0 else ''
    return f"{sign}{value:.{digits}f}%"
