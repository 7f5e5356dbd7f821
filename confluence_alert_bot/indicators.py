from __future__ import annotations
from typing import List, Optional

from .models import Candle


def body(c: Candle) -> float:
    return abs(c.close - c.open)


def candle_range(c: Candle) -> float:
    """High-low range; a flat bar counts as 1 so ratio tests stay defined."""
    return (c.high - c.low) or 1.0


def upper_wick(c: Candle) -> float:
    return c.high - max(c.open, c.close)


def lower_wick(c: Candle) -> float:
    return min(c.open, c.close) - c.low


def mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / float(len(values))


def pct_change(new: float, old: float) -> Optional[float]:
    if old == 0:
        return None
    return (new - old) / old * 100.0
