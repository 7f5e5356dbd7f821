from __future__ import annotations

from typing import List, Optional

from .indicators import body, candle_range, lower_wick, mean, upper_wick
from .models import (
    BEARISH_ENGULFING,
    BULLISH_ENGULFING,
    DOWN,
    HAMMER,
    SHOOTING_STAR,
    UP,
    BreakOfStructure,
    Candle,
    FairValueGap,
    LiquidityZone,
    OrderBlocks,
)


def detect_bos(candles: List[Candle], lookback: int = 20) -> Optional[BreakOfStructure]:
    """Close of the newest bar beyond the high/low of the prior bars in the window."""
    if lookback < 2 or len(candles) < lookback:
        return None
    window = candles[-lookback:]
    last = window[-1]
    prior = window[:-1]
    recent_high = max(c.high for c in prior)
    recent_low = min(c.low for c in prior)
    if last.close > recent_high:
        return BreakOfStructure(direction=UP, price=last.close)
    if last.close < recent_low:
        return BreakOfStructure(direction=DOWN, price=last.close)
    return None


def detect_order_blocks(candles: List[Candle], window: int = 5, body_ratio: float = 0.6) -> OrderBlocks:
    """Large-body bars in the `window` bars before the newest one.

    Bars are visited oldest to newest, so the nearest qualifying bar of each
    polarity wins.
    """
    if window <= 0 or len(candles) < window + 1:
        return OrderBlocks()
    bullish: Optional[Candle] = None
    bearish: Optional[Candle] = None
    for c in candles[-(window + 1):-1]:
        if body(c) > candle_range(c) * body_ratio:
            if c.close > c.open:
                bullish = c
            else:
                bearish = c
    return OrderBlocks(bullish=bullish, bearish=bearish)


def detect_fvg(candles: List[Candle]) -> Optional[FairValueGap]:
    """Nearest three-bar imbalance, scanning from len-3 back to index 2."""
    if len(candles) < 5:
        return None
    for i in range(len(candles) - 3, 1, -1):
        c, c2 = candles[i], candles[i - 2]
        if c.low > c2.high:
            return FairValueGap(direction=UP, low=c2.high, high=c.low, index=i)
        if c.high < c2.low:
            return FairValueGap(direction=DOWN, low=c.high, high=c2.low, index=i)
    return None


def detect_liquidity_zone(
    candles: List[Candle],
    min_bars: int = 20,
    window: int = 30,
    multiplier: float = 1.8,
) -> Optional[LiquidityZone]:
    """Volume spike on the newest bar against the recent average (newest bar included)."""
    if len(candles) < max(1, min_bars):
        return None
    recent = candles[-window:] if window > 0 else candles
    avg = mean([c.volume or 0.0 for c in recent])
    last = candles[-1]
    if not avg or avg <= 0:
        return None
    if last.volume > avg * multiplier:
        return LiquidityZone(volume=last.volume, average_volume=avg)
    return None


def detect_pattern(candles: List[Candle], body_ratio: float = 0.3, wick_ratio: float = 2.0) -> Optional[str]:
    if len(candles) < 2:
        return None
    last, prev = candles[-1], candles[-2]
    small_body = body(last) < candle_range(last) * body_ratio
    upper = upper_wick(last)
    lower = lower_wick(last)
    if small_body and upper > lower * wick_ratio:
        return SHOOTING_STAR
    if small_body and lower > upper * wick_ratio:
        return HAMMER
    if last.close > prev.open and last.open < prev.close and last.close > last.open:
        return BULLISH_ENGULFING
    if last.close < prev.open and last.open > prev.close and last.close < last.open:
        return BEARISH_ENGULFING
    return None
