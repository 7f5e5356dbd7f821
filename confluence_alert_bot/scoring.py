from __future__ import annotations

import math
from typing import List, Optional

from .models import (
    COLLAPSED_LEVELS,
    LONG,
    NOT_ENOUGH_CONFLUENCE,
    SHORT,
    UP,
    BreakOfStructure,
    FairValueGap,
    Idea,
    LiquidityZone,
    NotActionable,
    OrderBlocks,
    TradeIdea,
)

BOS_WEIGHT = 3
FVG_WEIGHT = 3
ORDER_BLOCK_WEIGHT = 2
LIQUIDITY_WEIGHT = 1
PATTERN_WEIGHT = 1

MIN_SCORE = 6


def confluence_score(
    bos: Optional[BreakOfStructure],
    fvg: Optional[FairValueGap],
    obs: Optional[OrderBlocks],
    liq: Optional[LiquidityZone],
    pattern: Optional[str],
) -> int:
    score = 0
    if bos is not None:
        score += BOS_WEIGHT
    if fvg is not None:
        score += FVG_WEIGHT
    if obs is not None and obs.present:
        score += ORDER_BLOCK_WEIGHT
    if liq is not None:
        score += LIQUIDITY_WEIGHT
    if pattern:
        score += PATTERN_WEIGHT
    return score


def _tags(bos: BreakOfStructure, fvg: FairValueGap, obs: OrderBlocks, liq: LiquidityZone, pattern: Optional[str]) -> List[str]:
    tags = [f"BOS_{bos.direction}", f"FVG_{fvg.direction}"]
    if obs.bullish is not None:
        tags.append("OB_Bull")
    if obs.bearish is not None:
        tags.append("OB_Bear")
    if liq is not None:
        tags.append("LIQ")
    if pattern:
        tags.append(pattern)
    return tags


def _price_decimals(price: float, decimals: int) -> int:
    # at least `decimals` places, and at least `decimals` significant figures below 1
    if price <= 0:
        return decimals
    return max(decimals, decimals - int(math.floor(math.log10(price))) - 1)


def generate_idea(
    symbol: str,
    price: float,
    bos: Optional[BreakOfStructure],
    fvg: Optional[FairValueGap],
    obs: Optional[OrderBlocks],
    pattern: Optional[str],
    liq: Optional[LiquidityZone],
    *,
    min_score: int = MIN_SCORE,
    stop_pct: float = 0.01,
    target_pct: float = 0.02,
    price_decimals: int = 6,
) -> Idea:
    """Turn detector outputs into an actionable idea or a scored rejection.

    Every confluence category (BOS direction, FVG, an order block of either
    polarity, liquidity) must be present and the score must reach
    ``min_score``.
    """
    score = confluence_score(bos, fvg, obs, liq, pattern)

    missing = []
    if bos is None:
        missing.append("BOS")
    if fvg is None:
        missing.append("FVG")
    if obs is None or not obs.present:
        missing.append("OB")
    if liq is None:
        missing.append("LIQ")
    if missing or score < min_score:
        return NotActionable(reason=NOT_ENOUGH_CONFLUENCE, score=score, missing=tuple(missing))

    direction = LONG if bos.direction == UP else SHORT
    if direction == LONG:
        raw_sl = price * (1.0 - stop_pct)
        raw_tp = price * (1.0 + target_pct)
    else:
        raw_sl = price * (1.0 + stop_pct)
        raw_tp = price * (1.0 - target_pct)

    risk = abs(price - raw_sl)
    rr = abs(raw_tp - price) / risk if risk else 0.0

    decimals = _price_decimals(price, price_decimals)
    entry = round(price, decimals)
    sl = round(raw_sl, decimals)
    tp = round(raw_tp, decimals)
    if sl == entry or tp == entry or rr <= 0:
        return NotActionable(reason=COLLAPSED_LEVELS, score=score)

    return TradeIdea(
        symbol=symbol,
        direction=direction,
        entry=entry,
        stop_loss=sl,
        take_profit=tp,
        risk_reward=round(rr, 4),
        score=score,
        tags=tuple(_tags(bos, fvg, obs, liq, pattern)),
    )
