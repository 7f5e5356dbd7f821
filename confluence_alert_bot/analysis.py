from __future__ import annotations

import logging
from dataclasses import replace
from typing import Awaitable, Dict, List, Protocol

from .config import ProviderConfig, StrategyConfig
from .detectors import (
    detect_bos,
    detect_fvg,
    detect_liquidity_zone,
    detect_order_blocks,
    detect_pattern,
)
from .models import Analysis, AnalysisResult, Candle, NoData
from .scoring import generate_idea

log = logging.getLogger("analysis")


class BarSupply(Protocol):
    def fetch_bars(self, symbol: str, interval: str, limit: int) -> Awaitable[List[Candle]]:
        ...


def analyze_candles(symbol: str, timeframe: str, candles: List[Candle], cfg: StrategyConfig) -> AnalysisResult:
    """Run every detector and the scorer over an already fetched bar series."""
    if not candles:
        return NoData(symbol=symbol)

    price = candles[-1].close
    bos = detect_bos(candles, cfg.bos_lookback)
    obs = detect_order_blocks(candles, cfg.ob_window, cfg.ob_body_ratio)
    fvg = detect_fvg(candles)
    liq = detect_liquidity_zone(candles, cfg.liq_min_bars, cfg.liq_window, cfg.liq_multiplier)
    pattern = detect_pattern(candles, cfg.pattern_body_ratio, cfg.pattern_wick_ratio)
    idea = generate_idea(
        symbol,
        price,
        bos,
        fvg,
        obs,
        pattern,
        liq,
        min_score=cfg.min_score,
        stop_pct=cfg.stop_pct,
        target_pct=cfg.target_pct,
        price_decimals=cfg.price_decimals,
    )
    return Analysis(
        symbol=symbol,
        timeframe=timeframe,
        price=price,
        bos=bos,
        order_blocks=obs,
        fvg=fvg,
        liquidity=liq,
        pattern=pattern,
        idea=idea,
    )


class Analyzer:
    """Fetches bars for one symbol and turns them into an analysis result."""

    def __init__(self, provider: BarSupply, strategy: StrategyConfig, provider_cfg: ProviderConfig):
        self.provider = provider
        self.strategy = strategy
        self.interval = provider_cfg.interval
        self.limit = int(provider_cfg.limit)
        self.context_intervals = tuple(provider_cfg.context_intervals or ())
        self.context_limit = int(provider_cfg.context_limit)

    async def analyze(self, symbol: str) -> AnalysisResult:
        symbol = symbol.upper()
        candles = await self.provider.fetch_bars(symbol, self.interval, self.limit)
        if not candles:
            log.info("analysis_no_data symbol=%s interval=%s", symbol, self.interval)
            return NoData(symbol=symbol)

        result = analyze_candles(symbol, self.interval, candles, self.strategy)

        # Higher timeframes ride along for context only; the score ignores them.
        context: Dict[str, List[Candle]] = {}
        for interval in self.context_intervals:
            context[interval] = await self.provider.fetch_bars(symbol, interval, self.context_limit)
        if context:
            result = replace(result, context=context)

        log.debug(
            "analysis_done symbol=%s price=%s score=%s ok=%s",
            symbol,
            result.price,
            result.idea.score,
            result.idea.ok,
        )
        return result
