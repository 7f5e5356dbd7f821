from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ..models import Candle

log = logging.getLogger("binance")

ENDPOINTS = {
    "spot": ("https://api.binance.com", "/api/v3/klines"),
    "futures": ("https://fapi.binance.com", "/fapi/v1/klines"),
}
MAX_BACKOFF_S = 20.0


class RateLimited(RuntimeError):
    def __init__(self, status: int, wait_s: float):
        super().__init__(f"binance rate limited status={status}")
        self.status = status
        self.wait_s = wait_s


def klines_url(market: str) -> str:
    try:
        base, path = ENDPOINTS[market]
    except KeyError:
        raise ValueError(f"unknown market {market!r} (expected one of {sorted(ENDPOINTS)})") from None
    return base + path


def parse_kline_row(row: list) -> Candle:
    # kline row: open time, o, h, l, c, volume, close time, ...
    return Candle(
        open_time_ms=int(row[0]),
        close_time_ms=int(row[6]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
    )


def parse_klines(payload: Any) -> List[Candle]:
    if not isinstance(payload, list):
        raise RuntimeError(f"unexpected klines payload: {str(payload)[:200]}")
    return [parse_kline_row(row) for row in payload]


def _retry_after(resp: aiohttp.ClientResponse, fallback: float) -> float:
    header = resp.headers.get("Retry-After")
    return float(header) if header and header.isdigit() else fallback


class BinanceProvider:
    """Public klines over REST. One shared session, retries with exponential backoff."""

    def __init__(
        self,
        market: str = "spot",
        *,
        rest_timeout_s: int = 15,
        rest_max_retries: int = 3,
        rest_backoff_s: float = 0.8,
        rest_conn_limit: int = 20,
        rest_conn_limit_per_host: int = 5,
    ):
        self.url = klines_url(market)
        self.market = market
        self.timeout_s = rest_timeout_s
        self.max_retries = max(1, int(rest_max_retries))
        self.backoff_s = float(rest_backoff_s)
        self.conn_limit = rest_conn_limit
        self.conn_limit_per_host = rest_conn_limit_per_host
        self._session: Optional[aiohttp.ClientSession] = None

    async def _session_or_new(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(
                    total=self.timeout_s,
                    connect=min(10, self.timeout_s),
                    sock_read=max(5, int(self.timeout_s * 0.75)),
                ),
                connector=aiohttp.TCPConnector(
                    limit=self.conn_limit,
                    limit_per_host=self.conn_limit_per_host,
                    ttl_dns_cache=300,
                ),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def _get_once(self, params: Dict[str, Any], backoff: float) -> Any:
        sess = await self._session_or_new()
        async with sess.get(self.url, params=params) as resp:
            if resp.status in (418, 429):
                raise RateLimited(resp.status, _retry_after(resp, backoff))
            if resp.status != 200:
                body = await resp.text()
                raise RuntimeError(f"klines request failed status={resp.status} body={body[:300]}")
            # content-type from some proxies is wrong
            return await resp.json(content_type=None)

    async def _get_json(self, params: Dict[str, Any]) -> Any:
        backoff = self.backoff_s
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._get_once(params, backoff)
            except RateLimited as e:
                if attempt == self.max_retries:
                    raise
                log.warning("rest_rate_limited status=%d params=%s wait=%.1fs", e.status, params, e.wait_s)
                await asyncio.sleep(e.wait_s)
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                if attempt == self.max_retries:
                    raise
                log.warning(
                    "rest_retry attempt=%d/%d params=%s backoff=%.1fs err=%r",
                    attempt,
                    self.max_retries,
                    params,
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
            backoff = min(backoff * 2.0, MAX_BACKOFF_S)
        raise RuntimeError("unreachable")

    async def fetch_klines(self, symbol: str, interval: str, limit: int) -> List[Candle]:
        """Oldest-first candles. Raises once retries are exhausted."""
        params = {"symbol": symbol.upper(), "interval": interval, "limit": int(limit)}
        return parse_klines(await self._get_json(params))

    async def fetch_bars(self, symbol: str, interval: str, limit: int) -> List[Candle]:
        """Never raises; an empty list means no data."""
        try:
            return await self.fetch_klines(symbol, interval, limit)
        except Exception as e:
            log.warning("fetch_bars_failed symbol=%s interval=%s limit=%s err=%r", symbol, interval, limit, e)
            return []
