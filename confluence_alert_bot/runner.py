from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

from .analysis import Analyzer, BarSupply
from .config import Config
from .continuity import ContinuityPolicy
from .formatters import format_announcement
from .models import WATCH_HIT, AnalysisResult, Announcement, NoData, TradeIdea
from .notifier.telegram import TelegramNotifier
from .providers.binance import BinanceProvider
from .store import JsonFileStore, KeyValueStore, Permissions, SignalBook, Watchlists

log = logging.getLogger("runner")


class AlertRunner:
    def __init__(
        self,
        cfg: Config,
        *,
        provider: Optional[BarSupply] = None,
        notifier: Optional[TelegramNotifier] = None,
        store: Optional[KeyValueStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.cfg = cfg
        self.clock = clock
        self.provider = provider or BinanceProvider(
            market=cfg.provider.market,
            rest_timeout_s=cfg.provider.rest_timeout_s,
            rest_max_retries=cfg.provider.rest_max_retries,
            rest_backoff_s=cfg.provider.rest_backoff_s,
        )
        self.notifier = notifier or TelegramNotifier(
            token=cfg.telegram.token,
            disable_web_page_preview=cfg.telegram.disable_web_page_preview,
        )
        self.store = store if store is not None else JsonFileStore(cfg.storage.directory)

        self.book = SignalBook(self.store, history_max=cfg.storage.history_max)
        self.watchlists = Watchlists(self.store)
        self.permissions = Permissions(self.store)
        self.analyzer = Analyzer(self.provider, cfg.strategy, cfg.provider)
        self.policy = ContinuityPolicy(
            self.book,
            weaker_resend_s=cfg.scan.weaker_resend_s,
            stronger_resend_s=cfg.scan.stronger_resend_s,
        )

        self._cycle_lock = asyncio.Lock()
        self._metrics = {
            "cycles_total": 0,
            "cycles_skipped_total": 0,
            "symbol_errors_total": 0,
            "announcements_total": 0,
            "send_failures_total": 0,
        }
        self.last_cycle_ms: Optional[int] = None

    @property
    def metrics(self) -> Dict[str, int]:
        return dict(self._metrics)

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def scan(self, symbol: str) -> AnalysisResult:
        """On-demand analysis for the command layer."""
        return await self.analyzer.analyze(symbol)

    async def _safe_analyze(self, symbol: str) -> AnalysisResult:
        try:
            return await self.analyzer.analyze(symbol)
        except Exception as e:
            self._metrics["symbol_errors_total"] += 1
            log.exception("analysis_failed symbol=%s err=%s", symbol, e)
            return NoData(symbol=symbol, reason=f"error: {e!r}")

    async def cycle(self) -> List[Announcement]:
        if self._cycle_lock.locked():
            self._metrics["cycles_skipped_total"] += 1
            log.warning("cycle_skipped reason=already_running skipped_total=%d", self._metrics["cycles_skipped_total"])
            return []

        async with self._cycle_lock:
            started = self._now_ms()
            symbols = list(dict.fromkeys(s.upper() for s in self.cfg.scan.symbols))
            log.info("cycle_start symbols=%d", len(symbols))

            results: Dict[str, AnalysisResult] = {}
            out: List[Announcement] = []

            for sym in symbols:
                res = results.get(sym)
                if res is None:
                    res = results[sym] = await self._safe_analyze(sym)
                if not res.ok:
                    log.info("cycle_symbol_skipped symbol=%s reason=%s", sym, res.reason)
                    continue
                try:
                    ann = self.policy.decide(sym, res.idea, self._now_ms())
                except Exception as e:
                    self._metrics["symbol_errors_total"] += 1
                    log.exception("continuity_failed symbol=%s err=%s", sym, e)
                    continue
                if ann is not None:
                    out.append(ann)

            for chat_id, watched in self.watchlists.all().items():
                for sym in watched:
                    sym = sym.upper()
                    res = results.get(sym)
                    if res is None:
                        res = results[sym] = await self._safe_analyze(sym)
                    if not res.ok or not isinstance(res.idea, TradeIdea):
                        continue
                    ann = Announcement(kind=WATCH_HIT, symbol=sym, idea=res.idea, recipient=str(chat_id))
                    self.book.record(ann, self._now_ms())
                    out.append(ann)

            self._metrics["cycles_total"] += 1
            self._metrics["announcements_total"] += len(out)
            self.last_cycle_ms = self._now_ms()
            log.info(
                "cycle_done analysed=%d announcements=%d duration_ms=%d",
                len(results),
                len(out),
                self.last_cycle_ms - started,
            )
            return out

    async def deliver(self, announcements: List[Announcement]) -> int:
        """Send announcements; a failed recipient never stops the batch. Returns delivered count."""
        if not announcements:
            return 0
        recipients = self.permissions.recipients(self.cfg.telegram.admin_id)
        delivered = 0
        for ann in announcements:
            text = format_announcement(ann, app_name=self.cfg.app.name)
            targets = [ann.recipient] if ann.kind == WATCH_HIT else recipients
            for chat_id in targets:
                try:
                    ok = await self.notifier.send(chat_id, text)
                except Exception as e:
                    log.exception("deliver_exception chat_id=%s symbol=%s err=%s", chat_id, ann.symbol, e)
                    ok = False
                if ok:
                    delivered += 1
                else:
                    self._metrics["send_failures_total"] += 1
                    log.warning("deliver_failed chat_id=%s symbol=%s kind=%s", chat_id, ann.symbol, ann.kind)
        return delivered

    async def run_cycle(self) -> List[Announcement]:
        announcements = await self.cycle()
        await self.deliver(announcements)
        return announcements

    async def close(self) -> None:
        for closer in (getattr(self.provider, "close", None), getattr(self.notifier, "close", None)):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                log.warning("close_failed err=%s", e)
