from __future__ import annotations

import logging
from typing import Optional

from .models import (
    ANNOUNCE_NEW,
    RESEND_PREVIOUS,
    Announcement,
    Idea,
    LastSignalRecord,
)
from .store import SignalBook

log = logging.getLogger("continuity")


class ContinuityPolicy:
    """Decides whether a fresh idea is announced, the standing one repeated, or nothing.

    A new actionable idea replaces the standing one when it scores at least as
    high. A standing idea that is stronger than what the market shows now is
    repeated once its announcement is older than the resend delay (shorter
    when nothing actionable exists, longer when a weaker idea does). Every
    announcement refreshes the standing record's timestamp, so a repeat fires
    at most once per delay window.
    """

    def __init__(self, book: SignalBook, *, weaker_resend_s: int = 300, stronger_resend_s: int = 600):
        self.book = book
        self.weaker_resend_ms = int(weaker_resend_s) * 1000
        self.stronger_resend_ms = int(stronger_resend_s) * 1000

    def decide(self, symbol: str, idea: Idea, now_ms: int) -> Optional[Announcement]:
        prev = self.book.last(symbol)

        if not idea.ok:
            new_score = idea.score or 0
            if prev is not None and prev.score > new_score and now_ms - prev.announced_at_ms > self.weaker_resend_ms:
                return self._resend(prev, now_ms, reason="no_actionable_idea")
            return None

        if prev is None or idea.score >= prev.score:
            ann = Announcement(kind=ANNOUNCE_NEW, symbol=symbol, idea=idea)
            self.book.save(LastSignalRecord(symbol=symbol, idea=idea, announced_at_ms=now_ms))
            self.book.record(ann, now_ms)
            log.info(
                "announce_new symbol=%s dir=%s score=%d prev_score=%s",
                symbol,
                idea.direction,
                idea.score,
                prev.score if prev is not None else None,
            )
            return ann

        if now_ms - prev.announced_at_ms > self.stronger_resend_ms:
            return self._resend(prev, now_ms, reason="new_idea_weaker")
        log.debug("suppressed symbol=%s score=%d prev_score=%d", symbol, idea.score, prev.score)
        return None

    def _resend(self, prev: LastSignalRecord, now_ms: int, *, reason: str) -> Announcement:
        ann = Announcement(kind=RESEND_PREVIOUS, symbol=prev.symbol, idea=prev.idea)
        self.book.save(LastSignalRecord(symbol=prev.symbol, idea=prev.idea, announced_at_ms=now_ms))
        self.book.record(ann, now_ms)
        log.info(
            "resend_previous symbol=%s score=%d age_s=%.0f reason=%s",
            prev.symbol,
            prev.score,
            (now_ms - prev.announced_at_ms) / 1000.0,
            reason,
        )
        return ann
