from __future__ import annotations

import aiohttp
from typing import Any, Dict, List, Optional
import asyncio
import logging

log = logging.getLogger("telegram")


class TelegramNotifier:
    def __init__(self, token: str, *, timeout_s: int = 15, disable_web_page_preview: bool = True):
        self.token = (token or "").strip()
        self.timeout_s = int(timeout_s)
        self.disable_web_page_preview = disable_web_page_preview
        self._session: Optional[aiohttp.ClientSession] = None

    def enabled(self) -> bool:
        return bool(self.token)

    def _url(self, method: str) -> str:
        return f"https://api.telegram.org/bot{self.token}/{method}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_s))
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def send(self, chat_id: str, text: str, *, parse_mode: Optional[str] = "HTML") -> bool:
        if not self.enabled():
            return False
        payload: Dict[str, Any] = {
            "chat_id": str(chat_id),
            "text": text,
            "disable_web_page_preview": self.disable_web_page_preview,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        try:
            sess = await self._get_session()
            async with sess.post(self._url("sendMessage"), json=payload) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    log.warning("telegram_send_failed chat_id=%s status=%s body=%s", chat_id, resp.status, body[:2000])
                    return False
        except Exception as e:
            log.exception("telegram_send_exception chat_id=%s err=%s", chat_id, e)
            return False
        return True

    async def send_many(self, chat_ids: List[str], text: str, *, parse_mode: Optional[str] = "HTML") -> int:
        """Sequential fan-out; one failed chat never stops the rest. Returns delivered count."""
        delivered = 0
        for chat_id in chat_ids:
            if await self.send(chat_id, text, parse_mode=parse_mode):
                delivered += 1
        return delivered

    async def get_updates(self, offset: int, timeout_s: int = 25) -> List[Dict[str, Any]]:
        if not self.enabled():
            return []
        params = {"offset": int(offset), "timeout": int(timeout_s), "allowed_updates": '["message"]'}
        try:
            sess = await self._get_session()
            async with sess.get(
                self._url("getUpdates"),
                params=params,
                timeout=aiohttp.ClientTimeout(total=timeout_s + 10),
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    log.warning("telegram_get_updates_failed status=%s body=%s", resp.status, body[:500])
                    return []
                data = await resp.json(content_type=None)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning("telegram_get_updates_exception err=%s", e)
            return []
        if not isinstance(data, dict) or not data.get("ok"):
            return []
        result = data.get("result")
        return result if isinstance(result, list) else []
