from __future__ import annotations

import asyncio
import html
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import Config
from .formatters import format_analysis, format_history
from .notifier.telegram import TelegramNotifier
from .runner import AlertRunner

log = logging.getLogger("commands")

HELP_TEXT = """Commands:
/getid - show your chat id
/scan SYMBOL - analyse a symbol now
/watch add SYMBOL | /watch rm SYMBOL | /watch list
/request_access - ask the admin for signal access
/users - (admin) list allowed users
/grant CHAT_ID - (admin) grant access
/revoke CHAT_ID - (admin) revoke access
/broadcast TEXT - (admin) message every recipient
/to_boss TEXT - message the admin
/history [N] - last N announcements (max 50)"""

HISTORY_DEFAULT = 10
HISTORY_MAX = 50


def _esc(text: Any) -> str:
    return html.escape(str(text), quote=False)


def parse_command(text: str) -> Optional[tuple]:
    """Split '/cmd@bot rest of line' into ('cmd', 'rest of line')."""
    text = (text or "").strip()
    if not text.startswith("/"):
        return None
    head, _, rest = text.partition(" ")
    if "\n" in head:
        head, _, more = head.partition("\n")
        rest = (more + " " + rest).strip()
    name = head[1:].split("@", 1)[0].lower()
    if not name:
        return None
    return name, rest.strip()


class CommandRouter:
    def __init__(self, runner: AlertRunner, notifier: TelegramNotifier, cfg: Config):
        self.runner = runner
        self.notifier = notifier
        self.cfg = cfg
        self.admin_id = str(cfg.telegram.admin_id)
        self.offset = 0
        self._handlers: Dict[str, Callable[[str, str, Dict[str, Any]], Awaitable[None]]] = {
            "start": self._cmd_help,
            "help": self._cmd_help,
            "getid": self._cmd_getid,
            "scan": self._cmd_scan,
            "watch": self._cmd_watch,
            "request_access": self._cmd_request_access,
            "users": self._cmd_users,
            "grant": self._cmd_grant,
            "revoke": self._cmd_revoke,
            "broadcast": self._cmd_broadcast,
            "to_boss": self._cmd_to_boss,
            "history": self._cmd_history,
        }

    async def _reply(self, chat_id: str, text: str) -> None:
        await self.notifier.send(chat_id, text)

    def _is_admin(self, msg: Dict[str, Any]) -> bool:
        sender = str((msg.get("from") or {}).get("id", ""))
        return bool(sender) and sender == self.admin_id

    async def handle(self, msg: Dict[str, Any]) -> None:
        chat_id = str((msg.get("chat") or {}).get("id", ""))
        parsed = parse_command(msg.get("text") or "")
        if not chat_id or parsed is None:
            return
        name, args = parsed
        handler = self._handlers.get(name)
        if handler is None:
            return
        log.info("command name=%s chat_id=%s", name, chat_id)
        await handler(chat_id, args, msg)

    async def _cmd_help(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        await self._reply(chat_id, _esc(f"{self.cfg.app.name} ready.\n{HELP_TEXT}"))

    async def _cmd_getid(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        await self._reply(chat_id, _esc(f"Your chat id: {chat_id}"))

    async def _cmd_scan(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        symbol = args.split()[0].upper() if args.split() else ""
        quote = self.cfg.scan.quote_asset.upper()
        if not symbol or not symbol.endswith(quote):
            await self._reply(chat_id, _esc(f"Usage: /scan BTC{quote}"))
            return
        result = await self.runner.scan(symbol)
        if not result.ok:
            await self._reply(chat_id, _esc(f"Could not fetch data for {symbol}."))
            return
        await self._reply(chat_id, format_analysis(result))

    async def _cmd_watch(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        parts = args.split()
        sub = parts[0].lower() if parts else ""
        watch = self.runner.watchlists
        if sub == "add" and len(parts) > 1:
            symbol = parts[1].upper()
            watch.add(chat_id, symbol)
            await self._reply(chat_id, _esc(f"Added {symbol} to your watchlist."))
            return
        if sub == "rm" and len(parts) > 1:
            symbol = parts[1].upper()
            watch.remove(chat_id, symbol)
            await self._reply(chat_id, _esc(f"Removed {symbol}."))
            return
        if sub == "list":
            symbols = watch.list(chat_id)
            await self._reply(chat_id, _esc(f"Watchlist: {', '.join(symbols) or 'empty'}"))
            return
        await self._reply(chat_id, _esc("Usage: /watch add SYMBOL | /watch rm SYMBOL | /watch list"))

    async def _cmd_request_access(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        username = (msg.get("from") or {}).get("username") or ""
        await self._reply(self.admin_id, _esc(f"Access request from {chat_id} ({username}). To approve: /grant {chat_id}"))
        await self._reply(chat_id, _esc("Your request was sent to the admin."))

    async def _admin_only(self, chat_id: str, msg: Dict[str, Any]) -> bool:
        if self._is_admin(msg):
            return True
        await self._reply(chat_id, _esc("Admin only."))
        return False

    async def _cmd_users(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        if not await self._admin_only(chat_id, msg):
            return
        users = self.runner.permissions.users()
        await self._reply(chat_id, _esc("Allowed users:\n" + ("\n".join(users) or "none")))

    def _target_id(self, args: str) -> Optional[str]:
        parts = args.split()
        if not parts or not parts[0].lstrip("-").isdigit():
            return None
        return parts[0]

    async def _cmd_grant(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        if not await self._admin_only(chat_id, msg):
            return
        target = self._target_id(args)
        if target is None:
            await self._reply(chat_id, _esc("Usage: /grant CHAT_ID"))
            return
        self.runner.permissions.grant(target)
        await self._reply(chat_id, _esc(f"Granted {target}."))
        await self._reply(target, _esc(f"You now receive signals from {self.cfg.app.name}."))

    async def _cmd_revoke(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        if not await self._admin_only(chat_id, msg):
            return
        target = self._target_id(args)
        if target is None:
            await self._reply(chat_id, _esc("Usage: /revoke CHAT_ID"))
            return
        self.runner.permissions.revoke(target)
        await self._reply(chat_id, _esc(f"Revoked {target}."))
        await self._reply(target, _esc("Your signal access was revoked."))

    async def _cmd_broadcast(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        if not await self._admin_only(chat_id, msg):
            return
        if not args:
            await self._reply(chat_id, _esc("Usage: /broadcast TEXT"))
            return
        recipients = self.runner.permissions.recipients(self.admin_id)
        sent = await self.notifier.send_many(recipients, _esc(f"Broadcast from admin:\n{args}"))
        await self._reply(chat_id, _esc(f"Broadcast sent to {sent}/{len(recipients)} recipients."))

    async def _cmd_to_boss(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        if not args:
            await self._reply(chat_id, _esc("Usage: /to_boss TEXT"))
            return
        sender = msg.get("from") or {}
        who = sender.get("username") or sender.get("first_name") or ""
        await self._reply(self.admin_id, _esc(f"Message from {who} ({chat_id}):\n{args}"))
        await self._reply(chat_id, _esc("Sent to the admin."))

    async def _cmd_history(self, chat_id: str, args: str, msg: Dict[str, Any]) -> None:
        parts = args.split()
        n = int(parts[0]) if parts and parts[0].isdigit() else HISTORY_DEFAULT
        n = min(HISTORY_MAX, n)
        await self._reply(chat_id, format_history(self.runner.book.history(n)))

    async def poll_forever(self) -> None:
        log.info("command_polling_start")
        timeout_s = int(self.cfg.telegram.poll_timeout_s)
        while True:
            updates = await self.notifier.get_updates(self.offset, timeout_s)
            if not updates:
                # get_updates returns [] on errors too; avoid a hot loop.
                await asyncio.sleep(1.0)
                continue
            for upd in updates:
                self.offset = max(self.offset, int(upd.get("update_id", 0)) + 1)
                msg = upd.get("message")
                if not msg:
                    continue
                try:
                    await self.handle(msg)
                except Exception as e:
                    log.exception("command_failed update_id=%s err=%s", upd.get("update_id"), e)
