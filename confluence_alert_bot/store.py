from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from typing import Any, Dict, List, Optional, Protocol

from .models import Announcement, LastSignalRecord

log = logging.getLogger("store")

LAST_SIGNALS_KEY = "last_signals"
HISTORY_KEY = "history"
WATCHLIST_KEY = "watchlist"
PERMISSIONS_KEY = "permissions"


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def append_bounded(self, key: str, item: Any, max_items: int) -> None:
        ...


class MemoryStore:
    """In-process store; values are JSON round-tripped to mimic the file store."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def append_bounded(self, key: str, item: Any, max_items: int) -> None:
        items = self.get(key, [])
        items.insert(0, item)
        del items[max(1, int(max_items)):]
        self.set(key, items)


class JsonFileStore:
    """One ``<key>.json`` file per key inside ``directory``."""

    def __init__(self, directory: str) -> None:
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                value = json.load(f)
        except (OSError, ValueError) as e:
            log.warning("store_read_failed key=%s path=%s err=%s", key, path, e)
            return default
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def append_bounded(self, key: str, item: Any, max_items: int) -> None:
        items = self.get(key, [])
        if not isinstance(items, list):
            items = []
        items.insert(0, item)
        del items[max(1, int(max_items)):]
        self.set(key, items)


class SignalBook:
    """Last announced idea per symbol plus the announcement history log."""

    def __init__(self, store: KeyValueStore, *, history_max: int = 2000) -> None:
        self.store = store
        self.history_max = int(history_max)

    def last(self, symbol: str) -> Optional[LastSignalRecord]:
        raw = (self.store.get(LAST_SIGNALS_KEY, {}) or {}).get(symbol)
        if not raw:
            return None
        try:
            return LastSignalRecord.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("last_signal_corrupt symbol=%s err=%s", symbol, e)
            return None

    def save(self, record: LastSignalRecord) -> None:
        current = self.store.get(LAST_SIGNALS_KEY, {}) or {}
        current[record.symbol] = record.to_dict()
        self.store.set(LAST_SIGNALS_KEY, current)

    def record(self, ann: Announcement, at_ms: Optional[int] = None) -> None:
        entry = {
            "time_ms": int(at_ms if at_ms is not None else time.time() * 1000),
            "kind": ann.kind,
            "symbol": ann.symbol,
            "idea": ann.idea.to_dict(),
        }
        if ann.recipient is not None:
            entry["sent_to"] = ann.recipient
        self.store.append_bounded(HISTORY_KEY, entry, self.history_max)

    def history(self, n: int) -> List[Dict[str, Any]]:
        return list(self.store.get(HISTORY_KEY, []) or [])[: max(0, int(n))]


class Watchlists:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def all(self) -> Dict[str, List[str]]:
        return dict(self.store.get(WATCHLIST_KEY, {}) or {})

    def list(self, chat_id: str) -> List[str]:
        return list(self.all().get(str(chat_id), []))

    def add(self, chat_id: str, symbol: str) -> bool:
        watch = self.all()
        symbols = watch.setdefault(str(chat_id), [])
        symbol = symbol.upper()
        if symbol in symbols:
            return False
        symbols.append(symbol)
        self.store.set(WATCHLIST_KEY, watch)
        return True

    def remove(self, chat_id: str, symbol: str) -> bool:
        watch = self.all()
        symbols = watch.get(str(chat_id), [])
        symbol = symbol.upper()
        if symbol not in symbols:
            return False
        watch[str(chat_id)] = [s for s in symbols if s != symbol]
        self.store.set(WATCHLIST_KEY, watch)
        return True


class Permissions:
    """Authorised recipient ids; the admin is always a recipient."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def users(self) -> List[str]:
        raw = self.store.get(PERMISSIONS_KEY, {}) or {}
        return [str(u) for u in raw.get("users", [])]

    def _save(self, users: List[str]) -> None:
        self.store.set(PERMISSIONS_KEY, {"users": users})

    def grant(self, user_id: str) -> bool:
        users = self.users()
        if str(user_id) in users:
            return False
        users.append(str(user_id))
        self._save(users)
        return True

    def revoke(self, user_id: str) -> bool:
        users = self.users()
        if str(user_id) not in users:
            return False
        self._save([u for u in users if u != str(user_id)])
        return True

    def recipients(self, admin_id: str) -> List[str]:
        out: List[str] = []
        for uid in [str(admin_id)] + self.users():
            if uid and uid not in out:
                out.append(uid)
        return out
