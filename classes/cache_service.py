# classes/cache_service.py
import threading
import time
from typing import Any, Dict, List, Optional


class TtlCache:
    """
    Process-wide key/value cache with a declared TTL.
    - explicit init()/clear() lifecycle (tests call clear() between cases)
    - thread-safe
    - sweep_expired() is safe to call every AsyncGuard cycle
    """

    def __init__(self, ttl_seconds: float, name: str = "cache"):
        self.ttl_seconds = float(ttl_seconds)
        self.name = name
        self._lock = threading.Lock()
        # key -> {"value": Any, "expires_at": float}
        self._items: Dict[str, Dict[str, Any]] = {}
        self._initialized = False

    def init(self) -> "TtlCache":
        with self._lock:
            self._items = {}
            self._initialized = True
        return self

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        with self._lock:
            self._items[str(key)] = {"value": value, "expires_at": time.time() + ttl}

    def get(self, key: str, default: Any = None) -> Any:
        now = time.time()
        with self._lock:
            item = self._items.get(str(key))
            if item is None:
                return default
            if float(item["expires_at"]) <= now:
                del self._items[str(key)]
                return default
            return item["value"]

    def pop(self, key: str, default: Any = None) -> Any:
        value = self.get(key, default)
        with self._lock:
            self._items.pop(str(key), None)
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def sweep_expired(self) -> int:
        now = time.time()
        with self._lock:
            expired = [k for k, v in self._items.items() if float(v["expires_at"]) <= now]
            for k in expired:
                del self._items[k]
        return len(expired)


_MISSING = object()


class DispatchCache:
    """
    Recent dispatches, read by feedback routing:
    - per group: the tickets sent there, newest last
    - per ticket: the requester chat to notify on status changes
    """

    def __init__(self, cache: Optional[TtlCache] = None, ttl_seconds: float = 24 * 3600):
        self.cache = cache or TtlCache(ttl_seconds, name="dispatch").init()

    def record_dispatch(self, group_id: str, ticket_id: str, folio: str, requester_chat_id: str) -> None:
        key = f"group:{group_id}"
        recent: List[Dict[str, Any]] = list(self.cache.get(key, []))
        recent.append({"ticket_id": ticket_id, "folio": folio, "at": time.time()})
        self.cache.set(key, recent[-20:])
        self.cache.set(f"requester:{ticket_id}", requester_chat_id)

    def recent_for_group(self, group_id: str, within_seconds: float) -> List[Dict[str, Any]]:
        cutoff = time.time() - within_seconds
        return [r for r in self.cache.get(f"group:{group_id}", []) if r["at"] >= cutoff]

    def requester_for(self, ticket_id: str) -> Optional[str]:
        return self.cache.get(f"requester:{ticket_id}")

    def clear(self) -> None:
        self.cache.clear()

    def sweep_expired(self) -> int:
        return self.cache.sweep_expired()


GLOBAL_DISPATCH_CACHE = DispatchCache()
GLOBAL_MENU_CACHE = TtlCache(ttl_seconds=15 * 60, name="feedback_menus").init()
