# classes/history_cache.py
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List

from langchain_community.chat_message_histories.in_memory import ChatMessageHistory
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage


def approx_tokens(text: str) -> int:
    return max(1, len(text or "") // 4)


@dataclass
class _Transcript:
    history: ChatMessageHistory = field(default_factory=ChatMessageHistory)
    tokens: List[int] = field(default_factory=list)
    touched_at: float = field(default_factory=time.time)


class HistoryCache:
    """
    Recent conversation per key, kept as oracle context.

    Keys are requester chat ids for intake, and "ticket:<id>" for the
    feedback thread of a dispatched ticket. Entries expire ttl_seconds after
    their last touch and are trimmed oldest-first to max_tokens (chars/4).
    """

    def __init__(self, ttl_seconds: int, max_tokens: int):
        self.ttl_seconds = ttl_seconds
        self.max_tokens = max_tokens
        self._lock = threading.Lock()
        self._items: Dict[str, _Transcript] = {}

    def _live(self, key: str, now: float) -> _Transcript:
        entry = self._items.get(key)
        if entry is None or now - entry.touched_at >= self.ttl_seconds:
            entry = _Transcript()
            self._items[key] = entry
        entry.touched_at = now
        return entry

    def _trim(self, entry: _Transcript) -> None:
        drop = 0
        total = sum(entry.tokens)
        while drop < len(entry.tokens) and total > self.max_tokens:
            total -= entry.tokens[drop]
            drop += 1
        if drop:
            entry.history.messages = entry.history.messages[drop:]
            del entry.tokens[:drop]

    def snapshot(self, chat_id: str) -> List[BaseMessage]:
        """Copy of the messages for one key. Reading counts as a touch."""
        with self._lock:
            return list(self._live(str(chat_id), time.time()).history.messages)

    def append_turn(self, chat_id: str, user_text: str, assistant_text: str) -> None:
        with self._lock:
            entry = self._live(str(chat_id), time.time())
            entry.history.add_message(HumanMessage(content=user_text))
            entry.tokens.append(approx_tokens(user_text))
            if assistant_text:
                entry.history.add_message(AIMessage(content=assistant_text))
                entry.tokens.append(approx_tokens(assistant_text))
            self._trim(entry)

    def clear(self, chat_id: str | None = None) -> None:
        with self._lock:
            if chat_id is None:
                self._items.clear()
            else:
                self._items.pop(str(chat_id), None)

    def sweep_expired(self) -> int:
        cutoff = time.time() - self.ttl_seconds
        with self._lock:
            stale = [key for key, entry in self._items.items() if entry.touched_at <= cutoff]
            for key in stale:
                del self._items[key]
        return len(stale)


GLOBAL_HISTORY_CACHE = HistoryCache(ttl_seconds=24 * 3600, max_tokens=4000)
