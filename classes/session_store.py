# classes/session_store.py
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from classes.draft_models import Session


class SessionStore:
    """
    Sessions keyed by chat id, created lazily and never expired.
    locked(chat_id) serializes every read-modify-write of one chat's session;
    different chats never contend.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._chat_locks: Dict[str, threading.RLock] = {}

    def get(self, chat_id: str) -> Session:
        key = str(chat_id)
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                session = Session(chat_id=key)
                self._sessions[key] = session
            return session

    def peek(self, chat_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(str(chat_id))

    def _chat_lock(self, chat_id: str) -> threading.RLock:
        with self._lock:
            lock = self._chat_locks.get(chat_id)
            if lock is None:
                lock = threading.RLock()
                self._chat_locks[chat_id] = lock
            return lock

    @contextmanager
    def locked(self, chat_id: str) -> Iterator[Session]:
        key = str(chat_id)
        with self._chat_lock(key):
            yield self.get(key)

    def reset(self, chat_id: str) -> Session:
        with self.locked(chat_id) as session:
            session.reset()
            return session

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._chat_locks.clear()
