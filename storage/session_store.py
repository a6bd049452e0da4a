from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator

from core.models import Session, utc_now
from storage.repository_interface import BotRepositoryProtocol

DEFAULT_SESSION_TTL_MINUTES = 60


class KeyedLock:
    """One re-entrant lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] <= 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class InMemorySessionStore:
    def __init__(
        self,
        session_ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_ttl = timedelta(minutes=max(1, int(session_ttl_minutes)))
        self._clock = clock
        self._guard = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._locks = KeyedLock()

    def get(self, identity: str) -> Session:
        now = self._clock()
        with self._guard:
            session = self._sessions.get(identity)
            if session is None or now - session.last_activity > self.session_ttl:
                session = Session(identity=identity, last_activity=now, created_at=now)
                self._sessions[identity] = session
            session.last_activity = now
            return session.copy()

    def save(self, session: Session) -> None:
        with self._guard:
            self._sessions[session.identity] = session.copy()

    def delete(self, identity: str) -> None:
        with self._guard:
            self._sessions.pop(identity, None)

    def sweep(self) -> int:
        cutoff = self._clock() - self.session_ttl
        with self._guard:
            expired = [key for key, session in self._sessions.items() if session.last_activity < cutoff]
            for key in expired:
                del self._sessions[key]
        return len(expired)

    def lock(self, identity: str):
        return self._locks.hold(identity)

    def __len__(self) -> int:
        with self._guard:
            return len(self._sessions)


class RepositorySessionStore:
    def __init__(
        self,
        repository: BotRepositoryProtocol,
        session_ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repository = repository
        self.session_ttl = timedelta(minutes=max(1, int(session_ttl_minutes)))
        self._clock = clock
        self._locks = KeyedLock()

    def get(self, identity: str) -> Session:
        now = self._clock()
        session = self.repository.load_session(identity)
        if session is None or now - session.last_activity > self.session_ttl:
            session = Session(identity=identity, last_activity=now, created_at=now)
            self.repository.upsert_session(session)
        session.last_activity = now
        return session

    def save(self, session: Session) -> None:
        self.repository.upsert_session(session)

    def delete(self, identity: str) -> None:
        self.repository.delete_session(identity)

    def sweep(self) -> int:
        return self.repository.delete_sessions_inactive_since(self._clock() - self.session_ttl)

    def lock(self, identity: str):
        return self._locks.hold(identity)
