from __future__ import annotations

from datetime import datetime
from typing import ContextManager, Protocol

from core.enums import RecordKind
from core.models import ApplicationRecord, Session


class BotRepositoryProtocol(Protocol):
    def mark_event_processed(self, event_id: str) -> bool: ...

    def load_session(self, identity: str) -> Session | None: ...

    def upsert_session(self, session: Session) -> None: ...

    def delete_session(self, identity: str) -> None: ...

    def delete_sessions_inactive_since(self, cutoff: datetime) -> int: ...

    def save_application(self, record: ApplicationRecord) -> str: ...

    def list_applications(self, kind: RecordKind | None = None) -> list[ApplicationRecord]: ...


class SessionStoreProtocol(Protocol):
    def get(self, identity: str) -> Session: ...

    def save(self, session: Session) -> None: ...

    def delete(self, identity: str) -> None: ...

    def sweep(self) -> int: ...

    def lock(self, identity: str) -> ContextManager[None]: ...


class ApplicationRecorderProtocol(Protocol):
    def record(self, record: ApplicationRecord) -> str: ...
