from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from core.enums import RecordKind, Step
from core.models import ApplicationRecord, Session


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BotRepository:
    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = Path(sqlite_path)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.sqlite_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    identity TEXT PRIMARY KEY,
                    step TEXT NOT NULL,
                    data_json TEXT,
                    last_activity TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_sessions_last_activity
                    ON sessions(last_activity);

                CREATE TABLE IF NOT EXISTS applications (
                    application_id TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    identity TEXT NOT NULL,
                    fields_json TEXT NOT NULL,
                    submitted_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_applications_kind_submitted
                    ON applications(kind, submitted_at DESC);

                CREATE TABLE IF NOT EXISTS processed_events (
                    event_id TEXT PRIMARY KEY,
                    received_at TEXT NOT NULL
                );
                """
            )
            conn.commit()

    def mark_event_processed(self, event_id: str) -> bool:
        key = (event_id or "").strip()
        if not key:
            return False

        with self._connect() as conn:
            cur = conn.execute("INSERT OR IGNORE INTO processed_events(event_id, received_at) VALUES(?, ?)", (key, _utc_now()))
            conn.commit()
            return cur.rowcount > 0

    def load_session(self, identity: str) -> Session | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT identity, step, data_json, last_activity, created_at FROM sessions WHERE identity = ?",
                (identity,),
            ).fetchone()
        if row is None:
            return None
        raw_data = _load_json(row["data_json"])
        return Session(
            identity=row["identity"],
            step=Step.parse(row["step"]),
            data=raw_data if isinstance(raw_data, dict) else {},
            last_activity=_parse_datetime(row["last_activity"]),
            created_at=_parse_datetime(row["created_at"]),
        )

    def upsert_session(self, session: Session) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO sessions(identity, step, data_json, last_activity, created_at)
                VALUES(?, ?, ?, ?, ?)
                """,
                (
                    session.identity,
                    session.step.value,
                    json.dumps(session.data, ensure_ascii=False),
                    session.last_activity.isoformat(),
                    session.created_at.isoformat(),
                ),
            )
            conn.commit()

    def delete_session(self, identity: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM sessions WHERE identity = ?", (identity,))
            conn.commit()

    def delete_sessions_inactive_since(self, cutoff: datetime) -> int:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM sessions WHERE last_activity < ?", (cutoff.isoformat(),))
            conn.commit()
            return cur.rowcount

    def save_application(self, record: ApplicationRecord) -> str:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO applications(application_id, kind, identity, fields_json, submitted_at)
                VALUES(?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.kind.value,
                    record.identity,
                    json.dumps(record.fields, ensure_ascii=False),
                    record.submitted_at,
                ),
            )
            conn.commit()
        return record.id

    def record(self, record: ApplicationRecord) -> str:
        return self.save_application(record)

    def list_applications(self, kind: RecordKind | None = None) -> list[ApplicationRecord]:
        query = "SELECT application_id, kind, identity, fields_json, submitted_at FROM applications"
        params: tuple[Any, ...] = ()
        if kind is not None:
            query += " WHERE kind = ?"
            params = (RecordKind(kind).value,)
        query += " ORDER BY submitted_at DESC, application_id DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_record_from_row(dict(row)) for row in rows]


def _record_from_row(row: dict[str, Any]) -> ApplicationRecord:
    raw_fields = _load_json(row.get("fields_json"))
    fields = raw_fields if isinstance(raw_fields, dict) else {}
    return ApplicationRecord(
        id=str(row["application_id"]),
        kind=RecordKind(row["kind"]),
        identity=str(row.get("identity") or ""),
        fields={str(k): "" if v is None else str(v) for k, v in fields.items()},
        submitted_at=str(row.get("submitted_at") or ""),
    )


def _load_json(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _parse_datetime(value: Any) -> datetime:
    try:
        parsed = datetime.fromisoformat(str(value))
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
