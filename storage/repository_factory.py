from __future__ import annotations

from typing import Any

from storage.application_recorder import MirroredApplicationRecorder
from storage.dynamo_repository import DynamoBotRepository
from storage.repository import BotRepository
from storage.repository_interface import (
    ApplicationRecorderProtocol,
    BotRepositoryProtocol,
    SessionStoreProtocol,
)
from storage.session_store import InMemorySessionStore, RepositorySessionStore
from storage.sheets_recorder import GoogleSheetsRecorder


def create_repository(config: dict[str, Any]) -> BotRepositoryProtocol:
    storage_conf = config.get("storage", {})
    backend = str(storage_conf.get("backend", "sqlite") or "sqlite").strip().lower()

    if backend == "dynamodb":
        ddb_conf = storage_conf.get("dynamodb", {}) if isinstance(storage_conf, dict) else {}
        tables = ddb_conf.get("tables", {}) if isinstance(ddb_conf, dict) else {}
        return DynamoBotRepository(
            region_name=_as_optional_str(ddb_conf.get("region")),
            table_prefix=str(ddb_conf.get("table_prefix", "innova-bot")),
            event_table_name=_as_optional_str(tables.get("event_dedupe")),
            sessions_table_name=_as_optional_str(tables.get("sessions")),
            applications_table_name=_as_optional_str(tables.get("applications")),
            event_ttl_days=int(ddb_conf.get("event_ttl_days", 7)),
            session_ttl_minutes=_session_ttl_minutes(config),
        )
    if backend != "sqlite":
        raise ValueError(f"unsupported storage backend: {backend}")

    sqlite_path = str(storage_conf.get("sqlite_path", "data/bot.db"))
    return BotRepository(sqlite_path=sqlite_path)


def create_session_store(config: dict[str, Any], repository: BotRepositoryProtocol) -> SessionStoreProtocol:
    storage_conf = config.get("storage", {})
    session_backend = str(storage_conf.get("session_backend", "memory") or "memory").strip().lower()
    ttl = _session_ttl_minutes(config)
    if session_backend == "repository":
        return RepositorySessionStore(repository, session_ttl_minutes=ttl)
    if session_backend != "memory":
        raise ValueError(f"unsupported session backend: {session_backend}")
    return InMemorySessionStore(session_ttl_minutes=ttl)


def create_application_recorder(
    config: dict[str, Any],
    repository: BotRepositoryProtocol,
) -> ApplicationRecorderProtocol:
    sheets_conf = config.get("storage", {}).get("google_sheets", {})
    mirrors: list[ApplicationRecorderProtocol] = []
    if isinstance(sheets_conf, dict) and bool(sheets_conf.get("enabled", False)):
        mirrors.append(
            GoogleSheetsRecorder(
                spreadsheet_id=str(sheets_conf.get("spreadsheet_id") or ""),
                credentials_path=_as_optional_str(sheets_conf.get("credentials_path")),
                tabs=sheets_conf.get("tabs") if isinstance(sheets_conf.get("tabs"), dict) else None,
            )
        )
    return MirroredApplicationRecorder(primary=repository, mirrors=mirrors)


def _session_ttl_minutes(config: dict[str, Any]) -> int:
    return int(config.get("conversation", {}).get("session_ttl_minutes", 60))


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
