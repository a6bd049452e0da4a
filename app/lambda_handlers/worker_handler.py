from __future__ import annotations

import base64
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from app.config import load_config
from app.lambda_handlers.app_secrets import load_app_secret_values
from whatsapp.webhook_handler import WhatsAppWebhookHandler

_worker_instance: WhatsAppEventWorker | None = None


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    _ = context
    failures: list[dict[str, str]] = []
    try:
        worker = _get_worker()
    except Exception as exc:  # noqa: BLE001
        print(f"worker-init-failed error={exc}")
        for record in event.get("Records", []):
            message_id = str(record.get("messageId", "")).strip()
            if message_id:
                failures.append({"itemIdentifier": message_id})
        return {"batchItemFailures": failures}

    for record in event.get("Records", []):
        message_id = str(record.get("messageId", "")).strip()
        try:
            envelope = json.loads(str(record.get("body", "") or "{}"))
            message = envelope.get("message")
            if not isinstance(message, dict):
                raise ValueError("missing message payload")
            worker.process_message(message)
        except Exception as exc:  # noqa: BLE001
            print(f"worker-record-failed message_id={message_id} error={exc}")
            if message_id:
                failures.append({"itemIdentifier": message_id})
    return {"batchItemFailures": failures}


class WhatsAppEventWorker:
    """Consumes queued WhatsApp messages; the ingress function already deduplicated them."""

    def __init__(self, config: dict[str, Any], handler: WhatsAppWebhookHandler | None = None) -> None:
        self.config = config
        self.handler = handler or WhatsAppWebhookHandler(config)

    def process_message(self, message: dict[str, Any]) -> bool:
        handled = self.handler.handle_message(message)
        self.handler.maybe_sweep()
        return handled


def _get_worker() -> WhatsAppEventWorker:
    global _worker_instance
    if _worker_instance is not None:
        return _worker_instance
    config = load_config(os.getenv("CONFIG_PATH", "config.yaml"))
    _apply_secret_overrides(config)
    _apply_env_overrides(config)
    _inject_sheets_credentials_from_env(config)
    _worker_instance = WhatsAppEventWorker(config)
    return _worker_instance


def _apply_env_overrides(config: dict[str, Any]) -> None:
    whatsapp_conf = config.setdefault("whatsapp", {})
    conversation_conf = config.setdefault("conversation", {})
    storage_conf = config.setdefault("storage", {})
    ddb_conf = storage_conf.setdefault("dynamodb", {})
    ddb_tables = ddb_conf.setdefault("tables", {})
    sheets_conf = storage_conf.setdefault("google_sheets", {})

    mapping = {
        "WHATSAPP_ACCESS_TOKEN": (whatsapp_conf, "access_token"),
        "WHATSAPP_PHONE_NUMBER_ID": (whatsapp_conf, "phone_number_id"),
        "WHATSAPP_API_VERSION": (whatsapp_conf, "api_version"),
        "WHATSAPP_APP_SECRET": (whatsapp_conf, "app_secret"),
        "WHATSAPP_VERIFY_TOKEN": (whatsapp_conf, "verify_token"),
        "BOOKING_URL": (conversation_conf, "booking_url"),
        "WEBSITE_URL": (conversation_conf, "website_url"),
        "DDB_REGION": (ddb_conf, "region"),
        "DDB_TABLE_PREFIX": (ddb_conf, "table_prefix"),
        "DDB_EVENT_TABLE": (ddb_tables, "event_dedupe"),
        "DDB_SESSIONS_TABLE": (ddb_tables, "sessions"),
        "DDB_APPLICATIONS_TABLE": (ddb_tables, "applications"),
        "GOOGLE_SHEETS_SPREADSHEET_ID": (sheets_conf, "spreadsheet_id"),
        "GOOGLE_SHEETS_CREDENTIALS_PATH": (sheets_conf, "credentials_path"),
    }
    for env_name, (target, key) in mapping.items():
        value = os.getenv(env_name)
        if value is not None and value != "":
            target[key] = value

    backend = os.getenv("STORAGE_BACKEND", "").strip().lower()
    if backend:
        storage_conf["backend"] = backend
    session_backend = os.getenv("SESSION_BACKEND", "").strip().lower()
    if session_backend:
        storage_conf["session_backend"] = session_backend
    elif os.getenv("AWS_LAMBDA_FUNCTION_NAME"):
        # Lambda instances come and go between messages, so sessions must live in the repository.
        storage_conf["session_backend"] = "repository"

    if os.getenv("SESSION_TTL_MINUTES", "").strip():
        conversation_conf["session_ttl_minutes"] = _safe_positive_int(os.getenv("SESSION_TTL_MINUTES"), 60)
    if os.getenv("MESSAGE_DELAY_MS", "").strip():
        whatsapp_conf["message_delay_ms"] = _safe_positive_int(os.getenv("MESSAGE_DELAY_MS"), 900)
    if "GOOGLE_SHEETS_ENABLED" in os.environ:
        sheets_conf["enabled"] = _is_true(os.getenv("GOOGLE_SHEETS_ENABLED", ""))
    if "WHATSAPP_MOCK_MODE" in os.environ:
        whatsapp_conf["mock_mode"] = _is_true(os.getenv("WHATSAPP_MOCK_MODE", ""))


def _apply_secret_overrides(config: dict[str, Any]) -> None:
    secret_values = load_app_secret_values()
    if not secret_values:
        return

    whatsapp_conf = config.setdefault("whatsapp", {})
    sheets_conf = config.setdefault("storage", {}).setdefault("google_sheets", {})

    mapping = {
        "whatsapp_access_token": "access_token",
        "whatsapp_app_secret": "app_secret",
        "whatsapp_verify_token": "verify_token",
    }
    for secret_key, conf_key in mapping.items():
        value = str(secret_values.get(secret_key, "") or "").strip()
        if value:
            whatsapp_conf[conf_key] = value

    credentials_json = secret_values.get("google_sheets_credentials_json")
    if isinstance(credentials_json, (str, dict)):
        sheets_conf["credentials_json"] = credentials_json


def _inject_sheets_credentials_from_env(config: dict[str, Any]) -> None:
    sheets_conf = config.setdefault("storage", {}).setdefault("google_sheets", {})
    payload = str(os.getenv("GOOGLE_SHEETS_CREDENTIALS_JSON", "") or "").strip()
    if not payload:
        configured_payload = sheets_conf.get("credentials_json")
        if isinstance(configured_payload, dict):
            payload = json.dumps(configured_payload, ensure_ascii=False)
        elif isinstance(configured_payload, str):
            payload = configured_payload.strip()
    if not payload:
        return

    text = payload
    if not payload.lstrip().startswith("{"):
        try:
            text = base64.b64decode(payload).decode("utf-8")
        except Exception:
            text = payload

    try:
        parsed = json.loads(text)
    except Exception as exc:
        raise RuntimeError(f"invalid GOOGLE_SHEETS_CREDENTIALS_JSON: {exc}") from exc
    if not isinstance(parsed, dict) or "type" not in parsed:
        raise RuntimeError("GOOGLE_SHEETS_CREDENTIALS_JSON must be a service account JSON object")

    temp_path = Path(tempfile.gettempdir()) / "sheets_credentials.json"
    temp_path.write_text(json.dumps(parsed, ensure_ascii=False), encoding="utf-8")
    sheets_conf["credentials_path"] = str(temp_path)


def _is_true(value: Any) -> bool:
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off"}:
        return False
    return bool(value)


def _safe_positive_int(value: Any, default: int) -> int:
    try:
        resolved = int(value)
    except Exception:
        return default
    return resolved if resolved > 0 else default
