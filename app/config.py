from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "whatsapp": {
        "enabled": True,
        "access_token": None,
        "phone_number_id": None,
        "api_version": "v22.0",
        "api_base_url": "https://graph.facebook.com",
        "verify_token": "innova",
        "app_secret": None,
        "webhook_path": "/webhook",
        "timeout_sec": 10,
        "message_delay_ms": 900,
        "mock_mode": False,
        "append_main_menu_button": True,
    },
    "conversation": {
        "session_ttl_minutes": 60,
        "sweep_interval_sec": 3600,
        "greeting_override_steps": None,
        "form_modes": {
            "study_abroad": "bulk",
            "enrollment": "bulk",
            "consultation": "sequential",
        },
        "booking_url": "https://innovaconsultant.com/testing/study-in-united-kingdom/",
        "website_url": "https://www.innovaconsultant.com",
    },
    "storage": {
        "backend": "sqlite",
        "session_backend": "memory",
        "sqlite_path": "data/bot.db",
        "dynamodb": {
            "region": None,
            "table_prefix": "innova-bot",
            "event_ttl_days": 7,
            "tables": {
                "event_dedupe": None,
                "sessions": None,
                "applications": None,
            },
        },
        "google_sheets": {
            "enabled": False,
            "spreadsheet_id": None,
            "credentials_path": None,
            "tabs": {
                "study_abroad": "StudyApplications",
                "enrollment": "Enrollments",
                "consultation": "Consultations",
            },
        },
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | None = None) -> dict[str, Any]:
    if not config_path:
        return deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if not path.exists():
        return deepcopy(DEFAULT_CONFIG)

    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return deepcopy(DEFAULT_CONFIG)

    if path.suffix.lower() == ".json":
        import json

        loaded = json.loads(text)
    else:
        import yaml

        loaded = yaml.safe_load(text)

    data = loaded if isinstance(loaded, dict) else {}
    return deep_merge(deepcopy(DEFAULT_CONFIG), data)
