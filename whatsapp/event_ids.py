from __future__ import annotations

from typing import Any


def build_whatsapp_event_id(message: dict[str, Any]) -> str:
    message_id = str(message.get("id", "") or "").strip()
    if message_id:
        return message_id
    sender = str(message.get("from", "") or "").strip()
    timestamp = str(message.get("timestamp", "") or "").strip()
    message_type = str(message.get("type", "") or "").strip()
    return ":".join(part for part in (sender, timestamp, message_type) if part)
