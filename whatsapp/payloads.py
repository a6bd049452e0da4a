from __future__ import annotations

from typing import Any

from core.models import (
    MAX_REPLY_BUTTONS,
    ButtonsMessage,
    CtaUrlMessage,
    ListMessage,
    OutboundMessage,
    TextMessage,
)

MAX_TEXT_BODY_CHARS = 4096
MAX_INTERACTIVE_BODY_CHARS = 1024
MAX_BUTTON_TITLE_CHARS = 20
MAX_LIST_BUTTON_CHARS = 20
MAX_ROW_TITLE_CHARS = 24
MAX_ROW_DESCRIPTION_CHARS = 72
MAX_SECTION_TITLE_CHARS = 24


def _clip(text: str, limit: int) -> str:
    value = str(text or "")
    return value if len(value) <= limit else value[:limit]


def to_graph_payload(recipient: str, message: OutboundMessage) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": recipient,
    }

    if isinstance(message, TextMessage):
        payload["type"] = "text"
        payload["text"] = {"preview_url": False, "body": _clip(message.body, MAX_TEXT_BODY_CHARS)}
        if message.reply_to:
            payload["context"] = {"message_id": message.reply_to}
        return payload

    payload["type"] = "interactive"
    if isinstance(message, ButtonsMessage):
        payload["interactive"] = {
            "type": "button",
            "body": {"text": _clip(message.body, MAX_INTERACTIVE_BODY_CHARS)},
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": b.id, "title": _clip(b.title, MAX_BUTTON_TITLE_CHARS)}}
                    for b in message.buttons[:MAX_REPLY_BUTTONS]
                ]
            },
        }
        return payload

    if isinstance(message, ListMessage):
        sections = []
        for section in message.sections:
            rows = []
            for row in section.rows:
                item = {"id": row.id, "title": _clip(row.title, MAX_ROW_TITLE_CHARS)}
                if row.description:
                    item["description"] = _clip(row.description, MAX_ROW_DESCRIPTION_CHARS)
                rows.append(item)
            sections.append({"title": _clip(section.title, MAX_SECTION_TITLE_CHARS), "rows": rows})
        payload["interactive"] = {
            "type": "list",
            "body": {"text": _clip(message.body, MAX_INTERACTIVE_BODY_CHARS)},
            "action": {"button": _clip(message.button_label, MAX_LIST_BUTTON_CHARS), "sections": sections},
        }
        return payload

    if isinstance(message, CtaUrlMessage):
        payload["interactive"] = {
            "type": "cta_url",
            "body": {"text": _clip(message.body, MAX_INTERACTIVE_BODY_CHARS)},
            "action": {
                "name": "cta_url",
                "parameters": {"display_text": _clip(message.display_text, MAX_BUTTON_TITLE_CHARS), "url": message.url},
            },
        }
        return payload

    raise TypeError(f"unsupported outbound message: {type(message).__name__}")
