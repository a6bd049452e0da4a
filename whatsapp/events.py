"""Decoding of WhatsApp Cloud API webhook notifications into normalized inbound events."""

from __future__ import annotations

from typing import Any, Iterator

from core.enums import InputKind
from core.models import InboundEvent

BUSINESS_ACCOUNT_OBJECT = "whatsapp_business_account"


class InboundEventError(ValueError):
    pass


def _change_values(payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
    entries = payload.get("entry", [])
    if not isinstance(entries, list):
        raise InboundEventError("entry must be list")
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes", []) or []:
            if not isinstance(change, dict):
                continue
            value = change.get("value", {})
            if isinstance(value, dict):
                yield value


def iter_messages(payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
    for value in _change_values(payload):
        for message in value.get("messages", []) or []:
            if isinstance(message, dict):
                yield message


def iter_statuses(payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
    for value in _change_values(payload):
        for status in value.get("statuses", []) or []:
            if isinstance(status, dict):
                yield status


def normalize_message(message: dict[str, Any]) -> InboundEvent:
    identity = str(message.get("from", "") or "").strip()
    if not identity:
        raise InboundEventError("message has no sender")
    message_id = str(message.get("id", "") or "").strip() or None
    message_type = str(message.get("type", "") or "").strip().lower()

    if message_type == "text":
        body = message.get("text", {}).get("body", "") if isinstance(message.get("text"), dict) else ""
        return InboundEvent(identity=identity, kind=InputKind.TEXT, payload=str(body or ""), correlation_id=message_id)

    if message_type == "interactive":
        interactive = message.get("interactive", {})
        if not isinstance(interactive, dict):
            raise InboundEventError("interactive payload must be object")
        reply_type = str(interactive.get("type", "") or "").strip().lower()
        if reply_type in (InputKind.BUTTON_REPLY.value, InputKind.LIST_REPLY.value):
            reply = interactive.get(reply_type, {})
            selected = str(reply.get("id", "") or "").strip() if isinstance(reply, dict) else ""
            if not selected:
                raise InboundEventError(f"{reply_type} has no id")
            return InboundEvent(
                identity=identity,
                kind=InputKind(reply_type),
                payload=selected,
                correlation_id=message_id,
            )
        raise InboundEventError(f"unsupported interactive type: {reply_type or '-'}")

    if message_type == "button":
        # quick-reply buttons on template messages carry their payload here
        button = message.get("button", {})
        selected = str(button.get("payload", "") or button.get("text", "") or "").strip() if isinstance(button, dict) else ""
        if not selected:
            raise InboundEventError("button has no payload")
        return InboundEvent(identity=identity, kind=InputKind.BUTTON_REPLY, payload=selected, correlation_id=message_id)

    raise InboundEventError(f"unsupported message type: {message_type or '-'}")
