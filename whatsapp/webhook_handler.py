from __future__ import annotations

import json
import threading
import time
from typing import Any, Callable

from conversation.conversation_service import ConversationService
from conversation.flow_engine import FlowEngine
from core.enums import RecordKind
from storage.repository_factory import (
    create_application_recorder,
    create_repository,
    create_session_store,
)
from storage.repository_interface import (
    ApplicationRecorderProtocol,
    BotRepositoryProtocol,
    SessionStoreProtocol,
)
from whatsapp.event_ids import build_whatsapp_event_id
from whatsapp.events import (
    BUSINESS_ACCOUNT_OBJECT,
    InboundEventError,
    iter_messages,
    iter_statuses,
    normalize_message,
)
from whatsapp.send_client import MessageTransport, create_transport
from whatsapp.sequencer import MessageSequencer
from whatsapp.signature import verify_whatsapp_signature


class WhatsAppWebhookHandler:
    def __init__(
        self,
        config: dict[str, Any],
        transport: MessageTransport | None = None,
        repository: BotRepositoryProtocol | None = None,
        session_store: SessionStoreProtocol | None = None,
        recorder: ApplicationRecorderProtocol | None = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.whatsapp_conf = config.get("whatsapp", {})
        self.conversation_conf = config.get("conversation", {})
        self.enabled = bool(self.whatsapp_conf.get("enabled", False))
        self.verify_token = str(self.whatsapp_conf.get("verify_token", "") or "").strip()
        self.app_secret = str(self.whatsapp_conf.get("app_secret", "") or "").strip()
        self.sweep_interval_sec = float(self.conversation_conf.get("sweep_interval_sec", 3600))

        self.repository = repository or create_repository(config)
        self.session_store = session_store or create_session_store(config, self.repository)
        self.recorder = recorder or create_application_recorder(config, self.repository)
        self.transport = transport or create_transport(self.whatsapp_conf)
        self.conversation_service = ConversationService(
            engine=FlowEngine.from_config(config),
            sessions=self.session_store,
            recorder=self.recorder,
            sequencer=MessageSequencer(
                self.transport,
                delay_ms=int(self.whatsapp_conf.get("message_delay_ms", 900)),
                sleep=sleep,
            ),
            append_main_menu_button=bool(self.whatsapp_conf.get("append_main_menu_button", True)),
        )
        self._monotonic = monotonic
        self._sweep_lock = threading.Lock()
        self._last_sweep = monotonic()

    def verify_subscription(self, mode: str | None, token: str | None, challenge: str | None) -> tuple[int, str]:
        if mode and self.verify_token and (token or "").strip() == self.verify_token:
            return 200, str(challenge or "")
        return 403, "Forbidden"

    def handle(self, body: bytes, signature: str | None) -> tuple[int, dict[str, Any]]:
        if not self.enabled:
            return 503, {"ok": False, "error": "whatsapp.enabled is false"}
        if self.app_secret and not verify_whatsapp_signature(self.app_secret, body, signature):
            return 401, {"ok": False, "error": "invalid signature"}

        try:
            payload = json.loads(body.decode("utf-8"))
        except Exception:
            return 400, {"ok": False, "error": "invalid json payload"}
        if not isinstance(payload, dict):
            return 400, {"ok": False, "error": "payload must be object"}
        if payload.get("object") != BUSINESS_ACCOUNT_OBJECT:
            return 200, {"ok": True, "handled": 0, "skipped": 0, "errors": []}

        handled = 0
        skipped = 0
        errors: list[str] = []
        try:
            statuses = list(iter_statuses(payload))
            messages = list(iter_messages(payload))
        except InboundEventError as exc:
            print(f"inbound-event-dropped reason={exc}")
            return 400, {"ok": False, "error": str(exc)}

        for status in statuses:
            print(f"status-update id={status.get('id', '')} status={status.get('status', '')}")
            skipped += 1

        for message in messages:
            event_id = build_whatsapp_event_id(message)
            if event_id and not self.repository.mark_event_processed(event_id):
                skipped += 1
                continue
            try:
                if self.handle_message(message):
                    handled += 1
                else:
                    skipped += 1
            except Exception as exc:  # noqa: BLE001
                errors.append(str(exc))

        self.maybe_sweep()
        return 200, {"ok": len(errors) == 0, "handled": handled, "skipped": skipped, "errors": errors}

    def handle_message(self, message: dict[str, Any]) -> bool:
        try:
            event = normalize_message(message)
        except InboundEventError as exc:
            print(f"inbound-event-dropped id={message.get('id', '')} reason={exc}")
            return False
        self.conversation_service.handle(event)
        return True

    def list_applications(self, kind: str | None = None) -> list[dict[str, Any]]:
        record_kind = RecordKind(kind.strip().lower()) if kind and kind.strip() else None
        return [record.to_dict() for record in self.repository.list_applications(record_kind)]

    def maybe_sweep(self) -> int:
        now = self._monotonic()
        with self._sweep_lock:
            if now - self._last_sweep < self.sweep_interval_sec:
                return 0
            self._last_sweep = now
        try:
            removed = self.session_store.sweep()
        except Exception as exc:  # noqa: BLE001
            print(f"session-sweep-failed error={exc}")
            return 0
        if removed:
            print(f"session-sweep removed={removed}")
        return removed
