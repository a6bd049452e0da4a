from __future__ import annotations

import contextlib
import hashlib
import hmac
import io
import json
import tempfile
import unittest
from pathlib import Path
from typing import Any

from core.enums import RecordKind, Step
from storage.repository import BotRepository
from whatsapp import message_templates
from whatsapp.webhook_handler import WhatsAppWebhookHandler

SENDER = "923001112222"
STUDY_ABROAD_TEXT = "\n".join(
    ["Ali Khan", "+923001234567", "BSc", "2023", "3.4", "FAST", "None", "Lahore", "London", "30 lakh"]
)


class _DummyTransport:
    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []

    def send(self, recipient: str, message: Any) -> None:
        self.calls.append((recipient, message))


def _text_message(message_id: str, body: str) -> dict[str, Any]:
    return {"id": message_id, "from": SENDER, "timestamp": "1700000000", "type": "text", "text": {"body": body}}


def _body(*messages: dict[str, Any], statuses: list[dict[str, Any]] | None = None) -> bytes:
    value: dict[str, Any] = {"messaging_product": "whatsapp", "messages": list(messages)}
    if statuses:
        value["statuses"] = statuses
    payload = {"object": "whatsapp_business_account", "entry": [{"id": "waba", "changes": [{"field": "messages", "value": value}]}]}
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def _signature(secret: str, body: bytes) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _build_config(tmp_dir: str, **whatsapp: Any) -> dict[str, Any]:
    whatsapp_conf = {
        "enabled": True,
        "verify_token": "innova",
        "app_secret": None,
        "message_delay_ms": 0,
        "append_main_menu_button": True,
    }
    whatsapp_conf.update(whatsapp)
    return {
        "whatsapp": whatsapp_conf,
        "conversation": {"session_ttl_minutes": 60, "sweep_interval_sec": 3600},
        "storage": {"backend": "sqlite", "session_backend": "memory", "sqlite_path": str(Path(tmp_dir) / "bot.db")},
    }


def _handler(config: dict[str, Any], transport: _DummyTransport, **kwargs: Any) -> WhatsAppWebhookHandler:
    return WhatsAppWebhookHandler(
        config=config,
        transport=transport,
        repository=BotRepository(config["storage"]["sqlite_path"]),
        sleep=lambda _: None,
        **kwargs,
    )


class WhatsAppWebhookHandlerTest(unittest.TestCase):
    def test_verify_subscription(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            handler = _handler(_build_config(tmp), _DummyTransport())
            self.assertEqual(handler.verify_subscription("subscribe", "innova", "12345"), (200, "12345"))
            self.assertEqual(handler.verify_subscription("subscribe", "wrong", "12345"), (403, "Forbidden"))
            self.assertEqual(handler.verify_subscription(None, "innova", "12345"), (403, "Forbidden"))

    def test_handle_invalid_signature(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            handler = _handler(_build_config(tmp, app_secret="secret"), _DummyTransport())
            status, payload = handler.handle(body=_body(), signature="sha256=invalid")
            self.assertEqual(status, 401)
            self.assertFalse(payload["ok"])

    def test_handle_signed_greeting(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            transport = _DummyTransport()
            handler = _handler(_build_config(tmp, app_secret="secret"), transport)
            body = _body(_text_message("wamid.1", "Hi"))

            status, payload = handler.handle(body=body, signature=_signature("secret", body))

            self.assertEqual(status, 200)
            self.assertEqual(payload, {"ok": True, "handled": 1, "skipped": 0, "errors": []})
            self.assertEqual(len(transport.calls), 2)
            recipient, greeting = transport.calls[0]
            self.assertEqual(recipient, SENDER)
            self.assertEqual(greeting.body, message_templates.GREETING_TEXT)
            self.assertEqual(greeting.reply_to, "wamid.1")

    def test_duplicate_delivery_is_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            transport = _DummyTransport()
            handler = _handler(_build_config(tmp), transport)
            body = _body(_text_message("wamid.1", "menu"))

            handler.handle(body=body, signature=None)
            status, payload = handler.handle(body=body, signature=None)

            self.assertEqual(status, 200)
            self.assertEqual(payload["handled"], 0)
            self.assertEqual(payload["skipped"], 1)
            self.assertEqual(len(transport.calls), 2)

    def test_malformed_entry_is_dropped_with_log_line(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            transport = _DummyTransport()
            handler = _handler(_build_config(tmp), transport)
            stdout = io.StringIO()
            with contextlib.redirect_stdout(stdout):
                status, payload = handler.handle(body=b'{"object":"whatsapp_business_account","entry":{}}', signature=None)

            self.assertEqual(status, 400)
            self.assertEqual(payload["error"], "entry must be list")
            self.assertIn("inbound-event-dropped reason=entry must be list", stdout.getvalue())
            self.assertEqual(transport.calls, [])

    def test_statuses_and_unsupported_messages_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            transport = _DummyTransport()
            handler = _handler(_build_config(tmp), transport)
            image = {"id": "wamid.2", "from": SENDER, "type": "image", "image": {"id": "media-1"}}
            body = _body(image, statuses=[{"id": "wamid.0", "status": "read"}])

            status, payload = handler.handle(body=body, signature=None)

            self.assertEqual(status, 200)
            self.assertEqual(payload["handled"], 0)
            self.assertEqual(payload["skipped"], 2)
            self.assertEqual(transport.calls, [])

    def test_rejects_bad_payloads(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            handler = _handler(_build_config(tmp), _DummyTransport())
            self.assertEqual(handler.handle(body=b"not json", signature=None)[0], 400)
            self.assertEqual(handler.handle(body=b"[]", signature=None)[0], 400)
            status, payload = handler.handle(body=b'{"object":"page","entry":[]}', signature=None)
            self.assertEqual(status, 200)
            self.assertEqual(payload["handled"], 0)

    def test_disabled_channel(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            handler = _handler(_build_config(tmp, enabled=False), _DummyTransport())
            status, _ = handler.handle(body=_body(), signature=None)
            self.assertEqual(status, 503)

    def test_study_abroad_conversation_is_stored(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            transport = _DummyTransport()
            handler = _handler(_build_config(tmp), transport)
            for idx, text in enumerate(["menu", "1", "2", STUDY_ABROAD_TEXT]):
                body = _body(_text_message(f"wamid.{idx}", text))
                status, payload = handler.handle(body=body, signature=None)
                self.assertEqual((status, payload["handled"]), (200, 1))

            rows = handler.list_applications("study_abroad")

            self.assertEqual(len(rows), 1)
            self.assertEqual(rows[0]["kind"], RecordKind.STUDY_ABROAD.value)
            self.assertEqual(rows[0]["identity"], SENDER)
            self.assertEqual(rows[0]["fields"]["country"], "United Kingdom")
            self.assertEqual(rows[0]["fields"]["preferredCity"], "London")
            self.assertTrue(rows[0]["id"].startswith("SA"))
            self.assertEqual(handler.session_store.get(SENDER).step, Step.AFTER_STUDY_ABROAD)
            with self.assertRaises(ValueError):
                handler.list_applications("visa")

    def test_sweep_runs_after_interval(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            clock = {"now": 0.0}
            handler = _handler(_build_config(tmp), _DummyTransport(), monotonic=lambda: clock["now"])
            handler.session_store.get("someone")

            self.assertEqual(handler.maybe_sweep(), 0)
            clock["now"] = 4000.0
            self.assertEqual(handler.maybe_sweep(), 0)
            self.assertEqual(len(handler.session_store), 1)


if __name__ == "__main__":
    unittest.main()
