from __future__ import annotations

import unittest

from core.enums import InputKind
from whatsapp.event_ids import build_whatsapp_event_id
from whatsapp.events import InboundEventError, iter_messages, iter_statuses, normalize_message


def _payload(value: dict) -> dict:
    return {"object": "whatsapp_business_account", "entry": [{"id": "waba-1", "changes": [{"field": "messages", "value": value}]}]}


class WhatsAppEventIdsTest(unittest.TestCase):
    def test_prioritize_message_id(self) -> None:
        message = {"id": "wamid.ABC", "from": "923001112222", "timestamp": "1700000000", "type": "text"}
        self.assertEqual(build_whatsapp_event_id(message), "wamid.ABC")

    def test_fallback_to_sender_timestamp_type(self) -> None:
        message = {"from": "923001112222", "timestamp": "1700000000", "type": "text"}
        self.assertEqual(build_whatsapp_event_id(message), "923001112222:1700000000:text")


class WhatsAppEventsTest(unittest.TestCase):
    def test_iterates_messages_and_statuses(self) -> None:
        payload = _payload(
            {
                "messages": [{"id": "m1", "from": "1", "type": "text", "text": {"body": "hi"}}],
                "statuses": [{"id": "m0", "status": "delivered"}],
            }
        )
        self.assertEqual([m["id"] for m in iter_messages(payload)], ["m1"])
        self.assertEqual([s["status"] for s in iter_statuses(payload)], ["delivered"])

    def test_entry_must_be_list(self) -> None:
        with self.assertRaises(InboundEventError):
            list(iter_messages({"entry": {"changes": []}}))

    def test_normalize_text(self) -> None:
        event = normalize_message({"id": "m1", "from": "923001112222", "type": "text", "text": {"body": " Hello "}})
        self.assertEqual(event.identity, "923001112222")
        self.assertEqual(event.kind, InputKind.TEXT)
        self.assertEqual(event.payload, " Hello ")
        self.assertEqual(event.correlation_id, "m1")

    def test_normalize_button_and_list_replies(self) -> None:
        button = normalize_message(
            {
                "id": "m2",
                "from": "1",
                "type": "interactive",
                "interactive": {"type": "button_reply", "button_reply": {"id": "main_menu", "title": "Main Menu"}},
            }
        )
        listed = normalize_message(
            {
                "id": "m3",
                "from": "1",
                "type": "interactive",
                "interactive": {"type": "list_reply", "list_reply": {"id": "country_uk", "title": "UK"}},
            }
        )
        self.assertEqual((button.kind, button.payload), (InputKind.BUTTON_REPLY, "main_menu"))
        self.assertEqual((listed.kind, listed.payload), (InputKind.LIST_REPLY, "country_uk"))

    def test_template_quick_reply_button(self) -> None:
        event = normalize_message({"id": "m4", "from": "1", "type": "button", "button": {"payload": "talk_to_agent", "text": "Agent"}})
        self.assertEqual((event.kind, event.payload), (InputKind.BUTTON_REPLY, "talk_to_agent"))

    def test_unsupported_messages_are_rejected(self) -> None:
        with self.assertRaises(InboundEventError):
            normalize_message({"id": "m5", "from": "1", "type": "image", "image": {"id": "media"}})
        with self.assertRaises(InboundEventError):
            normalize_message({"id": "m6", "type": "text", "text": {"body": "hi"}})
        with self.assertRaises(InboundEventError):
            normalize_message({"id": "m7", "from": "1", "type": "interactive", "interactive": {"type": "nfm_reply"}})


if __name__ == "__main__":
    unittest.main()
