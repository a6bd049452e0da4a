from __future__ import annotations

import unittest
from typing import Any
from unittest import mock

from core.models import TextMessage
from whatsapp.send_client import ConsoleTransport, WhatsAppApiError, WhatsAppCloudClient, create_transport
from whatsapp.sequencer import MessageSequencer


class _FlakyTransport:
    def __init__(self, fail_on: set[str]) -> None:
        self.fail_on = fail_on
        self.sent: list[str] = []

    def send(self, recipient: str, message: Any) -> None:
        if message.body in self.fail_on:
            raise WhatsAppApiError("status=500")
        self.sent.append(message.body)


class MessageSequencerTest(unittest.TestCase):
    def test_delivers_in_order_with_pauses_between_parts(self) -> None:
        transport = _FlakyTransport(set())
        sleeps: list[float] = []
        sequencer = MessageSequencer(transport, delay_ms=900, sleep=sleeps.append)

        delivered = sequencer.deliver("u1", [TextMessage("a"), TextMessage("b"), TextMessage("c")])

        self.assertEqual(delivered, 3)
        self.assertEqual(transport.sent, ["a", "b", "c"])
        self.assertEqual(sleeps, [0.9, 0.9])

    def test_failed_part_does_not_stop_the_rest(self) -> None:
        transport = _FlakyTransport({"b"})
        sequencer = MessageSequencer(transport, delay_ms=0, sleep=lambda _: None)

        delivered = sequencer.deliver("u1", [TextMessage("a"), TextMessage("b"), TextMessage("c")])

        self.assertEqual(delivered, 2)
        self.assertEqual(transport.sent, ["a", "c"])


class SendClientTest(unittest.TestCase):
    def test_cloud_client_requires_credentials(self) -> None:
        client = WhatsAppCloudClient(access_token="", phone_number_id="123")
        with self.assertRaises(WhatsAppApiError):
            client.send("1", TextMessage("hi"))

    def test_cloud_client_posts_graph_payload(self) -> None:
        client = WhatsAppCloudClient(access_token="token", phone_number_id="123", api_version="v22.0")
        with mock.patch.object(client, "_post_json") as post:
            client.send("923001112222", TextMessage("hi"))
        payload = post.call_args.args[0]
        self.assertEqual(payload["to"], "923001112222")
        self.assertEqual(client.messages_url, "https://graph.facebook.com/v22.0/123/messages")

    def test_mock_mode_uses_console_transport(self) -> None:
        self.assertIsInstance(create_transport({"mock_mode": True}), ConsoleTransport)
        self.assertIsInstance(create_transport({"access_token": "t", "phone_number_id": "1"}), WhatsAppCloudClient)

    def test_console_transport_renders_message(self) -> None:
        lines: list[str] = []
        ConsoleTransport(lines.append).send("u1", TextMessage("hello", reply_to="wamid.1"))
        self.assertIn("[bot -> u1] text (reply to wamid.1)", lines[0])
        self.assertIn("hello", lines[0])


if __name__ == "__main__":
    unittest.main()
