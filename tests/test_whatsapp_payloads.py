from __future__ import annotations

import unittest

from core.models import Button, ButtonsMessage, CtaUrlMessage, ListMessage, ListRow, ListSection, TextMessage
from whatsapp import message_templates
from whatsapp.payloads import to_graph_payload


class GraphPayloadTest(unittest.TestCase):
    def test_text_with_reply_context(self) -> None:
        payload = to_graph_payload("923001112222", TextMessage("Hello", reply_to="wamid.1"))

        self.assertEqual(payload["messaging_product"], "whatsapp")
        self.assertEqual(payload["to"], "923001112222")
        self.assertEqual(payload["type"], "text")
        self.assertEqual(payload["text"]["body"], "Hello")
        self.assertEqual(payload["context"], {"message_id": "wamid.1"})

    def test_text_without_reply_has_no_context(self) -> None:
        payload = to_graph_payload("1", TextMessage("Hello"))
        self.assertNotIn("context", payload)

    def test_buttons_titles_are_clipped(self) -> None:
        message = ButtonsMessage("Pick one", (Button("a", "A very long button title here"),))

        payload = to_graph_payload("1", message)

        button = payload["interactive"]["action"]["buttons"][0]
        self.assertEqual(payload["interactive"]["type"], "button")
        self.assertEqual(button["reply"]["id"], "a")
        self.assertEqual(len(button["reply"]["title"]), 20)

    def test_buttons_message_rejects_more_than_three(self) -> None:
        buttons = tuple(Button(str(i), str(i)) for i in range(4))
        with self.assertRaises(ValueError):
            ButtonsMessage("too many", buttons)

    def test_list_payload(self) -> None:
        message = ListMessage(
            "Select",
            "View Countries",
            (ListSection("Popular Destinations", (ListRow("country_uk", "🇬🇧 United Kingdom", "Chevening"),)),),
        )

        payload = to_graph_payload("1", message)

        action = payload["interactive"]["action"]
        self.assertEqual(payload["interactive"]["type"], "list")
        self.assertEqual(action["button"], "View Countries")
        self.assertEqual(action["sections"][0]["rows"][0], {"id": "country_uk", "title": "🇬🇧 United Kingdom", "description": "Chevening"})

    def test_destination_list_fits_graph_limits(self) -> None:
        message = message_templates.destinations_messages()[1]
        payload = to_graph_payload("1", message)
        rows = payload["interactive"]["action"]["sections"][0]["rows"]
        self.assertLessEqual(len(rows), 10)
        self.assertTrue(all(len(row["title"]) <= 24 for row in rows))

    def test_body_limits_differ_for_text_and_interactive(self) -> None:
        body = "x" * 5000

        text = to_graph_payload("1", TextMessage(body))
        buttons = to_graph_payload("1", ButtonsMessage(body, (Button("main_menu", "Main Menu"),)))
        cta = to_graph_payload("1", CtaUrlMessage(body, "Open booking page", "https://example.com"))

        self.assertEqual(len(text["text"]["body"]), 4096)
        self.assertEqual(len(buttons["interactive"]["body"]["text"]), 1024)
        self.assertEqual(len(cta["interactive"]["body"]["text"]), 1024)

    def test_cta_url_payload(self) -> None:
        payload = to_graph_payload("1", CtaUrlMessage("Book now", "Open booking page", "https://example.com"))

        interactive = payload["interactive"]
        self.assertEqual(interactive["type"], "cta_url")
        self.assertEqual(interactive["action"]["name"], "cta_url")
        self.assertEqual(interactive["action"]["parameters"]["url"], "https://example.com")


if __name__ == "__main__":
    unittest.main()
