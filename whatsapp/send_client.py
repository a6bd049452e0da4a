from __future__ import annotations

import json
from typing import Any, Callable, Protocol
from urllib import error, request

from core.models import OutboundMessage
from whatsapp.message_templates import render_console
from whatsapp.payloads import to_graph_payload


class WhatsAppApiError(RuntimeError):
    pass


class MessageTransport(Protocol):
    def send(self, recipient: str, message: OutboundMessage) -> None: ...


class WhatsAppCloudClient:
    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v22.0",
        api_base_url: str = "https://graph.facebook.com",
        timeout_sec: float = 10.0,
    ) -> None:
        self.access_token = (access_token or "").strip()
        self.phone_number_id = (phone_number_id or "").strip()
        self.api_version = (api_version or "v22.0").strip()
        self.api_base_url = (api_base_url or "https://graph.facebook.com").rstrip("/")
        self.timeout_sec = float(timeout_sec)

    @property
    def messages_url(self) -> str:
        return f"{self.api_base_url}/{self.api_version}/{self.phone_number_id}/messages"

    def send(self, recipient: str, message: OutboundMessage) -> None:
        if not self.access_token:
            raise WhatsAppApiError("whatsapp.access_token is required")
        if not self.phone_number_id:
            raise WhatsAppApiError("whatsapp.phone_number_id is required")
        target = (recipient or "").strip()
        if not target:
            raise WhatsAppApiError("recipient is empty")

        self._post_json(to_graph_payload(target, message))

    def _post_json(self, payload: dict[str, Any]) -> None:
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req = request.Request(url=self.messages_url, data=data, method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        req.add_header("Authorization", f"Bearer {self.access_token}")
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                status = int(getattr(resp, "status", 200))
                if status >= 400:
                    raise WhatsAppApiError(f"whatsapp api error: status={status}")
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                pass
            raise WhatsAppApiError(f"whatsapp api error: status={exc.code} body={body}") from exc
        except error.URLError as exc:
            raise WhatsAppApiError(f"whatsapp api connection error: {exc}") from exc


class ConsoleTransport:
    """Prints outbound messages instead of calling the Graph API."""

    def __init__(self, writer: Callable[[str], None] = print) -> None:
        self._writer = writer

    def send(self, recipient: str, message: OutboundMessage) -> None:
        reply = f" (reply to {message.reply_to})" if getattr(message, "reply_to", None) else ""
        self._writer(f"[bot -> {recipient}] {message.kind.value}{reply}\n{render_console(message)}\n")


def create_transport(whatsapp_conf: dict[str, Any]) -> MessageTransport:
    if bool(whatsapp_conf.get("mock_mode", False)):
        return ConsoleTransport()
    return WhatsAppCloudClient(
        access_token=str(whatsapp_conf.get("access_token", "") or ""),
        phone_number_id=str(whatsapp_conf.get("phone_number_id", "") or ""),
        api_version=str(whatsapp_conf.get("api_version", "v22.0") or "v22.0"),
        api_base_url=str(whatsapp_conf.get("api_base_url", "https://graph.facebook.com") or "https://graph.facebook.com"),
        timeout_sec=float(whatsapp_conf.get("timeout_sec", 10)),
    )
