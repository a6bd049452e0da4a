from __future__ import annotations

import time
from typing import Callable, Sequence

from core.models import OutboundMessage
from whatsapp.send_client import MessageTransport


class MessageSequencer:
    """Delivers the messages of one transition in order with a pause between parts.

    A failed part is logged and the remaining parts are still attempted.
    """

    def __init__(
        self,
        transport: MessageTransport,
        delay_ms: int = 900,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.transport = transport
        self.delay_sec = max(0, int(delay_ms)) / 1000.0
        self._sleep = sleep

    def deliver(self, recipient: str, messages: Sequence[OutboundMessage]) -> int:
        delivered = 0
        for index, message in enumerate(messages):
            if index > 0 and self.delay_sec > 0:
                self._sleep(self.delay_sec)
            try:
                self.transport.send(recipient, message)
                delivered += 1
            except Exception as exc:  # noqa: BLE001
                print(f"whatsapp-send-failed to={recipient} kind={message.kind.value} error={exc}")
        return delivered
