from __future__ import annotations

from typing import Optional

from conversation.flow_engine import FlowEngine
from core.enums import Step
from core.models import InboundEvent, OutboundMessage, TransitionResult
from storage.repository_interface import ApplicationRecorderProtocol, SessionStoreProtocol
from whatsapp import message_templates
from whatsapp.sequencer import MessageSequencer


class ConversationService:
    """Runs one inbound event through the flow engine for its identity.

    Work for a single identity is serialized by the session store lock, which is held from
    reading the session until the last outbound message has been handed to the transport.
    """

    def __init__(
        self,
        engine: FlowEngine,
        sessions: SessionStoreProtocol,
        recorder: ApplicationRecorderProtocol,
        sequencer: MessageSequencer,
        append_main_menu_button: bool = True,
    ) -> None:
        self.engine = engine
        self.sessions = sessions
        self.recorder = recorder
        self.sequencer = sequencer
        self.append_main_menu_button = append_main_menu_button

    def handle(self, event: InboundEvent) -> Optional[TransitionResult]:
        identity = event.identity
        try:
            with self.sessions.lock(identity):
                return self._handle_locked(event)
        except Exception as exc:  # noqa: BLE001
            print(f"session-lock-failed identity={identity} error={exc}")
            return None

    def _handle_locked(self, event: InboundEvent) -> Optional[TransitionResult]:
        identity = event.identity
        try:
            session = self.sessions.get(identity)
        except Exception as exc:  # noqa: BLE001
            print(f"session-load-failed identity={identity} error={exc}")
            return None
        try:
            result = self.engine.transition(session, event)
        except Exception as exc:  # noqa: BLE001
            print(f"transition-failed identity={identity} step={session.step.value} error={exc}")
            return None

        if result.record is not None:
            try:
                self.recorder.record(result.record)
            except Exception as exc:  # noqa: BLE001
                print(f"application-record-failed id={result.record.id} kind={result.record.kind.value} error={exc}")

        if result.reset:
            try:
                self.sessions.delete(identity)
                session = self.sessions.get(identity)
            except Exception as exc:  # noqa: BLE001
                print(f"session-reset-failed identity={identity} error={exc}")
        session.step = result.step
        session.data = dict(result.data)
        try:
            self.sessions.save(session)
        except Exception as exc:  # noqa: BLE001
            print(f"session-save-failed identity={identity} error={exc}")

        self.sequencer.deliver(identity, self._with_trailer(result))
        return result

    def reset(self, identity: str) -> None:
        with self.sessions.lock(identity):
            self.sessions.delete(identity)

    def _with_trailer(self, result: TransitionResult) -> list[OutboundMessage]:
        messages = list(result.messages)
        if not self.append_main_menu_button or not messages:
            return messages
        if result.step == Step.MAIN_MENU or message_templates.has_main_menu_button(messages[-1]):
            return messages
        messages.append(message_templates.main_menu_trailer())
        return messages
