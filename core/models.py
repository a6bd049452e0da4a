from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional, Union

from core.enums import InputKind, MessageKind, RecordKind, Step

MAX_REPLY_BUTTONS = 3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Session:
    identity: str
    step: Step = Step.WELCOME
    data: dict[str, Any] = field(default_factory=dict)
    last_activity: datetime = field(default_factory=utc_now)
    created_at: datetime = field(default_factory=utc_now)

    def copy(self) -> "Session":
        return Session(
            identity=self.identity,
            step=self.step,
            data=dict(self.data),
            last_activity=self.last_activity,
            created_at=self.created_at,
        )


@dataclass(frozen=True, slots=True)
class InboundEvent:
    identity: str
    kind: InputKind
    payload: str
    correlation_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Button:
    id: str
    title: str


@dataclass(frozen=True, slots=True)
class ListRow:
    id: str
    title: str
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ListSection:
    title: str
    rows: tuple[ListRow, ...]


@dataclass(frozen=True, slots=True)
class TextMessage:
    kind: ClassVar[MessageKind] = MessageKind.TEXT

    body: str
    reply_to: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ButtonsMessage:
    kind: ClassVar[MessageKind] = MessageKind.BUTTONS

    body: str
    buttons: tuple[Button, ...]

    def __post_init__(self) -> None:
        if not self.buttons or len(self.buttons) > MAX_REPLY_BUTTONS:
            raise ValueError(f"buttons message needs 1..{MAX_REPLY_BUTTONS} buttons, got {len(self.buttons)}")


@dataclass(frozen=True, slots=True)
class ListMessage:
    kind: ClassVar[MessageKind] = MessageKind.LIST

    body: str
    button_label: str
    sections: tuple[ListSection, ...]


@dataclass(frozen=True, slots=True)
class CtaUrlMessage:
    kind: ClassVar[MessageKind] = MessageKind.CTA_URL

    body: str
    display_text: str
    url: str


OutboundMessage = Union[TextMessage, ButtonsMessage, ListMessage, CtaUrlMessage]


@dataclass(frozen=True, slots=True)
class ApplicationRecord:
    id: str
    kind: RecordKind
    identity: str
    fields: dict[str, str]
    submitted_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "identity": self.identity,
            "fields": dict(self.fields),
            "submitted_at": self.submitted_at,
        }


@dataclass(slots=True)
class TransitionResult:
    messages: list[OutboundMessage]
    step: Step
    data: dict[str, Any]
    record: Optional[ApplicationRecord] = None
    reset: bool = False
