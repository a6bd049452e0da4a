from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from conversation.catalog import COUNTRY_BY_KEY, PACKAGE_BY_KEY, TEST_BY_KEY, course_name_for
from conversation.forms import (
    CONSULTATION_FORM,
    ENROLLMENT_FORM,
    STUDY_ABROAD_FORM,
    FormSchema,
    capture_field,
    collect_bulk,
    fill,
)
from conversation.state_machine import (
    Action,
    MenuOption,
    StepSpec,
    build_step_table,
    match_override,
    normalize_token,
)
from core.enums import FormMode, RecordKind, Step, StepKind
from core.models import (
    ApplicationRecord,
    InboundEvent,
    OutboundMessage,
    Session,
    TextMessage,
    TransitionResult,
    utc_now,
)
from whatsapp import message_templates

DEFAULT_BOOKING_URL = "https://innovaconsultant.com/testing/study-in-united-kingdom/"
DEFAULT_WEBSITE_URL = "https://www.innovaconsultant.com"

DEFAULT_FORM_MODES: dict[RecordKind, FormMode] = {
    RecordKind.STUDY_ABROAD: FormMode.BULK,
    RecordKind.ENROLLMENT: FormMode.BULK,
    RecordKind.CONSULTATION: FormMode.SEQUENTIAL,
}

CONFIRMATIONS: dict[RecordKind, Callable[[ApplicationRecord], list[OutboundMessage]]] = {
    RecordKind.STUDY_ABROAD: message_templates.study_abroad_confirmation,
    RecordKind.ENROLLMENT: message_templates.enrollment_confirmation,
    RecordKind.CONSULTATION: message_templates.consultation_confirmation,
}


def generate_record_id(prefix: str) -> str:
    return f"{prefix}{time.time_ns() // 1000}"


def parse_form_modes(raw: Optional[Mapping[str, Any]]) -> dict[RecordKind, FormMode]:
    modes = dict(DEFAULT_FORM_MODES)
    for key, value in (raw or {}).items():
        try:
            kind = RecordKind(str(key).strip().lower())
            mode = FormMode(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"invalid form mode: {key}={value}") from exc
        modes[kind] = mode
    return modes


class FlowEngine:
    """Maps (session, inbound event) to outbound messages and the next session state.

    The engine never mutates the session it is given and performs no I/O; records are
    returned for the caller to persist.
    """

    def __init__(
        self,
        form_modes: Optional[Mapping[str, Any]] = None,
        greeting_override_steps: Optional[Iterable[str]] = None,
        booking_url: str = DEFAULT_BOOKING_URL,
        website_url: str = DEFAULT_WEBSITE_URL,
        id_factory: Callable[[str], str] = generate_record_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.form_modes = parse_form_modes(form_modes)
        self.steps = build_step_table(greeting_override_steps)
        self.booking_url = booking_url
        self.website_url = website_url
        self._id_factory = id_factory
        self._clock = clock
        self._actions: dict[Action, Callable[[Session, InboundEvent, Optional[MenuOption]], TransitionResult]] = {
            Action.WELCOME: self._welcome,
            Action.AGENT: self._agent,
            Action.SHOW_DESTINATIONS: self._show_destinations,
            Action.SELECT_COUNTRY: self._select_country,
            Action.SHOW_TESTS: self._show_tests,
            Action.SHOW_IELTS_TYPES: self._show_ielts_types,
            Action.SHOW_PTE_TYPES: self._show_pte_types,
            Action.SHOW_PACKAGES: self._show_packages,
            Action.START_ENROLLMENT: self._start_enrollment,
            Action.SHOW_BOOKING_LINK: self._show_booking_link,
            Action.SHOW_ABOUT: self._show_about,
            Action.START_CONSULTATION: self._start_consultation,
        }

    @classmethod
    def from_config(cls, config: dict[str, Any], **kwargs: Any) -> "FlowEngine":
        conversation_cfg = config.get("conversation", {})
        return cls(
            form_modes=conversation_cfg.get("form_modes"),
            greeting_override_steps=conversation_cfg.get("greeting_override_steps"),
            booking_url=str(conversation_cfg.get("booking_url") or DEFAULT_BOOKING_URL),
            website_url=str(conversation_cfg.get("website_url") or DEFAULT_WEBSITE_URL),
            **kwargs,
        )

    def transition(self, session: Session, event: InboundEvent) -> TransitionResult:
        spec = self.steps[session.step]

        override = match_override(event, spec)
        if override is not None:
            if override.action == Action.WELCOME:
                reply_to = event.correlation_id if override.reply_to_inbound else None
                return self._welcome_result(reply_to)
            return self._actions[override.action](session, event, None)

        if spec.kind == StepKind.FORM:
            return self._handle_form(session, event, spec)

        token = normalize_token(event.payload)
        option = spec.select(token)
        if option is not None:
            return self._actions[option.action](session, event, option)
        if spec.fallback is not None:
            return self._actions[spec.fallback](session, event, None)
        return self._stay(session, spec.invalid_prompt or message_templates.UNKNOWN_INPUT_TEXT)

    # menu actions

    def _welcome_result(self, reply_to: Optional[str]) -> TransitionResult:
        return TransitionResult(
            messages=message_templates.welcome_messages(reply_to=reply_to),
            step=Step.MAIN_MENU,
            data={},
            reset=True,
        )

    def _welcome(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        # typed from the welcome step the greeting replies to the inbound message
        reply_to = event.correlation_id if session.step == Step.WELCOME else None
        return self._welcome_result(reply_to)

    def _agent(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        return TransitionResult(message_templates.agent_ack_messages(), session.step, dict(session.data))

    def _show_destinations(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        return TransitionResult(message_templates.destinations_messages(), Step.SELECT_COUNTRY, dict(session.data))

    def _select_country(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        country = COUNTRY_BY_KEY[option.argument]
        data = {"country": country.name, "countryCode": country.code}
        step, prompt = self._form_entry(STUDY_ABROAD_FORM, data)
        return TransitionResult(message_templates.country_form_messages(country, prompt), step, data)

    def _show_tests(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        return TransitionResult(message_templates.english_tests_messages(), Step.SELECT_TEST_TYPE, dict(session.data))

    def _show_ielts_types(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        return TransitionResult(message_templates.ielts_types_messages(), Step.SELECT_IELTS_TYPE, dict(session.data))

    def _show_pte_types(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        return TransitionResult(message_templates.pte_types_messages(), Step.SELECT_PTE_TYPE, dict(session.data))

    def _show_packages(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        test = TEST_BY_KEY[option.argument]
        data = {"testName": test.family, "testVariant": test.name}
        return TransitionResult(message_templates.packages_messages(test), Step.SELECT_PACKAGE, data)

    def _start_enrollment(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        package = PACKAGE_BY_KEY[option.argument]
        data = dict(session.data)
        data.update(
            {
                "packageType": package.name,
                "cost": package.cost,
                "courseName": course_name_for(package, data.get("testName")),
            }
        )
        step, prompt = self._form_entry(ENROLLMENT_FORM, data)
        return TransitionResult(message_templates.enrollment_intro_messages(package, prompt), step, data)

    def _show_booking_link(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        return TransitionResult(
            message_templates.booking_link_messages(self.booking_url),
            Step.AFTER_BOOKING_LINK,
            dict(session.data),
        )

    def _show_about(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        return TransitionResult(message_templates.about_messages(self.website_url), Step.AFTER_ABOUT, dict(session.data))

    def _start_consultation(self, session: Session, event: InboundEvent, option: Optional[MenuOption]) -> TransitionResult:
        data: dict[str, Any] = {}
        step, prompt = self._form_entry(CONSULTATION_FORM, data)
        return TransitionResult(message_templates.consultation_intro_messages(prompt), step, data)

    def _stay(self, session: Session, prompt: str) -> TransitionResult:
        return TransitionResult(message_templates.corrective_prompt(prompt), session.step, dict(session.data))

    # forms

    def _form_entry(self, schema: FormSchema, data: dict[str, Any]) -> tuple[Step, str]:
        if self.form_modes[schema.kind] == FormMode.SEQUENTIAL:
            first = schema.fields[0]
            return first.step, fill(first.prompt, data)
        return schema.bulk_step, schema.bulk_prompt(data)

    def _handle_form(self, session: Session, event: InboundEvent, spec: StepSpec) -> TransitionResult:
        schema = spec.form
        if session.step == schema.bulk_step:
            result = collect_bulk(schema, event.payload, session.data)
            if not result.accepted:
                return self._stay(session, result.prompt)
            return self._complete(schema, session, result.values, session.data)

        form_field = schema.field_for_step(session.step)
        captured = capture_field(schema, form_field, event.payload, session.data)
        if not captured.accepted:
            return self._stay(session, captured.prompt)
        if captured.complete:
            return self._complete(schema, session, captured.data, captured.data)
        return TransitionResult(
            messages=[TextMessage(captured.prompt)],
            step=captured.next_field.step,
            data=captured.data,
        )

    def _complete(
        self,
        schema: FormSchema,
        session: Session,
        values: dict[str, str],
        data: dict[str, Any],
    ) -> TransitionResult:
        record = ApplicationRecord(
            id=self._id_factory(schema.id_prefix),
            kind=schema.kind,
            identity=session.identity,
            fields=schema.record_fields(values, data),
            submitted_at=self._clock().isoformat(),
        )
        return TransitionResult(
            messages=CONFIRMATIONS[schema.kind](record),
            step=schema.after_step,
            data={},
            record=record,
        )
