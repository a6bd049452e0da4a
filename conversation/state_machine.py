"""Step table and global override predicates for the admissions conversation.

Each step carries its kind, the menu options it accepts, the corrective prompt for anything
else, and whether greeting keywords may pull the user back to the welcome sequence.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from conversation.catalog import COUNTRIES
from conversation.forms import FORMS, FormSchema
from core.enums import InputKind, Step, StepKind
from core.models import InboundEvent

GREETING_KEYWORDS = ("hi", "hello", "start", "menu", "help")
AGENT_TOKENS = ("talk_to_agent", "live_agent", "agent")
MAIN_MENU_TOKEN = "main_menu"


class Action(str, Enum):
    WELCOME = "welcome"
    AGENT = "agent"
    SHOW_DESTINATIONS = "show_destinations"
    SELECT_COUNTRY = "select_country"
    SHOW_TESTS = "show_tests"
    SHOW_IELTS_TYPES = "show_ielts_types"
    SHOW_PTE_TYPES = "show_pte_types"
    SHOW_PACKAGES = "show_packages"
    START_ENROLLMENT = "start_enrollment"
    SHOW_BOOKING_LINK = "show_booking_link"
    SHOW_ABOUT = "show_about"
    START_CONSULTATION = "start_consultation"


@dataclass(frozen=True, slots=True)
class MenuOption:
    number: str
    action: Action
    ids: tuple[str, ...] = ()
    argument: Optional[str] = None

    def matches(self, token: str) -> bool:
        return token == self.number or token in self.ids


@dataclass(frozen=True, slots=True)
class StepSpec:
    step: Step
    kind: StepKind
    options: tuple[MenuOption, ...] = ()
    invalid_prompt: str = ""
    form: Optional[FormSchema] = None
    greeting_override: bool = True
    fallback: Optional[Action] = None

    def select(self, token: str) -> Optional[MenuOption]:
        for option in self.options:
            if option.matches(token):
                return option
        return None


@dataclass(frozen=True, slots=True)
class GlobalOverride:
    name: str
    action: Action
    predicate: Callable[[str, InboundEvent, StepSpec], bool]
    reply_to_inbound: bool = False


def normalize_token(payload: str) -> str:
    return (payload or "").strip().lower()


def is_main_menu_token(token: str, event: InboundEvent, spec: StepSpec) -> bool:
    return token == MAIN_MENU_TOKEN


def is_agent_token(token: str, event: InboundEvent, spec: StepSpec) -> bool:
    return token in AGENT_TOKENS


def is_greeting(token: str, event: InboundEvent, spec: StepSpec) -> bool:
    # selection ids such as country_china are not typed greetings
    if event.kind != InputKind.TEXT or not spec.greeting_override:
        return False
    return any(keyword in token for keyword in GREETING_KEYWORDS)


GLOBAL_OVERRIDES: tuple[GlobalOverride, ...] = (
    GlobalOverride("main_menu", Action.WELCOME, is_main_menu_token),
    GlobalOverride("agent", Action.AGENT, is_agent_token),
    GlobalOverride("greeting", Action.WELCOME, is_greeting, reply_to_inbound=True),
)


def match_override(event: InboundEvent, spec: StepSpec) -> Optional[GlobalOverride]:
    token = normalize_token(event.payload)
    for override in GLOBAL_OVERRIDES:
        if override.predicate(token, event, spec):
            return override
    return None


_DESTINATIONS = ("study_abroad", "explore_more")
_TESTS = ("english_tests", "ielts_prep")
_BOOKING = ("book_session",)
_BACK_TO_MENU = ("back", "home")

_THREE_WAY_PROMPT = "Please type 1, 2, or 3."
_TWO_WAY_PROMPT = "Please type 1 or 2."


def _menu_steps() -> list[StepSpec]:
    country_options = tuple(
        MenuOption(c.number, Action.SELECT_COUNTRY, ids=(f"country_{c.key}",), argument=c.key) for c in COUNTRIES
    )
    return [
        StepSpec(Step.WELCOME, StepKind.MENU, fallback=Action.WELCOME),
        StepSpec(
            Step.MAIN_MENU,
            StepKind.MENU,
            options=(
                MenuOption("1", Action.SHOW_DESTINATIONS, _DESTINATIONS),
                MenuOption("2", Action.SHOW_TESTS, _TESTS),
                MenuOption("3", Action.SHOW_BOOKING_LINK, _BOOKING),
                MenuOption("4", Action.SHOW_ABOUT, ("about_us",)),
            ),
            invalid_prompt="Please type a number between 1-4 to continue.",
        ),
        StepSpec(
            Step.SELECT_COUNTRY,
            StepKind.MENU,
            options=country_options,
            invalid_prompt=f"Please type a number between 1-{len(country_options)}.",
        ),
        StepSpec(
            Step.SELECT_TEST_TYPE,
            StepKind.MENU,
            options=(
                MenuOption("1", Action.SHOW_IELTS_TYPES, ("ielts",)),
                MenuOption("2", Action.SHOW_PTE_TYPES, ("pte",)),
                MenuOption("3", Action.SHOW_PACKAGES, ("oxford",), argument="oxford"),
                MenuOption("4", Action.SHOW_PACKAGES, ("language_cert",), argument="language_cert"),
                MenuOption("5", Action.START_ENROLLMENT, ("spoken_english",), argument="spoken"),
            ),
            invalid_prompt="Please type a number between 1-5.",
        ),
        StepSpec(
            Step.SELECT_IELTS_TYPE,
            StepKind.MENU,
            options=(
                MenuOption("1", Action.SHOW_PACKAGES, ("ielts_ukvi",), argument="ielts_ukvi"),
                MenuOption("2", Action.SHOW_PACKAGES, ("ielts_academic",), argument="ielts_academic"),
                MenuOption("3", Action.SHOW_PACKAGES, ("ielts_general",), argument="ielts_general"),
            ),
            invalid_prompt=_THREE_WAY_PROMPT,
        ),
        StepSpec(
            Step.SELECT_PTE_TYPE,
            StepKind.MENU,
            options=(
                MenuOption("1", Action.SHOW_PACKAGES, ("pte_ukvi",), argument="pte_ukvi"),
                MenuOption("2", Action.SHOW_PACKAGES, ("pte_academic",), argument="pte_academic"),
            ),
            invalid_prompt=_TWO_WAY_PROMPT,
        ),
        StepSpec(
            Step.SELECT_PACKAGE,
            StepKind.MENU,
            options=(
                MenuOption("1", Action.START_ENROLLMENT, ("package_full",), argument="full"),
                MenuOption("2", Action.START_ENROLLMENT, ("package_speaking",), argument="speaking"),
            ),
            invalid_prompt=_TWO_WAY_PROMPT,
        ),
    ]


def _after_steps() -> list[StepSpec]:
    return [
        StepSpec(
            Step.AFTER_STUDY_ABROAD,
            StepKind.AFTER,
            options=(
                MenuOption("1", Action.SHOW_DESTINATIONS, _DESTINATIONS),
                MenuOption("2", Action.SHOW_TESTS, _TESTS),
                MenuOption("3", Action.WELCOME, _BACK_TO_MENU),
            ),
            invalid_prompt=_THREE_WAY_PROMPT,
        ),
        StepSpec(
            Step.AFTER_ENROLLMENT,
            StepKind.AFTER,
            options=(
                MenuOption("1", Action.SHOW_DESTINATIONS, _DESTINATIONS),
                MenuOption("2", Action.SHOW_BOOKING_LINK, _BOOKING),
                MenuOption("3", Action.WELCOME, _BACK_TO_MENU),
            ),
            invalid_prompt=_THREE_WAY_PROMPT,
        ),
        StepSpec(
            Step.AFTER_BOOKING_LINK,
            StepKind.AFTER,
            options=(
                MenuOption("1", Action.SHOW_DESTINATIONS, _DESTINATIONS),
                MenuOption("2", Action.SHOW_TESTS, _TESTS),
                MenuOption("3", Action.WELCOME, _BACK_TO_MENU),
                MenuOption("4", Action.START_CONSULTATION, ("book_here", "consultation")),
            ),
            invalid_prompt="Please type a number between 1-4.",
        ),
        StepSpec(
            Step.AFTER_ABOUT,
            StepKind.AFTER,
            options=(
                MenuOption("1", Action.SHOW_DESTINATIONS, _DESTINATIONS),
                MenuOption("2", Action.SHOW_TESTS, _TESTS),
                MenuOption("3", Action.SHOW_BOOKING_LINK, _BOOKING),
                MenuOption("4", Action.WELCOME, _BACK_TO_MENU),
            ),
            invalid_prompt="Please type a number between 1-4.",
        ),
        StepSpec(
            Step.AFTER_CONSULTATION,
            StepKind.AFTER,
            options=(
                MenuOption("1", Action.SHOW_DESTINATIONS, _DESTINATIONS),
                MenuOption("2", Action.SHOW_TESTS, _TESTS),
                MenuOption("3", Action.WELCOME, _BACK_TO_MENU),
            ),
            invalid_prompt=_THREE_WAY_PROMPT,
        ),
    ]


def _form_steps() -> list[StepSpec]:
    specs: list[StepSpec] = []
    for schema in FORMS.values():
        for step in schema.steps:
            specs.append(StepSpec(step, StepKind.FORM, form=schema, greeting_override=False))
    return specs


def build_step_table(greeting_override_steps: Optional[Iterable[str]] = None) -> dict[Step, StepSpec]:
    """Return a spec for every step.

    ``greeting_override_steps`` replaces the default set of steps on which greeting
    keywords restart the conversation. Unknown step names are ignored.
    """
    table: dict[Step, StepSpec] = {}
    for spec in [*_menu_steps(), *_after_steps(), *_form_steps()]:
        table[spec.step] = spec

    if greeting_override_steps is not None:
        enabled = {str(name).strip().lower() for name in greeting_override_steps}
        table = {
            step: _with_greeting(spec, step.value in enabled)
            for step, spec in table.items()
        }

    missing = [step.value for step in Step if step not in table]
    if missing:
        raise ValueError(f"step table is missing: {', '.join(missing)}")
    return table


def _with_greeting(spec: StepSpec, enabled: bool) -> StepSpec:
    if spec.greeting_override == enabled:
        return spec
    return StepSpec(
        step=spec.step,
        kind=spec.kind,
        options=spec.options,
        invalid_prompt=spec.invalid_prompt,
        form=spec.form,
        greeting_override=enabled,
        fallback=spec.fallback,
    )

