"""Ordered field schemas shared by bulk and one-field-at-a-time form capture.

Field order is the contract: a bulk submission maps its n-th non-blank line to the
n-th field, and the sequential path walks the same tuple one message at a time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from core.enums import RecordKind, Step

Validator = Callable[[str], bool]
Normalizer = Callable[[str], str]

INVALID_EMAIL_PROMPT = "That doesn't look like a valid email. Could you try again?"


def is_email(value: str) -> bool:
    return "@" in value


def none_as_blank(value: str) -> str:
    return "" if value.strip().lower() == "none" else value


class _BlankMissing(dict):
    def __missing__(self, key: str) -> str:
        return ""


def fill(template: str, data: dict[str, Any]) -> str:
    return template.format_map(_BlankMissing({k: "" if v is None else v for k, v in data.items()}))


@dataclass(frozen=True, slots=True)
class FormField:
    name: str
    label: str
    step: Step
    prompt: str
    validator: Optional[Validator] = None
    invalid_prompt: str = ""
    normalizer: Optional[Normalizer] = None

    def accepts(self, value: str) -> bool:
        return self.validator is None or self.validator(value)

    def normalize(self, value: str) -> str:
        text = value.strip()
        return self.normalizer(text) if self.normalizer else text


@dataclass(frozen=True, slots=True)
class FormSchema:
    kind: RecordKind
    id_prefix: str
    bulk_step: Step
    after_step: Step
    fields: tuple[FormField, ...]
    bulk_intro: str
    bulk_outro: str
    bulk_invalid_prompt: str = ""
    context_fields: tuple[str, ...] = ()

    @property
    def min_fields(self) -> int:
        return len(self.fields)

    @property
    def steps(self) -> tuple[Step, ...]:
        return (self.bulk_step, *(f.step for f in self.fields))

    def field_for_step(self, step: Step) -> Optional[FormField]:
        for form_field in self.fields:
            if form_field.step == step:
                return form_field
        return None

    def next_field(self, current: FormField) -> Optional[FormField]:
        index = self.fields.index(current)
        if index + 1 >= len(self.fields):
            return None
        return self.fields[index + 1]

    def bulk_prompt(self, data: dict[str, Any]) -> str:
        labels = "\n".join(f"{fill(f.label, data)}:" for f in self.fields)
        return f"{self.bulk_intro}\n\n{labels}\n\n{self.bulk_outro}"

    def bulk_retry_prompt(self, data: dict[str, Any]) -> str:
        numbered = "\n".join(f"{idx}. {fill(f.label, data)}" for idx, f in enumerate(self.fields, start=1))
        return f"Please provide all {self.min_fields} required details, one per line:\n\n{numbered}"

    def record_fields(self, values: dict[str, str], data: dict[str, Any]) -> dict[str, str]:
        fields = {f.name: values.get(f.name, "") for f in self.fields}
        for key in self.context_fields:
            value = data.get(key)
            fields[key] = "" if value is None else str(value)
        return fields


@dataclass(slots=True)
class BulkResult:
    values: Optional[dict[str, str]] = None
    prompt: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.values is not None


@dataclass(slots=True)
class FieldResult:
    data: dict[str, Any]
    next_field: Optional[FormField] = None
    prompt: Optional[str] = None
    accepted: bool = True
    complete: bool = False


def collect_bulk(schema: FormSchema, text: str, data: dict[str, Any]) -> BulkResult:
    lines = [line.strip() for line in (text or "").split("\n")]
    lines = [line for line in lines if line]
    if len(lines) < schema.min_fields:
        return BulkResult(prompt=schema.bulk_retry_prompt(data))

    values: dict[str, str] = {}
    for form_field, line in zip(schema.fields, lines):
        if not form_field.accepts(line):
            return BulkResult(prompt=schema.bulk_invalid_prompt or form_field.invalid_prompt)
        values[form_field.name] = form_field.normalize(line)
    return BulkResult(values=values)


def capture_field(schema: FormSchema, form_field: FormField, text: str, data: dict[str, Any]) -> FieldResult:
    value = (text or "").strip()
    if not value or not form_field.accepts(value):
        return FieldResult(
            data=dict(data),
            prompt=form_field.invalid_prompt or fill(form_field.prompt, data),
            accepted=False,
        )

    updated = dict(data)
    updated[form_field.name] = form_field.normalize(value)
    following = schema.next_field(form_field)
    if following is None:
        return FieldResult(data=updated, complete=True)
    return FieldResult(data=updated, next_field=following, prompt=fill(following.prompt, updated))


STUDY_ABROAD_FORM = FormSchema(
    kind=RecordKind.STUDY_ABROAD,
    id_prefix="SA",
    bulk_step=Step.STUDY_ABROAD_FORM,
    after_step=Step.AFTER_STUDY_ABROAD,
    fields=(
        FormField("name", "Your Name", Step.STUDY_ABROAD_NAME, "What's your full name?"),
        FormField("whatsapp", "WhatsApp Number", Step.STUDY_ABROAD_WHATSAPP, "Thanks {name}! What's your WhatsApp number?"),
        FormField("qualification", "Last Qualification", Step.STUDY_ABROAD_QUALIFICATION, "What's your last qualification?"),
        FormField(
            "completionYear",
            "Last Degree Completion Year",
            Step.STUDY_ABROAD_COMPLETION_YEAR,
            "Which year did you complete your last degree?",
        ),
        FormField("grade", "Last Degree %age/CGPA", Step.STUDY_ABROAD_GRADE, "What was your percentage or CGPA?"),
        FormField("university", "Last Attended University", Step.STUDY_ABROAD_UNIVERSITY, "Which university did you last attend?"),
        FormField(
            "englishTest",
            "Any English Test",
            Step.STUDY_ABROAD_ENGLISH_TEST,
            "Have you taken any English test? (e.g., 'IELTS 6.5', 'None')",
        ),
        FormField("currentCity", "Your Current City", Step.STUDY_ABROAD_CURRENT_CITY, "Which city do you live in right now?"),
        FormField(
            "preferredCity",
            "Preferred City in {countryCode}",
            Step.STUDY_ABROAD_PREFERRED_CITY,
            "Which city would you prefer in {countryCode}?",
        ),
        FormField("budget", "Available Budget", Step.STUDY_ABROAD_BUDGET, "And finally, what's your available budget?"),
    ),
    bulk_intro="Please share the details below for our record and Quick assessment.",
    bulk_outro=(
        "📝 Please provide all details in order, one per line "
        "(except name can be first and last name on same line)."
    ),
    context_fields=("country",),
)

ENROLLMENT_FORM = FormSchema(
    kind=RecordKind.ENROLLMENT,
    id_prefix="ENR",
    bulk_step=Step.ENROLLMENT_FORM,
    after_step=Step.AFTER_ENROLLMENT,
    fields=(
        FormField("firstName", "First Name", Step.ENROLLMENT_FIRST_NAME, "First, what's your first name?"),
        FormField("lastName", "Last Name", Step.ENROLLMENT_LAST_NAME, "Nice to meet you, {firstName}! What's your last name?"),
        FormField(
            "email",
            "Email Address",
            Step.ENROLLMENT_EMAIL,
            "Great! {firstName} {lastName}, what's your email address?",
            validator=is_email,
            invalid_prompt=INVALID_EMAIL_PROMPT,
        ),
        FormField(
            "phone",
            "Phone Number",
            Step.ENROLLMENT_PHONE,
            "Perfect! And your phone number?\n(Include country code, e.g., +92 300 1234567)",
        ),
        FormField(
            "startDate",
            "Preferred Start Date",
            Step.ENROLLMENT_START_DATE,
            "Excellent! When would you prefer to start your classes?\n(e.g., 'Next week', 'From 1st December', 'ASAP')",
        ),
    ),
    bulk_intro="Ready to get started? Please provide your details:",
    bulk_outro="📝 Please provide all details in order, one per line.",
    bulk_invalid_prompt="The email address doesn't look valid. Please provide all details again with a valid email.",
    context_fields=("courseName", "packageType", "cost"),
)

CONSULTATION_FORM = FormSchema(
    kind=RecordKind.CONSULTATION,
    id_prefix="APP",
    bulk_step=Step.CONSULTATION_FORM,
    after_step=Step.AFTER_CONSULTATION,
    fields=(
        FormField("firstName", "First Name", Step.CONSULTATION_FIRST_NAME, "What's your first name?"),
        FormField("lastName", "Last Name", Step.CONSULTATION_LAST_NAME, "Wonderful, {firstName}! And your last name?"),
        FormField(
            "degree",
            "Current Degree/Education Level",
            Step.CONSULTATION_DEGREE,
            "Great! What's your current degree/education level?\n"
            "(e.g., 'Bachelor's in Computer Science', 'Intermediate')",
        ),
        FormField("gpa", "GPA or Percentage", Step.CONSULTATION_GPA, "Got it! What's your GPA or percentage?"),
        FormField(
            "budget",
            "Budget Range",
            Step.CONSULTATION_BUDGET,
            "Thanks! What's your estimated budget range for studies?\n"
            "(e.g., '$20,000-$30,000', '25-35 lakh PKR', 'Need scholarship')",
        ),
        FormField(
            "preferredCountry",
            "Preferred Country",
            Step.CONSULTATION_COUNTRY,
            "Which country are you most interested in?\n(e.g., 'UK', 'USA', 'Canada', 'Multiple options')",
        ),
        FormField(
            "email",
            "Email Address",
            Step.CONSULTATION_EMAIL,
            "What's your email address?",
            validator=is_email,
            invalid_prompt="That doesn't look like a valid email. Please try again.",
        ),
        FormField("phone", "Phone Number", Step.CONSULTATION_PHONE, "And finally, your phone number?\n(Include country code)"),
        FormField(
            "notes",
            "Questions or Concerns (or 'none')",
            Step.CONSULTATION_NOTES,
            "Would you like to share any specific questions or concerns?\n"
            "(Type 'none' if you don't have any right now)",
            normalizer=none_as_blank,
        ),
    ),
    bulk_intro="Please share the details below so our counselor can prepare for your session.",
    bulk_outro="📝 Please provide all details in order, one per line.",
    bulk_invalid_prompt="The email address doesn't look valid. Please provide all details again with a valid email.",
)

FORMS: dict[RecordKind, FormSchema] = {
    schema.kind: schema for schema in (STUDY_ABROAD_FORM, ENROLLMENT_FORM, CONSULTATION_FORM)
}
