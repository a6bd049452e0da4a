from __future__ import annotations

from typing import Any, Optional

from conversation.catalog import COUNTRIES, Country, EnglishTest, Package
from core.models import (
    ApplicationRecord,
    Button,
    ButtonsMessage,
    CtaUrlMessage,
    ListMessage,
    ListRow,
    ListSection,
    OutboundMessage,
    TextMessage,
)

MAIN_MENU_ID = "main_menu"
TALK_TO_AGENT_ID = "talk_to_agent"

GREETING_TEXT = (
    "Hey there! 👋 Welcome to INNOVA Education Consultant!\n\n"
    "I'm here to help you with your Study Abroad Journey! ✈"
)
MAIN_OPTIONS_TEXT = (
    "What would you like to explore Today?\n"
    "Just type the number, I'm thrilled to help you.\n\n"
    "⓵ Study Abroad Destination.\n"
    "⓶ English Test Preparation.\n"
    "⓷ Book Counselling Session.\n"
    "⓸ About INNOVA Education Consultant."
)
AGENT_ACK_TEXT = "👍 An agent will contact you shortly."
MAIN_MENU_TRAILER_TEXT = "Tap below to go to Main Menu"
UNKNOWN_INPUT_TEXT = "I didn't quite understand that. Type 'menu' to see options!"

_CIRCLED = "⓵⓶⓷⓸⓹⓺⓻⓼⓽⓾"

MAIN_MENU_BUTTON = Button(MAIN_MENU_ID, "🏠 Main Menu")
STUDY_ABROAD_BUTTON = Button("study_abroad", "🌍 Study Abroad")
ENGLISH_TESTS_BUTTON = Button("ielts_prep", "📚 English Tests")
BOOK_SESSION_BUTTON = Button("book_session", "📅 Book Session")


def _numbered(options: list[str]) -> str:
    return "\n".join(f"{_CIRCLED[idx]} {option}" for idx, option in enumerate(options))


def _pkr(value: Any) -> str:
    try:
        return f"{int(float(value)):,}"
    except (TypeError, ValueError):
        return "0"


def welcome_messages(reply_to: Optional[str] = None) -> list[OutboundMessage]:
    return [
        TextMessage(GREETING_TEXT, reply_to=reply_to),
        ButtonsMessage(MAIN_OPTIONS_TEXT, (Button(TALK_TO_AGENT_ID, "Talk to an agent"),)),
    ]


def agent_ack_messages() -> list[OutboundMessage]:
    return [TextMessage(AGENT_ACK_TEXT)]


def main_menu_trailer() -> ButtonsMessage:
    return ButtonsMessage(MAIN_MENU_TRAILER_TEXT, (MAIN_MENU_BUTTON,))


def has_main_menu_button(message: OutboundMessage) -> bool:
    return isinstance(message, ButtonsMessage) and any(b.id == MAIN_MENU_ID for b in message.buttons)


def corrective_prompt(text: str) -> list[OutboundMessage]:
    return [TextMessage(text)]


def destinations_messages() -> list[OutboundMessage]:
    numbered = _numbered([f"{c.flag} {c.name}" for c in COUNTRIES])
    rows = tuple(
        ListRow(id=f"country_{c.key}", title=f"{c.flag} {c.name}", description=c.highlight) for c in COUNTRIES
    )
    return [
        TextMessage(
            "Fantastic choice! Studying abroad is an incredible opportunity. "
            "Let me show you the countries we specialize in:"
        ),
        ListMessage(
            body=f"Select a destination to explore:\n\n{numbered}\n\nType the number!",
            button_label="View Countries",
            sections=(ListSection("Popular Destinations", rows),),
        ),
    ]


def country_form_messages(country: Country, form_prompt: str) -> list[OutboundMessage]:
    return [TextMessage(f"Great choice! {country.display_name}"), TextMessage(form_prompt)]


def english_tests_messages() -> list[OutboundMessage]:
    options = _numbered(["IELTS", "PTE", "Oxford ELLT", "Language Cert ESOL", "English Spoken Course"])
    return [
        TextMessage(
            "Great choice! Let's prepare you for success! 📚\n\n"
            f"Just type the number, I'm thrilled to help you.\n\n{options}"
        )
    ]


def ielts_types_messages() -> list[OutboundMessage]:
    options = _numbered(["IELTS UKVI", "IELTS Academic", "IELTS General Training"])
    return [TextMessage(f"Excellent! Which IELTS test are you preparing for?\n\nJust type the number:\n\n{options}")]


def pte_types_messages() -> list[OutboundMessage]:
    options = _numbered(["PTE UKVI", "PTE Academic"])
    return [TextMessage(f"Excellent! Which PTE test are you preparing for?\n\nJust type the number:\n\n{options}")]


def packages_messages(test: EnglishTest) -> list[OutboundMessage]:
    options = _numbered(["Full Preparation Course", "Speaking Module Only"])
    return [TextMessage(f"Perfect! For {test.name}, we offer:\n\nJust type the number:\n\n{options}")]


def enrollment_intro_messages(package: Package, form_prompt: str) -> list[OutboundMessage]:
    return [TextMessage(package.offer_text), TextMessage(form_prompt)]


def booking_link_messages(booking_url: str) -> list[OutboundMessage]:
    options = _numbered(
        ["Study Abroad Destination", "English Test Preparation", "Main Menu", "Book a Consultation Here"]
    )
    return [
        CtaUrlMessage("📅 Book your counselling session now:", "Open booking page", booking_url),
        TextMessage(f"What would you like to do next?\n\nType the number:\n{options}"),
    ]


def about_messages(website_url: str) -> list[OutboundMessage]:
    options = _numbered(["Study Abroad Destination", "English Test Preparation", "Book Counselling Session", "Main Menu"])
    return [
        TextMessage(f"Visit our website: {website_url} 🌟\n\nExplore our services, success stories, and more!"),
        TextMessage(f"What would you like to explore next?\n\nType the number:\n{options}"),
    ]


def consultation_intro_messages(first_prompt: str) -> list[OutboundMessage]:
    return [
        TextMessage(
            "Wonderful! Let's schedule a personalized consultation session.\n\n"
            "This will help us understand your goals and create a tailored plan for your future.\n\n"
            "I'll need some information from you. Ready? Let's start!"
        ),
        TextMessage(first_prompt),
    ]


def study_abroad_confirmation(record: ApplicationRecord) -> list[OutboundMessage]:
    fields = record.fields
    return [
        TextMessage(
            "✅ Your application has been submitted successfully!\n\n"
            f"📋 Application ID: {record.id}\n"
            f"👤 Name: {fields.get('name', '')}\n"
            f"🌍 Destination: {fields.get('country', '')}\n"
            f"🎓 Qualification: {fields.get('qualification', '')}\n"
            f"🏛️ University: {fields.get('university', '')}\n"
            f"💰 Budget: {fields.get('budget', '')}"
        ),
        TextMessage(
            "What happens next?\n\n"
            "✓ Our counselors will review your profile\n"
            "✓ We'll contact you within 24 hours on WhatsApp\n"
            "✓ Discuss university options and admission process\n"
            "✓ Guide you through visa requirements\n\n"
            "We're excited to help you achieve your study abroad dreams! 🎯"
        ),
        ButtonsMessage(
            "Anything else I can help with?\n\n"
            + _numbered(["Study Abroad Destination", "English Test Preparation", "Main Menu"]),
            (STUDY_ABROAD_BUTTON, ENGLISH_TESTS_BUTTON, MAIN_MENU_BUTTON),
        ),
    ]


def enrollment_confirmation(record: ApplicationRecord) -> list[OutboundMessage]:
    fields = record.fields
    course = fields.get("courseName") or fields.get("packageType", "")
    return [
        TextMessage(
            "✅ Your enrollment has been confirmed!\n\n"
            f"📋 Enrollment ID: {record.id}\n"
            f"👤 Name: {fields.get('firstName', '')} {fields.get('lastName', '')}\n"
            f"📚 Course: {course}\n"
            f"💰 Fee: PKR {_pkr(fields.get('cost'))}\n"
            f"📅 Preferred Start: {fields.get('startDate', '')}"
        ),
        TextMessage(
            "What happens next?\n\n"
            "✓ Our team will contact you within 24 hours\n"
            "✓ We'll schedule your first session\n"
            "✓ You'll receive study materials\n"
            "✓ Payment details via email\n\n"
            "We're excited to help you succeed! 🎯"
        ),
        ButtonsMessage(
            "Anything else I can help with?\n\n"
            + _numbered(["Study Abroad Destination", "Book Counselling Session", "Main Menu"]),
            (STUDY_ABROAD_BUTTON, BOOK_SESSION_BUTTON, MAIN_MENU_BUTTON),
        ),
    ]


def consultation_confirmation(record: ApplicationRecord) -> list[OutboundMessage]:
    fields = record.fields
    return [
        TextMessage(
            "✅ Your consultation session has been booked!\n\n"
            f"📋 Application ID: {record.id}\n"
            f"👤 Name: {fields.get('firstName', '')} {fields.get('lastName', '')}\n"
            f"🎓 Education: {fields.get('degree', '')}\n"
            f"📊 GPA: {fields.get('gpa', '')}\n"
            f"💰 Budget: {fields.get('budget', '')}\n"
            f"🌍 Country: {fields.get('preferredCountry', '')}"
        ),
        TextMessage(
            "What's next?\n\n"
            "✓ Our counselor will review your profile\n"
            "✓ We'll contact you within 24-48 hours\n"
            "✓ Schedule detailed consultation\n"
            "✓ Receive tailored university recommendations\n\n"
            "We're thrilled to be part of your journey!"
        ),
        ButtonsMessage(
            "What would you like to explore?\n\n"
            + _numbered(["Study Abroad Destination", "English Test Preparation", "Main Menu"]),
            (STUDY_ABROAD_BUTTON, ENGLISH_TESTS_BUTTON, MAIN_MENU_BUTTON),
        ),
    ]


def render_console(message: OutboundMessage) -> str:
    if isinstance(message, ButtonsMessage):
        buttons = "\n".join(f"  [{b.id}] {b.title}" for b in message.buttons)
        return f"{message.body}\n{buttons}"
    if isinstance(message, ListMessage):
        rows = "\n".join(
            f"  ({row.id}) {row.title}" + (f" - {row.description}" if row.description else "")
            for section in message.sections
            for row in section.rows
        )
        return f"{message.body}\n[{message.button_label}]\n{rows}"
    if isinstance(message, CtaUrlMessage):
        return f"{message.body}\n  {message.display_text}: {message.url}"
    return message.body
