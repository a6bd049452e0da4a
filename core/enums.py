from __future__ import annotations

from enum import Enum


class Step(str, Enum):
    WELCOME = "welcome"
    MAIN_MENU = "main_menu"
    SELECT_COUNTRY = "select_country"
    SELECT_TEST_TYPE = "select_test_type"
    SELECT_IELTS_TYPE = "select_ielts_type"
    SELECT_PTE_TYPE = "select_pte_type"
    SELECT_PACKAGE = "select_package"

    STUDY_ABROAD_FORM = "study_abroad_form"
    ENROLLMENT_FORM = "enrollment_form"
    CONSULTATION_FORM = "consultation_form"

    STUDY_ABROAD_NAME = "study_abroad_name"
    STUDY_ABROAD_WHATSAPP = "study_abroad_whatsapp"
    STUDY_ABROAD_QUALIFICATION = "study_abroad_qualification"
    STUDY_ABROAD_COMPLETION_YEAR = "study_abroad_completion_year"
    STUDY_ABROAD_GRADE = "study_abroad_grade"
    STUDY_ABROAD_UNIVERSITY = "study_abroad_university"
    STUDY_ABROAD_ENGLISH_TEST = "study_abroad_english_test"
    STUDY_ABROAD_CURRENT_CITY = "study_abroad_current_city"
    STUDY_ABROAD_PREFERRED_CITY = "study_abroad_preferred_city"
    STUDY_ABROAD_BUDGET = "study_abroad_budget"

    ENROLLMENT_FIRST_NAME = "enrollment_first_name"
    ENROLLMENT_LAST_NAME = "enrollment_last_name"
    ENROLLMENT_EMAIL = "enrollment_email"
    ENROLLMENT_PHONE = "enrollment_phone"
    ENROLLMENT_START_DATE = "enrollment_start_date"

    CONSULTATION_FIRST_NAME = "consultation_first_name"
    CONSULTATION_LAST_NAME = "consultation_last_name"
    CONSULTATION_DEGREE = "consultation_degree"
    CONSULTATION_GPA = "consultation_gpa"
    CONSULTATION_BUDGET = "consultation_budget"
    CONSULTATION_COUNTRY = "consultation_country"
    CONSULTATION_EMAIL = "consultation_email"
    CONSULTATION_PHONE = "consultation_phone"
    CONSULTATION_NOTES = "consultation_notes"

    AFTER_STUDY_ABROAD = "after_study_abroad"
    AFTER_ENROLLMENT = "after_enrollment"
    AFTER_CONSULTATION = "after_consultation"
    AFTER_BOOKING_LINK = "after_booking_link"
    AFTER_ABOUT = "after_about"

    @classmethod
    def parse(cls, value: object) -> "Step":
        try:
            return cls(str(value or ""))
        except ValueError:
            return cls.WELCOME


class StepKind(str, Enum):
    MENU = "menu"
    FORM = "form"
    AFTER = "after"


class InputKind(str, Enum):
    TEXT = "text"
    BUTTON_REPLY = "button_reply"
    LIST_REPLY = "list_reply"


class RecordKind(str, Enum):
    STUDY_ABROAD = "study_abroad"
    ENROLLMENT = "enrollment"
    CONSULTATION = "consultation"


class FormMode(str, Enum):
    BULK = "bulk"
    SEQUENTIAL = "sequential"


class MessageKind(str, Enum):
    TEXT = "text"
    BUTTONS = "buttons"
    LIST = "list"
    CTA_URL = "cta_url"
