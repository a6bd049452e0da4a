from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Country:
    key: str
    number: str
    name: str
    flag: str
    code: str
    highlight: str

    @property
    def display_name(self) -> str:
        return f"{self.name} {self.flag}"


@dataclass(frozen=True, slots=True)
class EnglishTest:
    key: str
    name: str
    family: str


@dataclass(frozen=True, slots=True)
class Package:
    key: str
    name: str
    cost: int
    offer_text: str


COUNTRIES: tuple[Country, ...] = (
    Country("usa", "1", "United States", "🇺🇸", "USA", "Fulbright scholarships"),
    Country("uk", "2", "United Kingdom", "🇬🇧", "UK", "Chevening, Commonwealth"),
    Country("cyprus", "3", "South Cyprus", "🇨🇾", "Cyprus", "Affordable EU degrees"),
    Country("georgia", "4", "Georgia", "🇬🇪", "Georgia", "Medical & business programs"),
    Country("sweden", "5", "Sweden", "🇸🇪", "Sweden", "Swedish Institute funding"),
    Country("finland", "6", "Finland", "🇫🇮", "Finland", "Government scholarships"),
    Country("south_korea", "7", "South Korea", "🇰🇷", "South Korea", "KGSP scholarships"),
    Country("china", "8", "China", "🇨🇳", "China", "Full government funding"),
    Country("other", "9", "Other Destinations", "🌎", "Other", "Canada, Australia & more"),
)

COUNTRY_BY_KEY = {country.key: country for country in COUNTRIES}

ENGLISH_TESTS: tuple[EnglishTest, ...] = (
    EnglishTest("ielts_ukvi", "IELTS UKVI", "IELTS"),
    EnglishTest("ielts_academic", "IELTS Academic", "IELTS"),
    EnglishTest("ielts_general", "IELTS General Training", "IELTS"),
    EnglishTest("pte_ukvi", "PTE UKVI", "PTE"),
    EnglishTest("pte_academic", "PTE Academic", "PTE"),
    EnglishTest("oxford", "Oxford ELLT", "Oxford ELLT"),
    EnglishTest("language_cert", "Language Cert ESOL", "Language Cert ESOL"),
)

TEST_BY_KEY = {test.key: test for test in ENGLISH_TESTS}

PACKAGES: tuple[Package, ...] = (
    Package(
        "full",
        "Full Preparation Course",
        25000,
        "🎉 EXCLUSIVE LIMITED TIME OFFER! 🎉\n\n"
        "💰 Save PKR 7,000 Today!\n"
        "✨ Full Course: Only 25,000 PKR\n"
        "❌ Regular Price: 32,000 PKR\n\n"
        "✅ All Modules Covered\n"
        "✅ Expert Instructors\n"
        "✅ Mock Tests Included\n"
        "✅ Study Materials Provided",
    ),
    Package(
        "speaking",
        "Speaking Module Only",
        15000,
        "🎯 Speaking Module Specialization\n\n"
        "💰 Price: 15,000 PKR\n\n"
        "✅ Focused Practice Sessions\n"
        "✅ Expert Feedback\n"
        "✅ Score Improvement Guaranteed",
    ),
    Package(
        "spoken",
        "Spoken English Course",
        20000,
        "🎉 EXCLUSIVE LIMITED TIME OFFER! 🎉\n\n"
        "💰 Save PKR 5,000 Today!\n"
        "✨ Spoken English: Only 20,000 PKR\n"
        "❌ Regular Price: 25,000 PKR\n\n"
        "✅ Conversational English\n"
        "✅ Fluency Development\n"
        "✅ Confidence Building",
    ),
)

PACKAGE_BY_KEY = {package.key: package for package in PACKAGES}

SPOKEN_COURSE_NAME = "English Spoken Course"


def course_name_for(package: Package, test_family: str | None) -> str:
    if package.key == "spoken":
        return SPOKEN_COURSE_NAME
    family = (test_family or "").strip()
    if package.key == "speaking":
        return f"{family} Speaking".strip()
    return family or package.name
