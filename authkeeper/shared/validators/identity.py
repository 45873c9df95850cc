"""Username, personal name and phone number validation."""

import re

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{3,30}$")
PHONE_PREFIX_PATTERN = re.compile(r"^\+[1-9]\d{0,3}$")
PHONE_NUMBER_PATTERN = re.compile(r"^\d{7,15}$")
# Latin letters incl. accented ranges, spaces, hyphens and apostrophes
PERSONAL_NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿĀ-ɏḀ-ỿ\s'-]+$")

_PHONE_SEPARATORS = re.compile(r"[\s\-().]")


def validate_username(username: str) -> str:
    username = username.strip()
    if not USERNAME_PATTERN.match(username):
        raise ValueError("Username must be 3-30 characters of letters, numbers and underscores")
    return username


def validate_personal_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValueError("Name must not be empty")
    if not PERSONAL_NAME_PATTERN.match(name):
        raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
    return name


def validate_phone_prefix(prefix: str) -> str:
    prefix = prefix.strip()
    if not PHONE_PREFIX_PATTERN.match(prefix):
        raise ValueError("Phone prefix must be a valid country code (e.g., +1, +44)")
    return prefix


def validate_phone_number(number: str) -> str:
    number = _PHONE_SEPARATORS.sub("", number)
    if not PHONE_NUMBER_PATTERN.match(number):
        raise ValueError("Phone number must contain only digits and be 7-15 characters long")
    return number


def normalize_phone(value: str) -> str:
    """Canonical ``+<prefix><number>`` form of a phone-like login identifier.

    Separators (spaces, dashes, dots, parentheses) are dropped and an
    international ``00`` prefix becomes ``+``.

    Examples:
        >>> normalize_phone("0044 (20) 7946-0958")
        '+442079460958'
        >>> normalize_phone("+1 555 123 4567")
        '+15551234567'

    """
    compact = _PHONE_SEPARATORS.sub("", value.strip())
    if compact.startswith("00"):
        compact = "+" + compact[2:]
    return compact
