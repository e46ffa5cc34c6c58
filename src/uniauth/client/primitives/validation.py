"""Client-side validation of phone numbers and email addresses.

Rejects obviously malformed input before a request is spent on it. The
server remains the authority; these checks are a subset of its rules.
"""

from __future__ import annotations

import re

from uniauth.client.models.errors import AuthErrorCodes, InvalidInputError

E164_PATTERN = re.compile(r"\+[1-9]\d{6,14}")

# Mobile number patterns for country codes with well-known formats
COUNTRY_PHONE_PATTERNS: dict[str, re.Pattern[str]] = {
    "+86": re.compile(r"\+861[3-9]\d{9}"),  # China
    "+81": re.compile(r"\+81[789]0\d{8}"),  # Japan
    "+61": re.compile(r"\+614\d{8}"),  # Australia
    "+44": re.compile(r"\+447\d{9}"),  # United Kingdom
    "+1": re.compile(r"\+1[2-9]\d{2}[2-9]\d{6}"),  # North America
}

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


def validate_phone(phone: str) -> str:
    """Validate an E.164 phone number.

    Returns:
        The phone number with surrounding whitespace removed

    Raises:
        InvalidInputError: ``INVALID_PHONE`` if empty,
            ``INVALID_PHONE_FORMAT`` if malformed
    """
    phone = (phone or "").strip()
    if not phone:
        raise InvalidInputError(
            AuthErrorCodes.INVALID_PHONE, "Please enter a phone number"
        )

    if not E164_PATTERN.fullmatch(phone):
        raise InvalidInputError(
            AuthErrorCodes.INVALID_PHONE_FORMAT,
            "Phone number must be in E.164 format (e.g., +8613800138000)",
        )

    for prefix, pattern in COUNTRY_PHONE_PATTERNS.items():
        if phone.startswith(prefix):
            if not pattern.fullmatch(phone):
                raise InvalidInputError(
                    AuthErrorCodes.INVALID_PHONE_FORMAT,
                    f"Invalid phone number for country code {prefix}",
                )
            break

    return phone


def validate_email(email: str) -> str:
    """Validate an email address.

    Raises:
        InvalidInputError: ``INVALID_EMAIL`` if empty or malformed
    """
    email = (email or "").strip()
    if not email or not EMAIL_PATTERN.fullmatch(email):
        raise InvalidInputError(AuthErrorCodes.INVALID_EMAIL, "Invalid email format")
    return email
