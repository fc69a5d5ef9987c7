"""
Phone number normalization and format validation.

Normalized numbers are the user store key: digits only, with the leading "+" kept
when the caller supplied one.
"""

import re
from typing import Pattern

# E.164: optional "+", then 10-15 digits with no leading zero
E164_PATTERN: Pattern = re.compile(r"^\+?[1-9]\d{9,14}$")
NON_DIGITS: Pattern = re.compile(r"\D+")


def normalize_phone_number(raw: str) -> str:
    """Strip formatting from a phone number; returns "" when no digits remain."""
    if not raw:
        return ""
    trimmed = raw.strip()
    digits_only = NON_DIGITS.sub("", trimmed)
    if not digits_only:
        return ""
    return f"+{digits_only}" if trimmed.startswith("+") else digits_only


def is_phone_number_format_valid(phone_number: str) -> bool:
    """Check a normalized phone number against the E.164 pattern."""
    if not phone_number:
        return False
    candidate = phone_number if phone_number.startswith("+") else f"+{phone_number}"
    return bool(E164_PATTERN.match(candidate))

