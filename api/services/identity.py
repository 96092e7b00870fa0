"""
Identity matching utilities for Bridge.

Normalizes phone numbers and email addresses so that two partial identities
coming from different ingestion sources can be compared despite formatting
noise. Names never take part in identity matching; same-name records are
handled by the duplicate merge.
"""
import re
from typing import Optional

# Anything shorter cannot be a real phone number
MIN_PHONE_DIGITS = 7

_NON_DIGITS = re.compile(r'\D')
_WHITESPACE = re.compile(r'\s+')


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """
    Normalize a phone number to its bare digit string.

    Args:
        raw: Raw phone number in any common format

    Returns:
        The digits of the number, or None if fewer than 7 digits remain.
        Country codes are passed through as-is, so "+1 415..." and "415..."
        do not normalize to the same value.

    Examples:
        >>> normalize_phone("(415) 555-1234")
        '4155551234'
        >>> normalize_phone("415-555-1234")
        '4155551234'
        >>> normalize_phone("123")
        None
    """
    if not raw or not isinstance(raw, str):
        return None

    digits = _NON_DIGITS.sub('', raw)
    if len(digits) < MIN_PHONE_DIGITS:
        return None
    return digits


def normalize_email(raw: Optional[str]) -> Optional[str]:
    """
    Normalize an email address (trimmed, lowercased).

    Returns:
        The normalized address, or None unless it contains "@"
    """
    if not raw or not isinstance(raw, str):
        return None

    email = raw.strip().lower()
    return email if "@" in email else None


def looks_like_phone(raw: Optional[str]) -> bool:
    """Check whether a string carries enough digits to be a phone number."""
    if not raw or not isinstance(raw, str):
        return False
    return len(_NON_DIGITS.sub('', raw)) >= MIN_PHONE_DIGITS


def normalize_name(raw: Optional[str]) -> str:
    """Lowercase, trim and collapse internal whitespace of a display name."""
    if not raw:
        return ""
    return _WHITESPACE.sub(' ', raw.strip().lower())


def identities_match(
    phone_a: Optional[str],
    email_a: Optional[str],
    phone_b: Optional[str],
    email_b: Optional[str],
) -> bool:
    """
    Decide whether two partial identities denote the same contact.

    They match if their normalized phones are equal and present, or their
    normalized emails are equal and present.
    """
    norm_phone_a = normalize_phone(phone_a)
    if norm_phone_a and norm_phone_a == normalize_phone(phone_b):
        return True

    norm_email_a = normalize_email(email_a)
    if norm_email_a and norm_email_a == normalize_email(email_b):
        return True

    return False
