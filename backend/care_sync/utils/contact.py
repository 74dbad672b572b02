"""
Contact Normalization Utilities.

Brings phone numbers and e-mail addresses from InChurch into one stored
form so formatting differences never count as changes.
"""

import re
from typing import Optional

BRAZIL_COUNTRY_CODE = "55"

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalizes a phone number to E.164, assuming Brazil.

    Args:
        phone: Phone number as typed ("(11) 98765-4321", "+55 11 98765-4321"...)

    Returns:
        "+55" followed by area code and number, the trimmed input when the
        digits do not look like a Brazilian number, or None when blank

    Examples:
        >>> normalize_phone("(11) 98765-4321")
        '+5511987654321'
        >>> normalize_phone("+55 11 98765-4321")
        '+5511987654321'
    """
    if phone is None:
        return None
    text = str(phone).strip()
    if not text:
        return None

    digits = re.sub(r"\D", "", text)
    if len(digits) in (12, 13) and digits.startswith(BRAZIL_COUNTRY_CODE):
        return f"+{digits}"
    if len(digits) in (10, 11) and not text.startswith("+"):
        # Area code plus landline (8 digits) or mobile (9 digits)
        return f"+{BRAZIL_COUNTRY_CODE}{digits}"
    if text.startswith("+") and digits:
        return f"+{digits}"
    return text


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Lowercases and trims an e-mail address.

    Returns None for blank values and for values that are not an address.
    """
    if email is None:
        return None
    normalized = str(email).strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        return None
    return normalized
