"""Phone number normalization for SMS recipients."""

import re

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
DEFAULT_COUNTRY_CODE = "46"


def normalize_phone_to_e164(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Normalize a phone number to E.164 format.

    Accepts:
    - Local format with trunk prefix: 0701234567 → +46701234567
    - Country code without plus: 46701234567 → +46701234567
    - International prefix: 0046701234567 → +46701234567
    - Already E.164: +46701234567 → +46701234567

    Raises:
        ValueError: If the result is not a valid E.164 number
    """
    if not phone:
        raise ValueError("Phone number is empty")

    cleaned = phone.strip()
    if cleaned.startswith("+"):
        normalized = "+" + re.sub(r"\D", "", cleaned[1:])
    else:
        digits = re.sub(r"\D", "", cleaned)
        if not digits:
            raise ValueError(f"Invalid phone number '{phone}'")
        if digits.startswith("00"):
            normalized = f"+{digits[2:]}"
        elif digits.startswith("0"):
            normalized = f"+{country_code}{digits[1:]}"
        elif digits.startswith(country_code):
            normalized = f"+{digits}"
        else:
            normalized = f"+{country_code}{digits}"

    if not is_valid_e164(normalized):
        raise ValueError(f"Invalid phone number '{phone}'")
    return normalized


def is_valid_e164(phone: str | None) -> bool:
    """Check that a phone number is already in E.164 format."""
    return bool(phone) and E164_PATTERN.match(phone) is not None
