"""Input sanitisation for signup payloads."""

import html
import re

import phonenumbers
from phonenumbers import NumberParseException

from bazaar.errors import ValidationError
from bazaar.logging_config import get_logger
from bazaar.settings import settings

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_SCRIPT_TAGS = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)


def sanitize_input(value: str | None) -> str:
    """Trim, strip script tags and control characters, then HTML-escape."""
    if not value:
        return ""
    value = _SCRIPT_TAGS.sub("", value.strip())
    value = _CONTROL_CHARS.sub("", value)
    return html.escape(value)


def sanitize_email(email: str) -> str:
    """Lower-case and validate an email address.

    Raises:
        ValidationError: If the address is malformed
    """
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid email format: {email}")
    return email


def sanitize_phone(phone: str | None, region: str | None = None) -> str | None:
    """Normalize a phone number to E.164.

    Args:
        phone: Raw phone number (optional)
        region: Country code used for numbers without a leading +

    Returns:
        E.164 phone, or None when no phone was given

    Raises:
        ValidationError: If the number cannot be parsed or is not valid
    """
    if not phone or not phone.strip():
        return None

    region = region or settings.default_phone_region

    try:
        parsed = phonenumbers.parse(phone, region)
    except NumberParseException as e:
        logger.debug("phone_parse_error", phone=phone, error=str(e))
        raise ValidationError("Invalid phone number format") from e

    if not phonenumbers.is_valid_number(parsed):
        logger.debug("phone_invalid", phone=phone, region=region)
        raise ValidationError("Invalid phone number format")

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
