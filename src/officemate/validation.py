"""Input validation and masking helpers.

Phone numbers are normalised to E.164 before they are stored or used as
Redis keys, so every lookup for the same subscriber hits the same key.
"""

import logging
import re
from typing import Optional

from officemate.errors import CorporateEmailError, ValidationError

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")
CONTACT_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
LICENSE_PLATE_PATTERN = re.compile(r"^[A-Z0-9\-\s]{2,15}$")
UNSAFE_TEXT_PATTERN = re.compile(
    r"(script|javascript|<|>|&|;|'|\"|\\|/\*|\*/|--|union|select|insert|update|delete)",
    re.IGNORECASE,
)
_PHONE_SEPARATORS = re.compile(r"[\s\-.()]")

PERSONAL_EMAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "yahoo.com",
        "hotmail.com",
        "outlook.com",
        "aol.com",
        "icloud.com",
        "protonmail.com",
        "mail.com",
    }
)
SUSPICIOUS_DOMAIN_MARKERS = ("temp", "disposable", "fake", "test")
MIN_DOMAIN_LENGTH = 4


def normalize_phone_number(raw: Optional[str], default_country_code: Optional[str] = None) -> str:
    """Normalise a phone number to E.164.

    Numbers without a leading ``+`` (or ``00``) get the default country code;
    a national trunk ``0`` is dropped first.

    Raises:
        ValidationError: If the number is empty or not a plausible E.164 number
    """
    if raw is None or not raw.strip():
        raise ValidationError("Phone number cannot be empty")

    number = _PHONE_SEPARATORS.sub("", raw.strip())
    if number.startswith("00"):
        number = "+" + number[2:]
    elif not number.startswith("+"):
        if default_country_code is None:
            from officemate.config import get_settings

            default_country_code = get_settings().default_country_code
        number = default_country_code + number.lstrip("0")

    if not E164_PATTERN.match(number):
        raise ValidationError("Invalid phone number format")
    return number


def is_valid_contact_phone(phone_number: str) -> bool:
    """Looser check used for emergency/family contacts."""
    return bool(CONTACT_PHONE_PATTERN.match(_PHONE_SEPARATORS.sub("", phone_number or "")))


def mask_phone_number(phone_number: Optional[str]) -> str:
    if not phone_number or len(phone_number) < 4:
        return "****"
    return "****" + phone_number[-4:]


def mask_email(email: Optional[str]) -> str:
    """Mask the local part: ``john.doe@corp.com`` -> ``jo****oe@corp.com``."""
    if not email or "@" not in email:
        return "****"
    local, domain = email.split("@", 1)
    if len(local) <= 4:
        return f"{local[:1]}****@{domain}"
    return f"{local[:2]}****{local[-2:]}@{domain}"


def mask_identifier(identifier: Optional[str]) -> str:
    """Mask an email address or phone number, whichever it is."""
    if identifier and "@" in identifier:
        return mask_email(identifier)
    return mask_phone_number(identifier)


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email.strip()))


def validate_corporate_email(email: Optional[str]) -> str:
    """Validate a corporate email and return it trimmed and lower-cased.

    Raises:
        CorporateEmailError: For malformed addresses, personal providers and
            throwaway-looking domains
    """
    if email is None or not email.strip():
        raise CorporateEmailError("Email address is required")

    email = email.strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise CorporateEmailError("Invalid email format")

    domain = email.split("@", 1)[1]
    if domain in PERSONAL_EMAIL_DOMAINS:
        raise CorporateEmailError(
            "Personal email addresses are not allowed. Please use your corporate email."
        )
    if len(domain) < MIN_DOMAIN_LENGTH:
        raise CorporateEmailError("Invalid corporate domain")
    if any(marker in domain for marker in SUSPICIOUS_DOMAIN_MARKERS):
        logger.debug(f"Rejected suspicious corporate domain: {domain}")
        raise CorporateEmailError("Please use a valid corporate email address")

    parts = domain.split(".")
    tld = parts[-1]
    if len(parts) < 2 or len(tld) < 2 or not tld.isalpha():
        raise CorporateEmailError("Please use a valid corporate email address")
    return email


def normalize_license_plate(plate: Optional[str]) -> str:
    """Upper-case and validate a licence plate.

    Raises:
        ValidationError: For empty, oversized or malformed plates
    """
    if plate is None or not plate.strip():
        raise ValidationError("License plate is required")

    plate = plate.strip().upper()
    if len(plate) > 20:
        raise ValidationError("License plate must be at most 20 characters")
    if UNSAFE_TEXT_PATTERN.search(plate):
        logger.warning("Potentially malicious license plate input rejected")
        raise ValidationError("License plate contains invalid characters")
    if not LICENSE_PLATE_PATTERN.match(plate):
        raise ValidationError("License plate format is invalid")
    return plate
