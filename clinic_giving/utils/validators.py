"""
Custom Validators
Normalisation of donor-supplied phone numbers, names and amounts
"""

import math
import re
import unicodedata
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from clinic_giving.errors import InvalidPhone

COUNTRY_PREFIX = '254'

CHANNELS = ('M-Pesa', 'PayPal', 'Cash/Other')
SHARE_OPTIONS = ('pending', 'granted', 'declined')

_NON_DIGIT = re.compile(r'\D')
_WHITESPACE = re.compile(r'\s+')
_NOT_NAME_CHAR = re.compile(r'[^a-z\s-]')
_NOT_ALNUM = re.compile(r'[^A-Za-z0-9]')


def normalize_msisdn(phone: Optional[str]) -> str:
    """
    Normalise a Kenyan phone number to the 12-digit MSISDN Daraja expects.

    Accepts: 254712345678, +254 712 345 678, 0712345678, 0112345678,
    712345678, 112345678 and over-long 254... input (truncated to 12 digits).

    Raises:
        InvalidPhone: for any other shape
    """
    digits = _NON_DIGIT.sub('', phone or '')
    if not digits:
        raise InvalidPhone('Phone number is required for M-Pesa donations.')

    # Order matters: a 9-digit subscriber number is checked before truncation.
    if digits.startswith(COUNTRY_PREFIX) and len(digits) == 12:
        return digits
    if digits.startswith('0') and len(digits) == 10:
        return COUNTRY_PREFIX + digits[1:]
    if digits[0] in ('7', '1') and len(digits) == 9:
        return COUNTRY_PREFIX + digits
    if digits.startswith(COUNTRY_PREFIX) and len(digits) > 12:
        return digits[:12]

    raise InvalidPhone('Enter a valid Kenyan phone number in 07xx xxx xxx format.')


def sanitize_name(value: Optional[str]) -> str:
    """Drop control and numeric characters and collapse whitespace."""
    value = unicodedata.normalize('NFKC', value or '')
    kept = ''.join(
        ch for ch in value
        if unicodedata.category(ch) != 'Cc' and not unicodedata.category(ch).startswith('N')
    )
    return _WHITESPACE.sub(' ', kept.strip())


def to_title_case(value: str) -> str:
    return ' '.join(
        part[0].upper() + part[1:].lower()
        for part in value.split(' ')
        if part
    )


def display_name(value: Optional[str]) -> str:
    """Sanitised, title-cased name as shown to supporters."""
    return to_title_case(sanitize_name(value))


def normalize_name(value: str) -> str:
    """
    Dedup key for a supporter name: diacritics folded, lowercase,
    letters/spaces/hyphens only, whitespace runs joined with a hyphen.
    """
    decomposed = unicodedata.normalize('NFKD', value)
    folded = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NOT_NAME_CHAR.sub('', folded.lower()).strip()
    return _WHITESPACE.sub('-', cleaned)


def sanitize_account_reference(value: Optional[str], fallback: str) -> str:
    """Alphanumeric uppercase reference, at most 12 characters (Daraja limit)."""
    reference = _NOT_ALNUM.sub('', value or '').upper()[:12]
    return reference or fallback


def round_amount(amount) -> Optional[int]:
    """
    Round an amount half-up to whole shillings.

    Returns None when the value is not a finite number.
    """
    if isinstance(amount, bool):
        return None
    try:
        if isinstance(amount, float) and not math.isfinite(amount):
            return None
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not value.is_finite():
        return None
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def validate_channel(channel: str) -> tuple[bool, Optional[str]]:
    """
    Validate a contribution channel

    Returns:
        Tuple of (is_valid, error_message)
    """
    if channel not in CHANNELS:
        return False, f"Channel must be one of: {', '.join(CHANNELS)}"
    return True, None


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the models store datetimes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
