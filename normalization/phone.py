"""
Phone normalization and deterministic lead identifiers.

A lead's id is derived from its normalized phone so that concurrent first
events for the same phone race on the same primary key instead of creating
two rows.
"""

import hashlib
import re
import uuid
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def normalize_phone_for_storage(value: Optional[str]) -> Optional[str]:
    """
    Canonical ``+<digits>`` form of a phone number.

    Spaces, dashes, brackets and a leading ``+`` or ``00`` international
    prefix are all formatting: ``+971 50-123 4567``, ``00971501234567`` and
    ``971501234567`` normalize to the same value.
    """
    if value is None:
        return None
    trimmed = str(value).strip()
    if not trimmed:
        return None

    digits = _NON_DIGITS.sub("", trimmed)
    if digits.startswith("00"):
        digits = digits[2:]
    if not digits:
        return None
    return f"+{digits}"


def deterministic_lead_id_from_phone(phone: str) -> str:
    """Stable UUID (version 5 layout) from sha256 over the normalized phone."""
    normalized = normalize_phone_for_storage(phone)
    if not normalized:
        raise ValueError("Cannot derive deterministic lead id without a valid phone number")

    digest = hashlib.sha256(f"lead:{normalized}".encode("utf-8")).digest()[:16]
    return str(uuid.UUID(bytes=digest, version=5))


def phone_suffix(phone: Optional[str]) -> Optional[str]:
    """Last four digits, for log lines."""
    if not phone:
        return None
    return phone[-4:]
