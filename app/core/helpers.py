"""
Small domain-agnostic helper functions.

Usage:
    from core.helpers import digits_only, parse_uuid

    parse_uuid("550e8400-e29b-41d4-a716-446655440000")  # UUID(...)
    parse_uuid("s_1")  # None
    digits_only("+1 (555) 010-2000")  # "15550102000"
"""

from __future__ import annotations

import re
import uuid
from typing import Any

_NON_DIGITS = re.compile(r"\D")


def parse_uuid(value: Any) -> uuid.UUID | None:
    """
    Parse a value into a UUID.

    Args:
        value: UUID instance or string form

    Returns:
        The UUID, or None if the value is not a valid UUID
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


def digits_only(value: str | None) -> str:
    """Return only the digit characters of value (empty string for None)."""
    if not value:
        return ""
    return _NON_DIGITS.sub("", str(value))
