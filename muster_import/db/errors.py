from __future__ import annotations

import logging

"""Translate raw store failures into operator-safe reasons.

Raw backend text can leak table names, constraint names or connection
details. Only the fixed messages below are ever shown; the raw text goes to
DEBUG.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "GENERIC_STORE_MESSAGE",
    "sanitize_store_error",
]

GENERIC_STORE_MESSAGE = "Database validation error. The record could not be saved."

# (SQLSTATE class/prefix, substrings, message); first match wins
_PATTERNS: tuple[tuple[str | None, tuple[str, ...], str], ...] = (
    (
        "22007",
        ("date/time field value", "invalid input syntax for type date"),
        "Store rejected the date of joining. Check date format (use dd.mm.yyyy in Form II).",
    ),
    (
        "23505",
        ("unique constraint", "duplicate key"),
        "This record already exists. Please check for duplicates.",
    ),
    (
        "23503",
        ("foreign key",),
        "Cannot complete: related records exist or are missing.",
    ),
    (
        "23502",
        ("not-null", "null value"),
        "A required field is missing. Please fill in all required fields.",
    ),
    (
        "23514",
        ("check constraint",),
        "One or more values are invalid. Please review your input.",
    ),
    (
        "42501",
        ("permission denied", "row-level security"),
        "You don't have permission to perform this action.",
    ),
    (
        "08",
        ("could not connect", "connection", "network", "timeout"),
        "Network error. Please check your connection and try again.",
    ),
)


def sanitize_store_error(exc: BaseException) -> str:
    """Fixed, non-leaking reason for a store exception."""
    message = str(exc)
    code = getattr(exc, "code", None) or getattr(exc, "pgcode", None) or ""
    logger.debug("store error (code=%s): %s", code or "-", message)
    lower = message.lower()
    for prefix, needles, safe in _PATTERNS:
        if prefix and code.startswith(prefix):
            return safe
        if any(n in lower for n in needles):
            return safe
    return GENERIC_STORE_MESSAGE
