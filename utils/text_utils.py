"""
Text utilities for identifiers coming out of stock and order exports.

Used for batch number normalization and free-text comparisons.
"""

import re
import unicodedata
from typing import Optional


_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")


def normalize_batch_number(value: Optional[str]) -> str:
    """
    Normalize batch number for storage and lookup.

    Exports format the same batch differently:
    - "x-100" → "X100"
    - " BCB 0042 " → "BCB0042"
    - "pal/77.a" → "PAL77A"

    Args:
        value: Raw batch number (may be None)

    Returns:
        Uppercase alphanumeric string, empty if nothing is left
    """
    if not value:
        return ""
    return _NON_ALPHANUMERIC.sub("", str(value)).upper()


def normalize_text(value: Optional[str]) -> str:
    """
    Normalize free text for case-insensitive comparison.

    - "  In Delivery " → "in delivery"
    - "Orgánico" → "organico"

    Args:
        value: Original text (may have accents, mixed case)

    Returns:
        Lowercase ASCII string, empty if input is empty
    """
    if not value:
        return ""

    # Strip whitespace
    value = str(value).strip()

    if not value:
        return ""

    # Remove accent marks (combining characters in Unicode category 'Mn')
    normalized = unicodedata.normalize("NFD", value)
    ascii_value = "".join(
        c for c in normalized
        if unicodedata.category(c) != "Mn"
    )

    return ascii_value.lower()


def clean_optional(value: Optional[str]) -> Optional[str]:
    """
    Strip a value and return None for blank strings.

    Restriction fields treat None and "" the same way: no constraint.
    """
    if value is None:
        return None
    value = str(value).strip()
    return value or None
