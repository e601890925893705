"""
Input Validation - field checks for bids, items and storage identifiers.

Checks return (is_valid, error_message) so callers decide which
error type to raise.
"""

import re
from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_AMOUNT = 2**63 - 1          # SQLite INTEGER upper bound
MAX_QUANTITY = 1_000_000
MAX_NICKNAME_LENGTH = 64
MAX_ITEM_NAME_LENGTH = 200

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = 1,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass; True must not pass as quantity 1
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_string(
    value: Any,
    name: str,
    max_length: int,
    allow_empty: bool = False,
) -> Tuple[bool, str]:
    """Validate a text field."""
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if not allow_empty and not value.strip():
        return False, f"{name} must not be empty"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}, got {len(value)}"

    return True, ""


def validate_optional_string(value: Any, name: str, max_length: int) -> Tuple[bool, str]:
    """Validate a nullable text field."""
    if value is None:
        return True, ""
    return validate_string(value, name, max_length, allow_empty=True)


def validate_identifier(value: Any, name: str = "identifier") -> Tuple[bool, str]:
    """
    Validate an SQL identifier (table name).

    Table names are interpolated into statements, so only plain
    identifiers are accepted.
    """
    if not isinstance(value, str) or not _IDENTIFIER_RE.match(value):
        return False, f"{name} must be a plain SQL identifier, got {value!r}"
    return True, ""


def first_error(*checks: Tuple[bool, str]) -> Optional[str]:
    """Return the first failing check's message, or None."""
    for ok, error in checks:
        if not ok:
            return error
    return None
