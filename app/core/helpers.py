"""
Helper functions for common infrastructure operations.

This module provides domain-agnostic utility functions for:
- UUID parsing and validation
- Canonical (order-independent) pair keys for two identifiers

Usage:
    from core.helpers import canonical_pair, canonical_pair_key, parse_uuid

    lower, higher = canonical_pair(user_a.id, user_b.id)
    key = canonical_pair_key(user_a.id, user_b.id)
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


def parse_uuid(value: Any) -> uuid.UUID | None:
    """Return value as a UUID, or None when it is not a valid UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        return None


def canonical_pair(first: Any, second: Any) -> tuple[Any, Any]:
    """
    Order two identifiers deterministically (lower first).

    UUIDs compare by their integer value, which matches how the database
    compares uuid columns, so the result agrees with CHECK constraints of
    the form ``lower < higher``.
    """
    if first == second:
        raise ValueError("A canonical pair needs two distinct identifiers")
    return (first, second) if first < second else (second, first)


def canonical_pair_key(first: Any, second: Any) -> str:
    """
    Derive the order-independent key for an unordered pair of identifiers.

    Example:
        canonical_pair_key(b, a) == canonical_pair_key(a, b)  # True
        canonical_pair_key(a, b)  # "<lower>:<higher>"
    """
    lower, higher = canonical_pair(first, second)
    return f"{lower}:{higher}"
