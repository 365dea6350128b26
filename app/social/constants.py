"""
Constants for the social graph.

Import example:
    from social.constants import FRIEND_REQUEST_CONFIG
"""

from typing import Final


class FRIEND_REQUEST_CONFIG:
    """Configuration for friend requests."""

    # Client-supplied retry key (POST /social/requests/)
    IDEMPOTENCY_KEY_MAX_LENGTH: Final[int] = 64

    # Two UUIDs joined by ":"
    PAIR_KEY_MAX_LENGTH: Final[int] = 73

    # Pending requests returned per inbox listing
    MAX_LISTED_REQUESTS: Final[int] = 200
