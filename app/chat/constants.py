"""
Constants and configuration for the chat module.

This module centralizes configuration values for:
- Conversation limits (room names, descriptions)
- Message content and media
- Presence tracking
- Topic fan-out and snapshots

Deployment-tunable values (timeouts, buffer sizes) are read from Django
settings at call time; the values here are fixed limits.

Import example:
    from chat.constants import MESSAGE_CONFIG, PRESENCE_CONFIG
"""

from typing import Final


# =============================================================================
# Conversation Configuration
# =============================================================================


class CONVERSATION_CONFIG:
    """Configuration for rooms and private chats."""

    MAX_ROOM_NAME_LENGTH: Final[int] = 100
    MAX_DESCRIPTION_LENGTH: Final[int] = 500
    IDEMPOTENCY_KEY_MAX_LENGTH: Final[int] = 64

    # Two UUIDs joined by ":"
    PAIR_KEY_MAX_LENGTH: Final[int] = 73

    # Room browsing (GET /chat/rooms/)
    ROOM_LIST_MAX_RESULTS: Final[int] = 100


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MAX_TEXT_LENGTH: Final[int] = 10000  # Characters

    # Preview stored on the conversation for directory listings
    LAST_MESSAGE_PREVIEW_LENGTH: Final[int] = 200

    # Chunk size for list_messages() queryset iteration
    ITERATOR_CHUNK_SIZE: Final[int] = 200


# =============================================================================
# Media Configuration
# =============================================================================


class MEDIA_CONFIG:
    """
    Configuration for message media.

    Media bytes live in the blob store; messages hold only {kind, url}.
    """

    IMAGE: Final[str] = "image"
    VIDEO: Final[str] = "video"
    ALLOWED_KINDS: Final[tuple] = (IMAGE, VIDEO)

    # Content-type prefix -> media kind
    CONTENT_TYPE_KINDS: Final[dict] = {"image/": IMAGE, "video/": VIDEO}

    MAX_URL_LENGTH: Final[int] = 1024

    # Blob path prefix for uploads: <prefix>/<conversation_id>/<uuid><ext>
    UPLOAD_PATH_PREFIX: Final[str] = "chat-media"


# =============================================================================
# Presence Configuration
# =============================================================================


class PRESENCE_CONFIG:
    """Configuration for presence tracking."""

    # Default for settings.PRESENCE_TIMEOUT_SECONDS
    DEFAULT_TIMEOUT_SECONDS: Final[int] = 60

    # How often clients should send a heartbeat
    HEARTBEAT_INTERVAL_SECONDS: Final[int] = 30

    # Max user ids per bulk presence query
    MAX_BULK_USERS: Final[int] = 100


# =============================================================================
# Fan-out Configuration
# =============================================================================


class FANOUT_CONFIG:
    """Configuration for topic subscriptions and snapshots."""

    # Messages included in a conversation topic snapshot
    SNAPSHOT_MESSAGE_LIMIT: Final[int] = 50

    # Default for settings.FANOUT_SUBSCRIBER_BUFFER_SIZE
    DEFAULT_SUBSCRIBER_BUFFER_SIZE: Final[int] = 256

    # Max topics one socket connection may hold
    MAX_SUBSCRIPTIONS_PER_CONNECTION: Final[int] = 200

    # Close code for sockets that fail authentication
    CLOSE_CODE_UNAUTHENTICATED: Final[int] = 4001
