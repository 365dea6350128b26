"""
Topic addressing and post-commit fan-out of change events.

Every change a service commits is described by a delta published on one or
more topics. A topic is a string of the form ``<kind>:<uuid>``:

    room:{conversation_id}          Room messages, membership, deletion
    privateChat:{conversation_id}   Private chat messages and read receipts
    directory:{user_id}             One user's conversation list
    friendRequests:{user_id}        One user's friend requests and friendships

Delivery path:
    service (inside transaction.atomic)
        -> FanoutService.publish()        registers an on_commit callback
        -> FanoutService._dispatch()      after commit: version + group_send
        -> RealtimeConsumer.fanout_delta  per-connection SubscriptionRegistry

Each topic carries a version counter kept in the cache (atomic incr), so
subscribers can drop duplicates and detect gaps. Snapshots read the
current version before reading data (see chat.snapshots).

Related files:
    - subscriptions.py: per-connection ordering and buffering
    - snapshots.py: topic authorization and snapshot building
    - consumers.py: socket transport
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.cache import cache
from django.db import transaction

from core.exceptions import TransientInfraError, ValidationError
from core.helpers import parse_uuid

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


# Channel-layer message type; dispatched to RealtimeConsumer.fanout_delta
DELTA_EVENT_TYPE = "fanout.delta"


class TopicKind:
    """Topic kinds accepted by Topic.parse()."""

    ROOM = "room"
    PRIVATE_CHAT = "privateChat"
    DIRECTORY = "directory"
    FRIEND_REQUESTS = "friendRequests"

    ALL = (ROOM, PRIVATE_CHAT, DIRECTORY, FRIEND_REQUESTS)
    CONVERSATION_KINDS = (ROOM, PRIVATE_CHAT)
    USER_KINDS = (DIRECTORY, FRIEND_REQUESTS)


class DeltaOp:
    """Delta operation names sent to clients."""

    INSERT = "insert"
    REMOVE = "remove"
    READ_BY = "read_by"
    LAST_MESSAGE = "last_message"
    MEMBERSHIP = "membership"
    DELETED = "deleted"
    REQUEST = "request"
    FRIENDSHIP = "friendship"


@dataclass(frozen=True)
class Topic:
    """
    A parsed, validated topic.

    Usage:
        topic = Topic.parse("room:6f1c...")
        topic.group_name   # "room.6f1c..."
        str(topic)         # "room:6f1c..."
    """

    kind: str
    id: uuid.UUID

    @classmethod
    def parse(cls, value: str) -> Topic:
        """
        Parse a client-supplied topic string.

        Raises:
            ValidationError: Unknown kind or malformed id
        """
        if not isinstance(value, str) or ":" not in value:
            raise ValidationError("Malformed topic", error_code="INVALID_TOPIC")

        kind, _, raw_id = value.partition(":")
        if kind not in TopicKind.ALL:
            raise ValidationError(
                f"Unknown topic kind '{kind}'", error_code="INVALID_TOPIC"
            )

        topic_id = parse_uuid(raw_id)
        if topic_id is None:
            raise ValidationError("Malformed topic id", error_code="INVALID_TOPIC")

        return cls(kind=kind, id=topic_id)

    @classmethod
    def coerce(cls, value: Topic | str) -> Topic:
        return value if isinstance(value, Topic) else cls.parse(value)

    @classmethod
    def room(cls, conversation_id) -> Topic:
        return cls(TopicKind.ROOM, parse_uuid(conversation_id))

    @classmethod
    def private_chat(cls, conversation_id) -> Topic:
        return cls(TopicKind.PRIVATE_CHAT, parse_uuid(conversation_id))

    @classmethod
    def directory(cls, user_id) -> Topic:
        return cls(TopicKind.DIRECTORY, parse_uuid(user_id))

    @classmethod
    def friend_requests(cls, user_id) -> Topic:
        return cls(TopicKind.FRIEND_REQUESTS, parse_uuid(user_id))

    @classmethod
    def for_conversation(cls, conversation) -> Topic:
        """Conversation topic matching the conversation's kind."""
        if conversation.is_room:
            return cls.room(conversation.id)
        return cls.private_chat(conversation.id)

    @property
    def is_conversation(self) -> bool:
        return self.kind in TopicKind.CONVERSATION_KINDS

    @property
    def group_name(self) -> str:
        """Channel-layer group name (colons are not allowed in group names)."""
        return f"{self.kind}.{self.id}"

    def __str__(self) -> str:
        return f"{self.kind}:{self.id}"


class FanoutService:
    """
    Publishes versioned deltas to topic subscribers after commit.

    Producers never wait on subscribers: group_send hands the event to the
    channel layer, whose bounded per-channel capacity drops events for
    consumers that fall behind. Those consumers recover through a resync.

    Usage:
        with transaction.atomic():
            message = Message.objects.create(...)
            FanoutService.publish(
                Topic.for_conversation(conversation),
                DeltaOp.INSERT,
                MessageSerializer(message).data,
            )
    """

    VERSION_KEY_PREFIX = "fanout:version"

    @classmethod
    def publish(cls, topic: Topic | str, op: str, data: dict[str, Any]) -> None:
        """
        Schedule a delta for delivery once the current transaction commits.

        Outside a transaction (autocommit) the delta is dispatched
        immediately. A rolled-back transaction never emits.
        """
        topic = Topic.coerce(topic)
        transaction.on_commit(lambda: cls._dispatch(topic, op, data))

    @classmethod
    def publish_many(cls, topics, op: str, data: dict[str, Any]) -> None:
        for topic in topics:
            cls.publish(topic, op, data)

    @classmethod
    def current_version(cls, topic: Topic) -> int:
        """Latest version published on topic (0 if none or unreadable)."""
        # A cache ignoring connection errors answers None
        return cache.get(cls._version_key(topic)) or 0

    @classmethod
    def next_version(cls, topic: Topic) -> int:
        """
        Atomically assign the next version for topic.

        Raises:
            TransientInfraError: the cache could not hand out a version
        """
        key = cls._version_key(topic)
        ttl = settings.FANOUT_VERSION_TTL_SECONDS or None
        # add() is a no-op when the key exists, so concurrent first
        # publishers still get distinct incr() results
        cache.add(key, 0, timeout=ttl)
        try:
            version = cache.incr(key)
        except ValueError:
            # Key vanished between add() and incr()
            version = None
        if not isinstance(version, int):
            raise TransientInfraError(
                "Topic version unavailable",
                error_code="VERSION_UNAVAILABLE",
                details={"topic": str(topic)},
            )
        if ttl:
            cache.touch(key, ttl)
        return version

    @classmethod
    def _dispatch(cls, topic: Topic, op: str, data: dict[str, Any]) -> None:
        try:
            try:
                version = cls.next_version(topic)
            except TransientInfraError as exc:
                # Sent unversioned; every subscriber resyncs on it
                logger.warning(f"No version for {op} on {topic}: {exc}")
                version = None
            channel_layer = get_channel_layer()
            if channel_layer is None:
                logger.warning("No channel layer configured, dropping fan-out")
                return
            async_to_sync(channel_layer.group_send)(
                topic.group_name,
                {
                    "type": DELTA_EVENT_TYPE,
                    "topic": str(topic),
                    "op": op,
                    "version": version,
                    "data": data,
                },
            )
            logger.debug(f"Published {op} v{version} on {topic}")
        except Exception:
            # Committed state stands; subscribers catch up on their next resync
            logger.exception(f"Fan-out of {op} on {topic} failed")

    @classmethod
    def _version_key(cls, topic: Topic) -> str:
        return f"{cls.VERSION_KEY_PREFIX}:{topic}"
