"""
Per-connection subscription state.

One SubscriptionRegistry lives on each RealtimeConsumer. It holds a
Subscription per topic and decides, for every delta the channel layer
delivers, whether to buffer it for the client, drop it as stale, or
request a resync.

Ordering rules (per subscription):
    - version <= last_version: stale or duplicate, dropped. Exception: a
      version of 1 after a higher version means the topic's counter was
      reset (cache eviction), which forces a resync.
    - version > last_version + 1: deltas were lost, resync.
    - buffer full: the oldest delta is dropped, the buffer is cleared
      and a resync is requested.
    - message inserts on conversation topics: a sequence at or below
      last_sequence is a duplicate; a sequence gap requests a catch-up
      from last_sequence.

Until a snapshot primes a subscription, deltas are held unfiltered and
re-checked against the snapshot's version when it arrives.

The registry is plain synchronous state; the consumer owns the asyncio
side (waking the pump and sending frames).
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings

from core.exceptions import ValidationError

from chat.constants import FANOUT_CONFIG
from chat.fanout import DeltaOp, Topic

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resync:
    """
    Request to re-send a snapshot for topic.

    since_sequence is set for conversation topics: the client already has
    every message up to it, so only later messages are sent.
    """

    topic: Topic
    since_sequence: int | None = None


class Subscription:
    """Ordering and buffering state of one topic on one connection."""

    def __init__(self, topic: Topic, capacity: int):
        self.topic = topic
        self.capacity = capacity
        self.buffer: deque[dict[str, Any]] = deque()
        self.last_version = 0
        self.last_sequence = 0
        # Highest message sequence handed to the client; catch-ups start here
        self.delivered_sequence = 0
        self.needs_resync = False
        self.awaiting_snapshot = True
        self.dropped = 0

    def __repr__(self) -> str:
        return (
            f"Subscription({self.topic}, v={self.last_version}, "
            f"seq={self.last_sequence}, buffered={len(self.buffer)})"
        )

    @property
    def is_live(self) -> bool:
        """True when deltas can be delivered to the client."""
        return not (self.awaiting_snapshot or self.needs_resync)

    def prime(self, version: int, sequence: int | None = None) -> None:
        """
        Start delivering after a snapshot taken at version.

        Deltas held while the snapshot was in flight are re-checked, so
        those already reflected in the snapshot are dropped.
        """
        held = list(self.buffer)
        self.buffer.clear()
        self.last_version = version
        if sequence is not None:
            self.last_sequence = self.delivered_sequence = sequence
        self.awaiting_snapshot = False
        self.needs_resync = False
        for delta in held:
            if not self.is_live:
                break
            self._accept(delta, replay=True)

    def offer(self, delta: dict[str, Any]) -> bool:
        """
        Offer a delta from the channel layer.

        Returns:
            True if the delta was buffered for delivery
        """
        if self.needs_resync:
            return False

        if self.awaiting_snapshot:
            # Held unfiltered until prime(); bounded, oldest first out
            if len(self.buffer) >= self.capacity:
                self.buffer.popleft()
                self.dropped += 1
            self.buffer.append(delta)
            return False

        return self._accept(delta)

    def request_resync(self) -> None:
        self.needs_resync = True
        self.buffer.clear()
        # Cleared inserts never reached the client
        self.last_sequence = self.delivered_sequence

    def take_resync(self) -> Resync | None:
        """Hand out a pending resync and wait for the snapshot it produces."""
        if not self.needs_resync:
            return None
        self.needs_resync = False
        self.awaiting_snapshot = True
        since = self.last_sequence if self.topic.is_conversation else None
        return Resync(self.topic, since)

    def take_deltas(self) -> list[dict[str, Any]]:
        if not self.is_live:
            return []
        deltas = list(self.buffer)
        self.buffer.clear()
        for delta in deltas:
            if self.topic.is_conversation and delta.get("op") == DeltaOp.INSERT:
                self.delivered_sequence = max(
                    self.delivered_sequence, delta["data"].get("sequence", 0)
                )
        return deltas

    def _accept(self, delta: dict[str, Any], replay: bool = False) -> bool:
        version = delta.get("version")

        if not isinstance(version, int):
            logger.info(f"Unversioned delta on {self.topic}, resyncing")
            self.request_resync()
            return False

        if version <= self.last_version:
            # A fresh counter restarts at 1; held deltas already predate
            # the snapshot and are not evidence of a reset
            if version == 1 and not replay:
                logger.info(f"Version counter reset on {self.topic}, resyncing")
                self.request_resync()
            return False

        if version > self.last_version + 1:
            logger.debug(
                f"Version gap on {self.topic}: "
                f"expected {self.last_version + 1}, got {version}"
            )
            self.request_resync()
            return False

        self.last_version = version

        if self.topic.is_conversation and delta.get("op") == DeltaOp.INSERT:
            sequence = (delta.get("data") or {}).get("sequence", 0)
            if sequence <= self.last_sequence:
                return False
            if sequence > self.last_sequence + 1:
                logger.debug(
                    f"Sequence gap on {self.topic}: "
                    f"have {self.last_sequence}, got {sequence}"
                )
                self.request_resync()
                return False
            self.last_sequence = sequence

        if len(self.buffer) >= self.capacity:
            self.buffer.popleft()
            self.dropped += 1
            logger.info(f"Subscriber buffer overflow on {self.topic}, resyncing")
            self.request_resync()
            return False

        self.buffer.append(delta)
        return True


class SubscriptionRegistry:
    """
    Subscriptions of one connection, keyed by topic.

    Usage:
        registry = SubscriptionRegistry()
        subscription = registry.add(topic)
        ...send snapshot...
        subscription.prime(snapshot["version"], snapshot["sequence"])

        registry.offer(event)          # from the channel layer handler
        for item in registry.drain():  # from the delivery pump
            ...
        registry.close()
    """

    def __init__(self, capacity: int | None = None, max_subscriptions: int | None = None):
        self.capacity = capacity or getattr(
            settings,
            "FANOUT_SUBSCRIBER_BUFFER_SIZE",
            FANOUT_CONFIG.DEFAULT_SUBSCRIBER_BUFFER_SIZE,
        )
        self.max_subscriptions = (
            max_subscriptions or FANOUT_CONFIG.MAX_SUBSCRIPTIONS_PER_CONNECTION
        )
        self._subscriptions: dict[Topic, Subscription] = {}
        self.closed = False

    def __contains__(self, topic: Topic) -> bool:
        return topic in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

    @property
    def topics(self) -> list[Topic]:
        return list(self._subscriptions)

    def get(self, topic: Topic) -> Subscription | None:
        return self._subscriptions.get(topic)

    def add(self, topic: Topic) -> Subscription:
        """
        Register topic, awaiting its first snapshot.

        Raises:
            ValidationError: Connection already holds the maximum number of
                subscriptions
        """
        if self.closed:
            raise RuntimeError("Subscription registry is closed")
        if topic in self._subscriptions:
            return self._subscriptions[topic]
        if len(self._subscriptions) >= self.max_subscriptions:
            raise ValidationError(
                "Too many subscriptions", error_code="TOO_MANY_SUBSCRIPTIONS"
            )
        subscription = Subscription(topic, self.capacity)
        self._subscriptions[topic] = subscription
        return subscription

    def remove(self, topic: Topic) -> bool:
        return self._subscriptions.pop(topic, None) is not None

    def offer(self, event: dict[str, Any]) -> bool:
        """
        Route a channel-layer delta to its subscription.

        Events for topics this connection no longer holds are ignored.
        """
        if self.closed:
            return False
        try:
            topic = Topic.parse(event.get("topic"))
        except ValidationError:
            logger.warning(f"Ignoring delta with malformed topic {event.get('topic')!r}")
            return False
        subscription = self._subscriptions.get(topic)
        if subscription is None:
            return False
        return subscription.offer(event)

    def has_pending(self) -> bool:
        return any(
            subscription.needs_resync or (subscription.is_live and subscription.buffer)
            for subscription in self._subscriptions.values()
        )

    def drain(self) -> list[Resync | dict[str, Any]]:
        """
        Collect pending work: Resync requests and buffered deltas.

        Each subscription contributes either one Resync or its deltas in
        arrival order.
        """
        if self.closed:
            return []
        items: list[Resync | dict[str, Any]] = []
        for subscription in self._subscriptions.values():
            resync = subscription.take_resync()
            if resync is not None:
                items.append(resync)
            else:
                items.extend(subscription.take_deltas())
        return items

    def close(self) -> None:
        """Drop every subscription and refuse further work."""
        for subscription in self._subscriptions.values():
            subscription.buffer.clear()
        self._subscriptions.clear()
        self.closed = True
