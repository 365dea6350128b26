"""
Tests for the per-connection subscription registry.

Covers the ordering rules applied to channel-layer deltas:
- stale and duplicate versions are dropped
- version gaps, counter resets and buffer overflow request a resync
- message sequence gaps request a catch-up from the last sequence
- close() tears everything down
"""

import uuid

import pytest

from chat.fanout import DeltaOp, Topic
from chat.subscriptions import Resync, Subscription, SubscriptionRegistry
from core.exceptions import ValidationError


def delta(topic, version, op=DeltaOp.LAST_MESSAGE, **data):
    return {
        "type": "fanout.delta",
        "topic": str(topic),
        "op": op,
        "version": version,
        "data": data,
    }


def insert(topic, version, sequence):
    return delta(topic, version, op=DeltaOp.INSERT, sequence=sequence)


@pytest.fixture
def room_topic():
    return Topic.room(uuid.uuid4())


@pytest.fixture
def directory_topic():
    return Topic.directory(uuid.uuid4())


@pytest.fixture
def registry():
    return SubscriptionRegistry(capacity=4)


def primed(registry, topic, version=0, sequence=0):
    subscription = registry.add(topic)
    subscription.prime(version, sequence)
    return subscription


class TestVersionOrdering:
    def test_in_order_deltas_are_delivered(self, registry, directory_topic):
        primed(registry, directory_topic, version=3)

        registry.offer(delta(directory_topic, 4))
        registry.offer(delta(directory_topic, 5))

        assert [item["version"] for item in registry.drain()] == [4, 5]

    def test_stale_and_duplicate_versions_dropped(self, registry, directory_topic):
        """
        Why it matters: Deltas already reflected in the snapshot (or
        redelivered) must not be applied twice.
        """
        primed(registry, directory_topic, version=5)

        assert registry.offer(delta(directory_topic, 4)) is False
        assert registry.offer(delta(directory_topic, 5)) is False
        assert registry.offer(delta(directory_topic, 6)) is True
        assert registry.offer(delta(directory_topic, 6)) is False

        assert [item["version"] for item in registry.drain()] == [6]

    def test_version_gap_requests_resync(self, registry, directory_topic):
        subscription = primed(registry, directory_topic, version=2)
        registry.offer(delta(directory_topic, 3))

        registry.offer(delta(directory_topic, 5))

        assert subscription.needs_resync is True
        assert registry.drain() == [Resync(directory_topic, None)]

    def test_counter_reset_requests_resync(self, registry, directory_topic):
        """
        Why it matters: If the version counter is evicted from the cache it
        restarts at 1; without this rule every later delta would look stale.
        """
        subscription = primed(registry, directory_topic, version=7)

        registry.offer(delta(directory_topic, 1))

        assert subscription.needs_resync is True

    def test_counter_reset_after_first_version(self, registry, directory_topic):
        subscription = primed(registry, directory_topic, version=1)

        registry.offer(delta(directory_topic, 1))

        assert subscription.needs_resync is True

    def test_unversioned_delta_requests_resync(self, registry, directory_topic):
        """
        Why it matters: When the version counter is unavailable deltas go
        out without a version; subscribers must resync rather than fail.
        """
        subscription = primed(registry, directory_topic, version=0)

        assert registry.offer(delta(directory_topic, None)) is False

        assert subscription.needs_resync is True
        assert registry.drain() == [Resync(directory_topic, None)]

    def test_first_delta_after_empty_snapshot(self, registry, directory_topic):
        primed(registry, directory_topic, version=0)

        assert registry.offer(delta(directory_topic, 1)) is True


class TestOverflow:
    def test_overflow_clears_buffer_and_requests_resync(self, registry, directory_topic):
        """
        Why it matters: A slow subscriber must not block publishers or grow
        without bound; it falls back to a fresh snapshot instead.
        """
        subscription = primed(registry, directory_topic)

        for version in range(1, 6):
            registry.offer(delta(directory_topic, version))

        assert subscription.needs_resync is True
        assert len(subscription.buffer) == 0
        assert subscription.dropped == 1
        assert registry.drain() == [Resync(directory_topic, None)]

    def test_deltas_ignored_until_resync_taken(self, registry, directory_topic):
        subscription = primed(registry, directory_topic, version=1)
        subscription.request_resync()

        assert registry.offer(delta(directory_topic, 2)) is False
        assert len(subscription.buffer) == 0


class TestMessageSequence:
    def test_sequence_gap_requests_catch_up(self, registry, room_topic):
        """
        Why it matters: Messages must reach the client in sequence order;
        a skipped sequence is fetched with list_messages before going on.
        """
        primed(registry, room_topic, version=0, sequence=2)
        registry.offer(insert(room_topic, 1, sequence=3))

        registry.offer(insert(room_topic, 2, sequence=5))

        items = registry.drain()
        # sequence 3 was buffered but never delivered, so the catch-up covers it
        assert items == [Resync(room_topic, since_sequence=2)]

    def test_duplicate_sequence_dropped(self, registry, room_topic):
        subscription = primed(registry, room_topic, version=0, sequence=4)

        assert registry.offer(insert(room_topic, 1, sequence=4)) is False
        assert subscription.last_version == 1
        assert subscription.needs_resync is False

    def test_non_insert_ops_do_not_touch_sequence(self, registry, room_topic):
        subscription = primed(registry, room_topic, version=0, sequence=4)

        registry.offer(delta(room_topic, 1, op=DeltaOp.READ_BY, sequence=2))

        assert subscription.last_sequence == 4
        assert len(registry.drain()) == 1


class TestPriming:
    def test_held_deltas_rechecked_against_snapshot(self, registry, directory_topic):
        """
        Why it matters: Deltas that arrive while a snapshot is being built
        may already be in it; only the newer ones may be delivered.
        """
        subscription = registry.add(directory_topic)
        registry.offer(delta(directory_topic, 3))
        registry.offer(delta(directory_topic, 4))

        assert registry.drain() == []

        subscription.prime(version=3)

        assert [item["version"] for item in registry.drain()] == [4]

    def test_held_first_version_is_not_a_reset(self, registry, directory_topic):
        subscription = registry.add(directory_topic)
        registry.offer(delta(directory_topic, 1))

        subscription.prime(version=1)

        assert subscription.needs_resync is False
        assert registry.drain() == []

    def test_take_resync_waits_for_snapshot(self, registry, room_topic):
        subscription = primed(registry, room_topic, sequence=9)
        subscription.request_resync()

        assert subscription.take_resync() == Resync(room_topic, since_sequence=9)
        assert subscription.awaiting_snapshot is True
        assert subscription.take_resync() is None


class TestRegistry:
    def test_add_is_idempotent(self, registry, room_topic):
        assert registry.add(room_topic) is registry.add(room_topic)
        assert len(registry) == 1

    def test_subscription_limit(self, room_topic):
        registry = SubscriptionRegistry(capacity=4, max_subscriptions=1)
        registry.add(room_topic)

        with pytest.raises(ValidationError):
            registry.add(Topic.room(uuid.uuid4()))

    def test_offer_for_unknown_topic_ignored(self, registry, room_topic):
        assert registry.offer(delta(room_topic, 1)) is False

    def test_malformed_topic_ignored(self, registry):
        assert registry.offer({"topic": "bogus", "version": 1}) is False

    def test_remove(self, registry, room_topic):
        registry.add(room_topic)

        assert registry.remove(room_topic) is True
        assert registry.remove(room_topic) is False
        assert room_topic not in registry

    def test_close_is_deterministic(self, registry, room_topic, directory_topic):
        primed(registry, room_topic)
        primed(registry, directory_topic)
        registry.offer(delta(directory_topic, 1))

        registry.close()

        assert registry.topics == []
        assert registry.drain() == []
        assert registry.offer(delta(directory_topic, 2)) is False
        with pytest.raises(RuntimeError):
            registry.add(room_topic)

    def test_repr(self, room_topic):
        assert "buffered=0" in repr(Subscription(room_topic, capacity=2))
