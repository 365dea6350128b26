"""
Tests for PresenceService.

Presence is derived: a user is online only while heartbeats keep arriving
within PRESENCE_TIMEOUT_SECONDS. These tests move the clock with freezegun
instead of sleeping.
"""

import uuid
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone

import pytest
from django.utils import timezone
from freezegun import freeze_time

from chat.models import Presence
from chat.services import PresenceService
from chat.tasks import sweep_stale_presence


@pytest.fixture(autouse=True)
def presence_timeout(settings):
    settings.PRESENCE_TIMEOUT_SECONDS = 60


class TestHeartbeat:
    def test_heartbeat_marks_online(self, alice):
        PresenceService.heartbeat(alice.id)

        assert PresenceService.is_online(alice.id) is True

    def test_heartbeat_is_repeatable(self, alice):
        PresenceService.heartbeat(alice.id)
        PresenceService.heartbeat(alice.id)

        assert Presence.objects.filter(user=alice).count() == 1

    def test_never_seen_user_is_offline(self, alice):
        assert PresenceService.is_online(alice.id) is False


class TestTimeout:
    def test_offline_after_timeout_without_disconnect(self, alice):
        """
        Why it matters: A crashed client never sends a disconnect; the
        timeout alone must flip it offline.
        """
        with freeze_time("2024-01-01 12:00:00"):
            PresenceService.heartbeat(alice.id)

        with freeze_time("2024-01-01 12:01:01"):
            assert PresenceService.is_online(alice.id) is False

    def test_heartbeat_within_window_keeps_online(self, alice):
        with freeze_time("2024-01-01 12:00:00"):
            PresenceService.heartbeat(alice.id)
        with freeze_time("2024-01-01 12:00:30"):
            PresenceService.heartbeat(alice.id)

        with freeze_time("2024-01-01 12:01:20"):
            assert PresenceService.is_online(alice.id) is True

    def test_timeout_is_configurable(self, settings, alice):
        settings.PRESENCE_TIMEOUT_SECONDS = 10

        with freeze_time("2024-01-01 12:00:00"):
            PresenceService.heartbeat(alice.id)
        with freeze_time("2024-01-01 12:00:11"):
            assert PresenceService.is_online(alice.id) is False


class TestExplicitDisconnect:
    def test_disconnect_is_immediate(self, alice):
        PresenceService.heartbeat(alice.id)

        PresenceService.explicit_disconnect(alice.id)

        assert PresenceService.is_online(alice.id) is False

    def test_disconnect_records_last_seen(self, alice):
        with freeze_time("2024-01-01 12:00:00"):
            PresenceService.heartbeat(alice.id)
        with freeze_time("2024-01-01 12:00:20"):
            PresenceService.explicit_disconnect(alice.id)

        presence = PresenceService.get_presence(alice.id).data
        assert presence["last_seen_at"] == datetime(2024, 1, 1, 12, 0, 20, tzinfo=dt_timezone.utc)


class TestQueries:
    def test_get_presence_unknown_user(self, db):
        user_id = uuid.uuid4()

        result = PresenceService.get_presence(user_id)

        assert result.data == {"user_id": user_id, "is_online": False, "last_seen_at": None}

    def test_get_presence_invalid_id(self):
        result = PresenceService.get_presence("not-a-uuid")

        assert result.error_code == "INVALID_USER_ID"

    def test_bulk_presence(self, alice, bob):
        PresenceService.heartbeat(alice.id)

        result = PresenceService.get_bulk_presence([alice.id, bob.id])

        assert result.data[str(alice.id)]["is_online"] is True
        assert result.data[str(bob.id)]["is_online"] is False

    def test_bulk_presence_limit(self):
        result = PresenceService.get_bulk_presence([uuid.uuid4() for _ in range(101)])

        assert result.error_code == "TOO_MANY_USERS"


class TestSweep:
    def test_sweep_marks_stale_users_offline(self, alice, bob):
        now = timezone.now()
        PresenceService.heartbeat(alice.id, at=now - timedelta(seconds=120))
        PresenceService.heartbeat(bob.id, at=now)

        swept = PresenceService.sweep_stale(now=now)

        assert swept == 1
        assert Presence.objects.get(user=alice).is_online is False
        assert Presence.objects.get(user=bob).is_online is True

    def test_sweep_task_delegates_to_service(self, alice):
        now = timezone.now()
        PresenceService.heartbeat(alice.id, at=now - timedelta(seconds=120))

        assert sweep_stale_presence.apply().get() == 1
