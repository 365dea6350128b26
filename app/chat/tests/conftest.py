"""
Test configuration and fixtures for chat tests.

This module provides:
- User fixtures (alice, bob, carol)
- Room and private chat fixtures
- API client helpers for authenticated requests
- A patched fan-out dispatcher for asserting published deltas
- A temporary blob store location for media tests

Usage:
    def test_example(room, client_for, alice):
        response = client_for(alice).get(f"/api/v1/chat/conversations/{room.id}/")
        assert response.status_code == 200
"""

from unittest.mock import patch

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from chat.fanout import FanoutService
from chat.tests.factories import RoomFactory, make_private_chat


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def alice(db):
    return UserFactory(display_name="Alice", email="alice@example.com")


@pytest.fixture
def bob(db):
    return UserFactory(display_name="Bob", email="bob@example.com")


@pytest.fixture
def carol(db):
    """A user outside every fixture conversation."""
    return UserFactory(display_name="Carol", email="carol@example.com")


# =============================================================================
# Conversation Fixtures
# =============================================================================


@pytest.fixture
def room(alice, bob):
    """Room "Team" owned by alice with bob as a member."""
    return RoomFactory(name="Team", owner=alice, members=[bob])


@pytest.fixture
def private_chat(alice, bob):
    return make_private_chat(alice, bob)


# =============================================================================
# Clients
# =============================================================================


@pytest.fixture
def client_for():
    """
    Build an API client authenticated as the given user.

    Usage:
        response = client_for(alice).get("/api/v1/chat/directory/")
    """

    def _build(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _build


@pytest.fixture
def api_client():
    return APIClient()


# =============================================================================
# Fan-out and storage
# =============================================================================


@pytest.fixture
def mock_dispatch():
    """
    Patch FanoutService._dispatch to record deltas instead of sending them.

    Combine with django_capture_on_commit_callbacks(execute=True) to run
    the post-commit callbacks inside a test transaction.
    """
    with patch.object(FanoutService, "_dispatch") as mocked:
        yield mocked


@pytest.fixture
def media_root(settings, tmp_path):
    """Point the default storage (and so the blob store) at a temp dir."""
    settings.MEDIA_ROOT = str(tmp_path)
    settings.MEDIA_URL = "/media/"
    return tmp_path

