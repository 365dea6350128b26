"""
Fixtures for social graph tests.
"""

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory


@pytest.fixture
def alice(db):
    return UserFactory(display_name="Alice", email="alice@example.com")


@pytest.fixture
def bob(db):
    return UserFactory(display_name="Bob", email="bob@example.com")


@pytest.fixture
def carol(db):
    return UserFactory(display_name="Carol", email="carol@example.com")


@pytest.fixture
def client_for():
    """
    Build an API client authenticated as the given user.

    Usage:
        response = client_for(alice).get("/api/v1/social/friends/")
    """

    def _build(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return _build


@pytest.fixture
def api_client():
    """Unauthenticated DRF test client."""
    return APIClient()
