"""
Test configuration and fixtures for authentication tests.

Usage:
    def test_example(user, authenticated_client):
        response = authenticated_client.get("/api/v1/auth/me/")
        assert response.status_code == 200
"""

import uuid

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from authentication.tests.factories import UserFactory


@pytest.fixture
def user(db):
    """Create a basic active user."""
    return UserFactory(display_name="Alice Example", email="alice@example.com")


@pytest.fixture
def other_user(db):
    """Create a second active user."""
    return UserFactory(display_name="Bob Example", email="bob@example.com")


@pytest.fixture
def deactivated_user(db):
    """Create a deactivated user (is_active=False)."""
    return UserFactory(is_active=False)


@pytest.fixture
def api_client():
    """Unauthenticated DRF test client."""
    return APIClient()


@pytest.fixture
def authenticated_client(user):
    """API client authenticated as the default user fixture."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def token_for():
    """
    Build an access token the way the identity provider would.

    Usage:
        token = token_for(user_id=uuid.uuid4(), email="new@example.com")
    """

    def _build(user_id=None, email=None, name=None):
        token = AccessToken()
        token["user_id"] = str(user_id or uuid.uuid4())
        if email is not None:
            token["email"] = email
        if name is not None:
            token["name"] = name
        return token

    return _build
