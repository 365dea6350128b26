"""
Tests for the FriendRequest model and its state machine.
"""

import pytest
from django.db import IntegrityError, transaction
from django_fsm import TransitionNotAllowed

from core.helpers import canonical_pair_key
from social.models import FriendRequest, FriendRequestStatus
from social.tests.factories import FriendRequestFactory


class TestFriendRequestPairKey:
    """pair_key is derived on save and independent of direction."""

    def test_pair_key_is_set_on_save(self, alice, bob):
        request = FriendRequest.objects.create(sender=alice, receiver=bob)

        assert request.pair_key == canonical_pair_key(alice.id, bob.id)

    def test_pair_key_is_direction_independent(self, alice, bob):
        forward = FriendRequestFactory(sender=alice, receiver=bob)
        forward.reject()
        forward.save()

        backward = FriendRequestFactory(sender=bob, receiver=alice)

        assert forward.pair_key == backward.pair_key


class TestFriendRequestConstraints:
    """Database-level invariants."""

    def test_second_pending_request_for_pair_is_rejected(self, alice, bob):
        """
        Why it matters: The partial unique index is what makes concurrent
        send_request calls safe, not the service's pre-check.
        """
        FriendRequestFactory(sender=alice, receiver=bob)

        with pytest.raises(IntegrityError), transaction.atomic():
            FriendRequestFactory(sender=bob, receiver=alice)

    def test_terminal_requests_do_not_block_new_ones(self, alice, bob):
        first = FriendRequestFactory(sender=alice, receiver=bob)
        first.cancel()
        first.save()

        second = FriendRequestFactory(sender=alice, receiver=bob)

        assert second.is_pending

    def test_idempotency_key_unique_per_sender(self, alice, bob, carol):
        FriendRequestFactory(sender=alice, receiver=bob, idempotency_key="k1")

        with pytest.raises(IntegrityError), transaction.atomic():
            FriendRequestFactory(sender=alice, receiver=carol, idempotency_key="k1")

    def test_same_idempotency_key_allowed_for_other_sender(self, alice, bob, carol):
        FriendRequestFactory(sender=alice, receiver=bob, idempotency_key="k1")

        other = FriendRequestFactory(sender=carol, receiver=bob, idempotency_key="k1")

        assert other.pk is not None


class TestFriendRequestTransitions:
    """django-fsm transitions from PENDING."""

    @pytest.mark.parametrize(
        "method,expected",
        [
            ("accept", FriendRequestStatus.ACCEPTED),
            ("reject", FriendRequestStatus.REJECTED),
            ("cancel", FriendRequestStatus.CANCELLED),
        ],
    )
    def test_pending_transitions_set_responded_at(self, alice, bob, method, expected):
        request = FriendRequestFactory(sender=alice, receiver=bob)

        getattr(request, method)()

        assert request.status == expected
        assert request.responded_at is not None

    def test_terminal_state_cannot_transition(self, alice, bob):
        """
        Why it matters: Accepted, rejected and cancelled are terminal; a
        request is never reused.
        """
        request = FriendRequestFactory(sender=alice, receiver=bob)
        request.accept()

        with pytest.raises(TransitionNotAllowed):
            request.cancel()
