"""
Social graph models.

FriendRequest is a one-shot state machine between two users:

    PENDING -> ACCEPTED
    PENDING -> REJECTED
    PENDING -> CANCELLED

All three outcomes are terminal and a request is never reused; a new
request is created for a later attempt.

Database invariants:
    - At most one PENDING request per unordered pair of users
      (partial unique constraint on pair_key)
    - sender != receiver
    - idempotency_key is unique per sender when present

Related files:
    - services.py: FriendRequestService, FriendshipService
    - authentication/models.py: User.friends (the symmetric friend set)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django_fsm import FSMField, transition

from core.helpers import canonical_pair_key
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from social.constants import FRIEND_REQUEST_CONFIG


class FriendRequestStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    REJECTED = "rejected", "Rejected"
    CANCELLED = "cancelled", "Cancelled"


class FriendRequest(UUIDPrimaryKeyMixin, BaseModel):
    """
    A request from sender to receiver to become friends.

    Fields:
        sender: User who sent the request
        receiver: User who may accept or reject it
        pair_key: Canonical "<lower>:<higher>" key of the two user ids
        status: FSM-managed state (see FriendRequestStatus)
        responded_at: When the request left PENDING
        idempotency_key: Optional client retry key, unique per sender

    Usage:
        request = FriendRequest.objects.create(sender=alice, receiver=bob)
        request.accept()
        request.save()
    """

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="sent_friend_requests",
        help_text="User who sent the request",
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="received_friend_requests",
        help_text="User the request was sent to",
    )
    pair_key = models.CharField(
        max_length=FRIEND_REQUEST_CONFIG.PAIR_KEY_MAX_LENGTH,
        db_index=True,
        editable=False,
        help_text="Order-independent key of the two user ids",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=FriendRequestStatus.PENDING,
        choices=FriendRequestStatus.choices,
        db_index=True,
        help_text="Current state of the request (managed by FSM)",
    )
    responded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the request was accepted, rejected or cancelled",
    )

    idempotency_key = models.CharField(
        max_length=FRIEND_REQUEST_CONFIG.IDEMPOTENCY_KEY_MAX_LENGTH,
        null=True,
        blank=True,
        help_text="Client retry key; repeats return the original request",
    )

    class Meta:
        db_table = "social_friend_request"
        ordering = ["-created_at"]
        verbose_name = "Friend Request"
        verbose_name_plural = "Friend Requests"
        constraints = [
            models.UniqueConstraint(
                fields=["pair_key"],
                condition=Q(status=FriendRequestStatus.PENDING),
                name="unique_pending_friend_request_per_pair",
            ),
            models.UniqueConstraint(
                fields=["sender", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="unique_friend_request_idempotency_key",
            ),
            models.CheckConstraint(
                condition=~Q(sender=F("receiver")),
                name="friend_request_not_self",
            ),
        ]
        indexes = [
            models.Index(fields=["receiver", "status"], name="friend_req_receiver_idx"),
            models.Index(fields=["sender", "status"], name="friend_req_sender_idx"),
        ]

    def __str__(self) -> str:
        return f"FriendRequest({self.sender_id} -> {self.receiver_id}, {self.status})"

    def save(self, *args, **kwargs):
        if not self.pair_key and self.sender_id and self.receiver_id:
            self.pair_key = canonical_pair_key(self.sender_id, self.receiver_id)
        super().save(*args, **kwargs)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=FriendRequestStatus.PENDING,
        target=FriendRequestStatus.ACCEPTED,
    )
    def accept(self):
        """Transition: PENDING -> ACCEPTED. Friend sets are linked by the service."""
        self.responded_at = timezone.now()

    @transition(
        field=status,
        source=FriendRequestStatus.PENDING,
        target=FriendRequestStatus.REJECTED,
    )
    def reject(self):
        """Transition: PENDING -> REJECTED."""
        self.responded_at = timezone.now()

    @transition(
        field=status,
        source=FriendRequestStatus.PENDING,
        target=FriendRequestStatus.CANCELLED,
    )
    def cancel(self):
        """Transition: PENDING -> CANCELLED."""
        self.responded_at = timezone.now()

    @property
    def is_pending(self) -> bool:
        return self.status == FriendRequestStatus.PENDING

    def involves(self, user) -> bool:
        return user.pk in (self.sender_id, self.receiver_id)
