"""
Social graph services.

This module provides:
    - FriendRequestService: send, accept, reject, cancel and list requests
    - FriendshipService: remove friends, list friends, friendship checks

Atomicity:
    accept_request touches three rows (the request and both users' friend
    sets). It runs in one transaction that locks the request row and both
    user rows in primary key order, so either every change is visible or
    none is, and two concurrent accepts cannot deadlock.

Events:
    Every state change publishes on friendRequests:{sender} and
    friendRequests:{receiver}. Friendship changes publish a
    ``friendship`` delta on both users' topics.

Related files:
    - models.py: FriendRequest state machine
    - chat/fanout.py: FanoutService.publish
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from authentication.models import User
from authentication.serializers import PublicUserSerializer
from chat.fanout import DeltaOp, FanoutService, Topic
from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.helpers import canonical_pair_key, parse_uuid
from core.services import BaseService, ServiceResult

from social.constants import FRIEND_REQUEST_CONFIG
from social.models import FriendRequest, FriendRequestStatus
from social.serializers import FriendRequestSerializer

if TYPE_CHECKING:
    from django.db.models import QuerySet


def _user_pk(value):
    """Accept a User instance or a raw id."""
    return getattr(value, "pk", value)


class FriendRequestService(BaseService):
    """
    Service for the friend request lifecycle.

    Usage:
        result = FriendRequestService.send_request(alice, bob.id)
        if result.success:
            FriendRequestService.accept_request(result.data.id, actor=bob)
    """

    @classmethod
    def send_request(
        cls,
        sender: User,
        receiver,
        idempotency_key: str | None = None,
    ) -> ServiceResult[FriendRequest]:
        """
        Send a friend request from sender to receiver.

        Args:
            sender: Requesting user
            receiver: Target User or user id
            idempotency_key: Optional client key; a repeat returns the
                original request instead of creating a new one

        Error codes:
            INVALID_TARGET: receiver is the sender
            USER_NOT_FOUND: receiver missing or inactive
            ALREADY_FRIENDS: the users are already friends
            DUPLICATE_REQUEST: a pending request exists for the pair
        """
        receiver_id = parse_uuid(_user_pk(receiver))

        try:
            with cls.atomic():
                if receiver_id == sender.pk:
                    raise ValidationError(
                        "Cannot send a friend request to yourself",
                        error_code="INVALID_TARGET",
                    )

                if idempotency_key:
                    existing = cls._find_by_idempotency_key(sender, idempotency_key)
                    if existing is not None:
                        return ServiceResult.success(existing)

                target = (
                    User.objects.filter(pk=receiver_id, is_active=True).first()
                    if receiver_id
                    else None
                )
                if target is None:
                    raise NotFoundError(
                        "Receiver not found", error_code="USER_NOT_FOUND"
                    )

                if FriendshipService.are_friends(sender, target):
                    raise ConflictError(
                        "Users are already friends", error_code="ALREADY_FRIENDS"
                    )

                pair_key = canonical_pair_key(sender.pk, target.pk)
                if FriendRequest.objects.filter(
                    pair_key=pair_key, status=FriendRequestStatus.PENDING
                ).exists():
                    raise ConflictError(
                        "A pending request already exists for this pair",
                        error_code="DUPLICATE_REQUEST",
                    )

                try:
                    with transaction.atomic():
                        request = FriendRequest.objects.create(
                            sender=sender,
                            receiver=target,
                            pair_key=pair_key,
                            idempotency_key=idempotency_key or None,
                        )
                except IntegrityError:
                    # Lost a race: either the same retry key or a pending
                    # request for the pair was inserted concurrently
                    if idempotency_key:
                        existing = cls._find_by_idempotency_key(
                            sender, idempotency_key
                        )
                        if existing is not None:
                            return ServiceResult.success(existing)
                    raise ConflictError(
                        "A pending request already exists for this pair",
                        error_code="DUPLICATE_REQUEST",
                    )

                cls._publish_request(request)
        except BaseApplicationError as exc:
            cls.get_logger().info(
                f"Friend request {sender.pk} -> {receiver_id} rejected: {exc.error_code}"
            )
            return ServiceResult.from_error(exc)

        cls.get_logger().info(
            f"Friend request {request.id} sent: {sender.pk} -> {target.pk}"
        )
        return ServiceResult.success(request)

    @classmethod
    def accept_request(cls, request_id, actor: User) -> ServiceResult[FriendRequest]:
        """
        Accept a pending request and link both friend sets atomically.

        Error codes:
            REQUEST_NOT_FOUND: unknown request or no longer pending
            NOT_RECEIVER: actor is not the request's receiver
            USER_NOT_FOUND: either party missing or deactivated
        """
        try:
            with cls.atomic():
                request = cls._lock_request(request_id)
                if not request.is_pending:
                    raise NotFoundError(
                        "Friend request is no longer pending",
                        error_code="REQUEST_NOT_FOUND",
                    )
                if request.receiver_id != actor.pk:
                    raise PermissionDeniedError(
                        "Only the receiver can accept a friend request",
                        error_code="NOT_RECEIVER",
                    )

                # Lock both users in pk order so concurrent accepts between
                # overlapping pairs always acquire locks in the same order
                users = list(
                    User.objects.select_for_update()
                    .filter(
                        pk__in=[request.sender_id, request.receiver_id],
                        is_active=True,
                    )
                    .order_by("pk")
                )
                if len(users) != 2:
                    raise NotFoundError(
                        "Friend request party not found",
                        error_code="USER_NOT_FOUND",
                    )
                by_pk = {user.pk: user for user in users}
                sender = by_pk[request.sender_id]
                receiver = by_pk[request.receiver_id]

                request.accept()
                request.save(update_fields=["status", "responded_at", "updated_at"])
                cls._link(sender, receiver)

                cls._publish_request(request)
                FriendshipService.publish_friendship(sender, receiver, are_friends=True)
        except BaseApplicationError as exc:
            cls.get_logger().info(
                f"Accept of friend request {request_id} by {actor.pk} failed: {exc.error_code}"
            )
            return ServiceResult.from_error(exc)

        cls.get_logger().info(
            f"Friend request {request.id} accepted: {sender.pk} <-> {receiver.pk}"
        )
        return ServiceResult.success(request)

    @classmethod
    def reject_request(cls, request_id, actor: User) -> ServiceResult[FriendRequest]:
        """
        Reject a pending request (receiver only).

        Rejecting an already-terminal request returns it unchanged.
        """
        return cls._terminate(request_id, actor, role="receiver", action="reject")

    @classmethod
    def cancel_request(cls, request_id, actor: User) -> ServiceResult[FriendRequest]:
        """
        Cancel a pending request (sender only).

        Cancelling an already-terminal request returns it unchanged.
        """
        return cls._terminate(request_id, actor, role="sender", action="cancel")

    @classmethod
    def list_incoming(cls, user: User) -> QuerySet[FriendRequest]:
        """Pending requests addressed to user, newest first."""
        return (
            FriendRequest.objects.filter(
                receiver=user, status=FriendRequestStatus.PENDING
            )
            .select_related("sender", "receiver")
            .order_by("-created_at")[: FRIEND_REQUEST_CONFIG.MAX_LISTED_REQUESTS]
        )

    @classmethod
    def list_outgoing(cls, user: User) -> QuerySet[FriendRequest]:
        """Pending requests sent by user, newest first."""
        return (
            FriendRequest.objects.filter(sender=user, status=FriendRequestStatus.PENDING)
            .select_related("sender", "receiver")
            .order_by("-created_at")[: FRIEND_REQUEST_CONFIG.MAX_LISTED_REQUESTS]
        )

    # ==========================================================================
    # Internals
    # ==========================================================================

    @classmethod
    def _terminate(cls, request_id, actor: User, role: str, action: str):
        try:
            with cls.atomic():
                request = cls._lock_request(request_id)
                if getattr(request, f"{role}_id") != actor.pk:
                    raise PermissionDeniedError(
                        f"Only the {role} can {action} a friend request",
                        error_code=f"NOT_{role.upper()}",
                    )
                if not request.is_pending:
                    return ServiceResult.success(request)

                getattr(request, action)()
                request.save(update_fields=["status", "responded_at", "updated_at"])
                cls._publish_request(request)
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        cls.get_logger().info(f"Friend request {request.id} {request.status}")
        return ServiceResult.success(request)

    @classmethod
    def _lock_request(cls, request_id) -> FriendRequest:
        request_pk = parse_uuid(request_id)
        request = (
            FriendRequest.objects.select_for_update()
            .filter(pk=request_pk)
            .first()
            if request_pk
            else None
        )
        if request is None:
            raise NotFoundError(
                "Friend request not found", error_code="REQUEST_NOT_FOUND"
            )
        return request

    @classmethod
    def _find_by_idempotency_key(cls, sender: User, key: str) -> FriendRequest | None:
        return (
            FriendRequest.objects.select_related("sender", "receiver")
            .filter(sender=sender, idempotency_key=key)
            .first()
        )

    @classmethod
    def _link(cls, sender: User, receiver: User) -> None:
        # Symmetric M2M: one add() writes both through rows
        sender.friends.add(receiver)

    @classmethod
    def _publish_request(cls, request: FriendRequest) -> None:
        payload = dict(FriendRequestSerializer(request).data)
        FanoutService.publish_many(
            [
                Topic.friend_requests(request.sender_id),
                Topic.friend_requests(request.receiver_id),
            ],
            DeltaOp.REQUEST,
            payload,
        )


class FriendshipService(BaseService):
    """
    Service for the symmetric friend set.

    Usage:
        if FriendshipService.are_friends(alice, bob):
            FriendshipService.remove_friend(alice, bob)
    """

    @classmethod
    def are_friends(cls, user_a, user_b) -> bool:
        return User.friends.through.objects.filter(
            from_user_id=_user_pk(user_a),
            to_user_id=_user_pk(user_b),
        ).exists()

    @classmethod
    def list_friends(cls, user: User) -> QuerySet[User]:
        """Active friends of user, ordered by display name."""
        return user.friends.filter(is_active=True).order_by("display_name", "email")

    @classmethod
    def remove_friend(cls, user: User, other) -> ServiceResult[bool]:
        """
        Remove the friendship between user and other (User or id).

        Idempotent: returns success(False) when they were not friends.

        Error codes:
            INVALID_TARGET: other is the user
        """
        other_id = parse_uuid(_user_pk(other))

        try:
            with cls.atomic():
                if other_id == user.pk:
                    raise ValidationError(
                        "Cannot unfriend yourself", error_code="INVALID_TARGET"
                    )
                if other_id is None:
                    raise NotFoundError("User not found", error_code="USER_NOT_FOUND")

                locked = {
                    locked_user.pk: locked_user
                    for locked_user in User.objects.select_for_update()
                    .filter(pk__in=[user.pk, other_id])
                    .order_by("pk")
                }
                friend = locked.get(other_id)
                if friend is None or not cls.are_friends(user, friend):
                    return ServiceResult.success(False)

                user.friends.remove(friend)
                cls.publish_friendship(user, friend, are_friends=False)
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        cls.get_logger().info(f"Friendship removed: {user.pk} <-> {other_id}")
        return ServiceResult.success(True)

    @classmethod
    def publish_friendship(cls, user_a: User, user_b: User, are_friends: bool) -> None:
        """Tell each user that their edge to the other was added or removed."""
        for owner, friend in ((user_a, user_b), (user_b, user_a)):
            FanoutService.publish(
                Topic.friend_requests(owner.pk),
                DeltaOp.FRIENDSHIP,
                {
                    "friend": dict(PublicUserSerializer(friend).data),
                    "are_friends": are_friends,
                },
            )
