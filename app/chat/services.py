"""
Chat system service layer.

This module provides the business logic for the chat system, encapsulating
all operations on conversations, messages and presence.

Services:
    ConversationService: Rooms, private chats, membership, directory
    MessageService: Append-only message log, read receipts, media upload
    PresenceService: Heartbeat-derived online state

Design Principles:
    - Services are stateless (use class methods)
    - Domain failures are raised inside cls.atomic() so the transaction
      rolls back, then returned as ServiceResult.from_error()
    - Writes that touch several rows lock exactly the rows they touch
    - Change events are published with FanoutService.publish(), which
      delivers only after commit

Usage:
    from chat.services import ConversationService, MessageService

    room = ConversationService.create_room(owner=user, name="Team").data
    ConversationService.join_room(room.id, other_user)

    result = MessageService.append_message(room.id, other_user, text="hi")
    if result.success:
        message = result.data   # message.sequence == 1
"""

from __future__ import annotations

import logging
import os
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, F, IntegerField, OuterRef, Prefetch, Q, Subquery
from django.db.models.functions import Coalesce
from django.utils import timezone

from authentication.models import User
from authentication.serializers import PublicUserSerializer
from core.exceptions import (
    BaseApplicationError,
    IntegrityViolationError,
    NotFoundError,
    PermissionDeniedError,
    TransientInfraError,
    ValidationError,
)
from core.helpers import canonical_pair, parse_uuid
from core.services import BaseService, ServiceResult
from core.storage import get_blob_store
from social.services import FriendshipService

from chat.constants import (
    CONVERSATION_CONFIG,
    MEDIA_CONFIG,
    MESSAGE_CONFIG,
    PRESENCE_CONFIG,
)
from chat.fanout import DeltaOp, FanoutService, Topic
from chat.models import (
    Conversation,
    ConversationKind,
    Message,
    MessageReadReceipt,
    Participant,
    Presence,
    PrivateChatPair,
)
from chat.serializers import ConversationSerializer, MessageSerializer

if TYPE_CHECKING:
    from collections.abc import Iterator

    from django.db.models import QuerySet

logger = logging.getLogger(__name__)


def _user_pk(value):
    """Accept a User instance or a raw id."""
    return getattr(value, "pk", value)


def _public_user(user: User) -> dict:
    return dict(PublicUserSerializer(user).data)


class ConversationService(BaseService):
    """
    Service for the conversation directory.

    Methods:
        create_room: Create a room owned by (and containing) its creator
        join_room: Add a member (idempotent)
        leave_room: Remove a member, transferring ownership or deleting
        get_or_create_private_chat: Race-free private chat per user pair
        get_conversation_for_member: Membership-checked lookup
        user_directory: A user's conversations, most recent first
        list_rooms: Browse rooms
        members: Members of a conversation in join order
    """

    @classmethod
    def create_room(
        cls,
        owner: User,
        name: str,
        description: str = "",
        idempotency_key: str | None = None,
    ) -> ServiceResult[Conversation]:
        """
        Create a room whose member set is {owner}.

        Error codes:
            ROOM_NAME_REQUIRED: name blank after trimming
            ROOM_NAME_TOO_LONG: name over the configured limit
            DESCRIPTION_TOO_LONG: description over the configured limit
        """
        name = (name or "").strip()
        description = (description or "").strip()

        try:
            with cls.atomic():
                if not name:
                    raise ValidationError(
                        "Room name cannot be empty", error_code="ROOM_NAME_REQUIRED"
                    )
                if len(name) > CONVERSATION_CONFIG.MAX_ROOM_NAME_LENGTH:
                    raise ValidationError(
                        "Room name is too long", error_code="ROOM_NAME_TOO_LONG"
                    )
                if len(description) > CONVERSATION_CONFIG.MAX_DESCRIPTION_LENGTH:
                    raise ValidationError(
                        "Room description is too long",
                        error_code="DESCRIPTION_TOO_LONG",
                    )

                if idempotency_key:
                    existing = cls._find_room_by_key(owner, idempotency_key)
                    if existing is not None:
                        return ServiceResult.success(existing)

                try:
                    with transaction.atomic():
                        room = Conversation.objects.create(
                            kind=ConversationKind.ROOM,
                            name=name,
                            description=description,
                            owner=owner,
                            idempotency_key=idempotency_key or None,
                        )
                except IntegrityError:
                    existing = (
                        cls._find_room_by_key(owner, idempotency_key)
                        if idempotency_key
                        else None
                    )
                    if existing is None:
                        raise IntegrityViolationError(
                            "Room could not be created", error_code="ROOM_CREATE_FAILED"
                        )
                    return ServiceResult.success(existing)

                Participant.objects.create(conversation=room, user=owner)

                FanoutService.publish(
                    Topic.directory(owner.pk),
                    DeltaOp.INSERT,
                    dict(ConversationSerializer(room).data),
                )
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        cls.get_logger().info(f"User {owner.pk} created room {room.id}")
        return ServiceResult.success(room)

    @classmethod
    def join_room(cls, room_id, user, actor: User | None = None) -> ServiceResult[Conversation]:
        """
        Add user to a room. Joining twice is a no-op.

        Args:
            room_id: Room to join
            user: User (or user id) being added
            actor: User performing the add (defaults to user). Adding
                someone else requires actor to be a member.

        Error codes:
            ROOM_NOT_FOUND: unknown id or the id of a private chat
            NOT_A_MEMBER: actor adds someone else without being a member
            USER_NOT_FOUND: user is unknown or deactivated
        """
        target_id = parse_uuid(_user_pk(user))

        try:
            with cls.atomic():
                room = cls._get_room(room_id, lock=True)

                user = (
                    User.objects.filter(pk=target_id, is_active=True).first()
                    if target_id
                    else None
                )
                if user is None:
                    raise NotFoundError("User not found", error_code="USER_NOT_FOUND")

                actor = actor or user
                if actor.pk != user.pk and not room.has_member(actor):
                    raise PermissionDeniedError(
                        "Only members can add others to a room",
                        error_code="NOT_A_MEMBER",
                    )

                _, created = Participant.objects.get_or_create(
                    conversation=room, user=user
                )
                if created:
                    FanoutService.publish(
                        Topic.room(room.id),
                        DeltaOp.MEMBERSHIP,
                        cls._membership_payload(room, user, "joined"),
                    )
                    FanoutService.publish(
                        Topic.directory(user.pk),
                        DeltaOp.INSERT,
                        dict(ConversationSerializer(room).data),
                    )
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        if created:
            cls.get_logger().info(f"User {user.pk} joined room {room.id}")
        return ServiceResult.success(room)

    @classmethod
    def leave_room(cls, room_id, user: User) -> ServiceResult[Conversation | None]:
        """
        Remove user from a room.

        The room row is locked for the whole operation. When the last
        member leaves the room is deleted with its messages (result data
        is None). When the owner leaves a populated room, ownership passes
        to the member with the oldest join time.

        Error codes:
            ROOM_NOT_FOUND: unknown room
            NOT_A_MEMBER: user is not in the room
        """
        try:
            with cls.atomic():
                room = cls._get_room(room_id, lock=True)

                participant = room.participants.filter(user=user).first()
                if participant is None:
                    raise PermissionDeniedError(
                        "User is not a member of this room",
                        error_code="NOT_A_MEMBER",
                    )
                participant.delete()

                FanoutService.publish(
                    Topic.directory(user.pk),
                    DeltaOp.REMOVE,
                    {"conversation_id": str(room.id)},
                )

                successor = (
                    room.participants.select_related("user")
                    .order_by("created_at", "id")
                    .first()
                )
                if successor is None:
                    topic = Topic.room(room.id)
                    room.delete()
                    FanoutService.publish(
                        topic, DeltaOp.DELETED, {"conversation_id": str(topic.id)}
                    )
                    cls.get_logger().info(
                        f"Room {topic.id} deleted after last member {user.pk} left"
                    )
                    return ServiceResult.success(None)

                transferred = room.owner_id in (user.pk, None)
                if transferred:
                    room.owner = successor.user
                    room.save(update_fields=["owner", "updated_at"])

                payload = cls._membership_payload(room, user, "left")
                payload["ownership_transferred"] = transferred
                FanoutService.publish(Topic.room(room.id), DeltaOp.MEMBERSHIP, payload)
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        if transferred:
            cls.get_logger().info(
                f"Room {room.id} ownership transferred from {user.pk} to {room.owner_id}"
            )
        cls.get_logger().info(f"User {user.pk} left room {room.id}")
        return ServiceResult.success(room)

    @classmethod
    def get_or_create_private_chat(cls, user_a: User, user_b) -> ServiceResult[Conversation]:
        """
        Return the private chat between two users, creating it if needed.

        Race-free: the insert is guarded by the unique pair_key. A caller
        that loses the race re-reads and returns the winner's chat, so
        concurrent calls for (A, B) and (B, A) yield exactly one chat.

        Args:
            user_a: Requesting user
            user_b: Counterpart User or user id

        Error codes:
            INVALID_TARGET: both users are the same
            USER_NOT_FOUND: counterpart missing or deactivated
            NOT_FRIENDS: friendship required by settings and absent
            PRIVATE_CHAT_RACE: insert failed and no winner was found
        """
        other_id = parse_uuid(_user_pk(user_b))

        try:
            with cls.atomic():
                if other_id == user_a.pk:
                    raise ValidationError(
                        "Cannot open a private chat with yourself",
                        error_code="INVALID_TARGET",
                    )
                counterpart = (
                    User.objects.filter(pk=other_id, is_active=True).first()
                    if other_id
                    else None
                )
                if counterpart is None:
                    raise NotFoundError("User not found", error_code="USER_NOT_FOUND")

                lower, higher = canonical_pair(user_a.pk, counterpart.pk)
                pair_key = f"{lower}:{higher}"

                existing = cls._find_private_chat(pair_key)
                if existing is not None:
                    return ServiceResult.success(existing)

                if settings.CHAT_PRIVATE_CHAT_REQUIRES_FRIENDSHIP and not (
                    FriendshipService.are_friends(user_a, counterpart)
                ):
                    raise PermissionDeniedError(
                        "Private chats require friendship",
                        error_code="NOT_FRIENDS",
                    )

                try:
                    with transaction.atomic():
                        conversation = Conversation.objects.create(
                            kind=ConversationKind.PRIVATE
                        )
                        PrivateChatPair.objects.create(
                            conversation=conversation,
                            user_lower_id=lower,
                            user_higher_id=higher,
                            pair_key=pair_key,
                        )
                        Participant.objects.bulk_create(
                            [
                                Participant(conversation=conversation, user_id=lower),
                                Participant(conversation=conversation, user_id=higher),
                            ]
                        )
                except IntegrityError:
                    winner = cls._find_private_chat(pair_key)
                    if winner is None:
                        raise IntegrityViolationError(
                            "Private chat insert failed without a winner",
                            error_code="PRIVATE_CHAT_RACE",
                        )
                    cls.get_logger().debug(
                        f"Lost private chat race for {pair_key}, using {winner.id}"
                    )
                    return ServiceResult.success(winner)

                payload = dict(ConversationSerializer(conversation).data)
                FanoutService.publish_many(
                    [Topic.directory(lower), Topic.directory(higher)],
                    DeltaOp.INSERT,
                    payload,
                )
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        cls.get_logger().info(f"Created private chat {conversation.id} for {pair_key}")
        return ServiceResult.success(conversation)

    @classmethod
    def get_conversation_for_member(cls, conversation_id, user: User) -> ServiceResult[Conversation]:
        """
        Fetch a conversation the user belongs to.

        Error codes:
            CONVERSATION_NOT_FOUND: unknown id
            NOT_A_MEMBER: user is not a member
        """
        try:
            conversation = cls.require_member(conversation_id, user)
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)
        return ServiceResult.success(conversation)

    @classmethod
    def require_member(cls, conversation_id, user: User, lock: bool = False) -> Conversation:
        """
        Raising variant of get_conversation_for_member for use inside
        other services' transactions.

        Raises:
            NotFoundError, PermissionDeniedError
        """
        conversation_pk = parse_uuid(conversation_id)
        queryset = Conversation.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        conversation = (
            queryset.filter(pk=conversation_pk).first() if conversation_pk else None
        )
        if conversation is None:
            raise NotFoundError(
                "Conversation not found", error_code="CONVERSATION_NOT_FOUND"
            )
        if not conversation.has_member(user):
            raise PermissionDeniedError(
                "User is not a member of this conversation",
                error_code="NOT_A_MEMBER",
            )
        return conversation

    @classmethod
    def user_directory(cls, user: User) -> QuerySet[Conversation]:
        """
        The user's conversations, most recent message first.

        Conversations without messages follow, newest first. Each row is
        annotated with unread_count for the user.
        """
        unread = (
            Message.objects.filter(conversation=OuterRef("pk"))
            .exclude(sender=user)
            .exclude(read_receipts__user=user)
            .order_by()
            .values("conversation")
            .annotate(total=Count("pk"))
            .values("total")
        )
        return (
            Conversation.objects.filter(participants__user=user)
            .prefetch_related(
                Prefetch(
                    "participants",
                    queryset=Participant.objects.select_related("user").order_by(
                        "created_at", "id"
                    ),
                )
            )
            .annotate(
                unread_count=Coalesce(
                    Subquery(unread, output_field=IntegerField()), 0
                )
            )
            .order_by(F("last_message_at").desc(nulls_last=True), "-created_at")
        )

    @classmethod
    def list_rooms(cls, search: str | None = None) -> QuerySet[Conversation]:
        """Rooms ordered by name, optionally filtered by a name fragment."""
        queryset = Conversation.objects.filter(kind=ConversationKind.ROOM)
        if search:
            queryset = queryset.filter(name__icontains=search.strip())
        return queryset.annotate(member_count=Count("participants")).order_by(
            "name", "created_at"
        )[: CONVERSATION_CONFIG.ROOM_LIST_MAX_RESULTS]

    @classmethod
    def members(cls, conversation: Conversation) -> QuerySet[User]:
        """Members of a conversation in join order."""
        return User.objects.filter(
            conversation_participations__conversation=conversation
        ).order_by("conversation_participations__created_at")

    # ==========================================================================
    # Internals
    # ==========================================================================

    @classmethod
    def _get_room(cls, room_id, lock: bool = False) -> Conversation:
        room_pk = parse_uuid(room_id)
        queryset = Conversation.objects.filter(kind=ConversationKind.ROOM)
        if lock:
            queryset = queryset.select_for_update()
        room = queryset.filter(pk=room_pk).first() if room_pk else None
        if room is None:
            raise NotFoundError("Room not found", error_code="ROOM_NOT_FOUND")
        return room

    @classmethod
    def _find_room_by_key(cls, owner: User, key: str) -> Conversation | None:
        return Conversation.objects.filter(
            kind=ConversationKind.ROOM, owner=owner, idempotency_key=key
        ).first()

    @classmethod
    def _find_private_chat(cls, pair_key: str) -> Conversation | None:
        return Conversation.objects.filter(private_pair__pair_key=pair_key).first()

    @classmethod
    def _membership_payload(cls, room: Conversation, user: User, action: str) -> dict:
        return {
            "conversation_id": str(room.id),
            "action": action,
            "user": _public_user(user),
            "owner_id": str(room.owner_id) if room.owner_id else None,
        }


class MessageService(BaseService):
    """
    Service for the per-conversation message log.

    Methods:
        append_message: Append a message with the next sequence number
        mark_read: Add a user to a message's read-by set (idempotent)
        list_messages: Lazy ordered iterator over messages after a sequence
        mark_all_read: Read every (or every up to a sequence) message
        unread_count: Messages from others the user has not read
        upload_media: Store media in the blob store for a later append
    """

    @classmethod
    def append_message(
        cls,
        conversation_id,
        sender: User,
        text: str = "",
        media: dict | None = None,
    ) -> ServiceResult[Message]:
        """
        Append a message to a conversation.

        The conversation row is locked while the next sequence number is
        taken, so sequences are gapless and strictly increasing. The
        sender's read receipt and the conversation's last-message summary
        are written in the same transaction.

        Args:
            conversation_id: Target conversation
            sender: Author (must be a member)
            text: Message text (trimmed)
            media: Optional {"kind": "image"|"video", "url": <blob url>}

        Error codes:
            EMPTY_MESSAGE: no text and no media
            MESSAGE_TOO_LONG: text over MESSAGE_CONFIG.MAX_TEXT_LENGTH
            INVALID_MEDIA: malformed media reference
            MEDIA_NOT_DURABLE: media url does not resolve in the blob store
            CONVERSATION_NOT_FOUND, NOT_A_MEMBER
        """
        text = (text or "").strip()

        try:
            media_kind, media_url = cls._validate_media(media)
            if not text and not media_url:
                raise ValidationError(
                    "Message needs text or media", error_code="EMPTY_MESSAGE"
                )
            if len(text) > MESSAGE_CONFIG.MAX_TEXT_LENGTH:
                raise ValidationError(
                    "Message text is too long", error_code="MESSAGE_TOO_LONG"
                )

            with cls.atomic():
                conversation = ConversationService.require_member(
                    conversation_id, sender, lock=True
                )

                conversation.message_seq += 1
                message = Message.objects.create(
                    conversation=conversation,
                    sender=sender,
                    text=text,
                    media_kind=media_kind,
                    media_url=media_url,
                    sequence=conversation.message_seq,
                )
                MessageReadReceipt.objects.create(message=message, user=sender)

                conversation.last_message_text = cls._preview(message)
                conversation.last_message_sender = sender
                conversation.last_message_at = message.created_at
                conversation.save(
                    update_fields=[
                        "message_seq",
                        "last_message_text",
                        "last_message_sender",
                        "last_message_at",
                        "updated_at",
                    ]
                )

                cls._publish_append(conversation, message)
        except BaseApplicationError as exc:
            cls.get_logger().info(
                f"Append to {conversation_id} by {sender.pk} rejected: {exc.error_code}"
            )
            return ServiceResult.from_error(exc)

        cls.get_logger().debug(
            f"User {sender.pk} appended #{message.sequence} to {conversation.id}"
        )
        return ServiceResult.success(message)

    @classmethod
    def mark_read(cls, conversation_id, message_id, user: User) -> ServiceResult[Message]:
        """
        Add user to the message's read-by set.

        Repeating the call is a no-op and publishes nothing.

        Error codes:
            MESSAGE_NOT_FOUND: message is not in this conversation
            CONVERSATION_NOT_FOUND, NOT_A_MEMBER
        """
        try:
            with cls.atomic():
                conversation = ConversationService.require_member(conversation_id, user)
                message = cls._get_message(conversation, message_id)

                _, created = MessageReadReceipt.objects.get_or_create(
                    message=message, user=user
                )
                if created:
                    FanoutService.publish(
                        Topic.for_conversation(conversation),
                        DeltaOp.READ_BY,
                        cls._read_by_payload(message, cls._readers(message)),
                    )
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        if created:
            cls.get_logger().debug(f"User {user.pk} read message {message.id}")
        return ServiceResult.success(message)

    @classmethod
    def list_messages(
        cls, conversation_id, user: User, since_sequence: int = 0
    ) -> ServiceResult[Iterator[Message]]:
        """
        Messages with sequence > since_sequence, in sequence order.

        Membership is checked immediately; the returned iterator reads
        the log lazily in chunks. Live continuation is the conversation
        topic subscription.

        Error codes:
            INVALID_SEQUENCE: since_sequence is not a non-negative integer
            CONVERSATION_NOT_FOUND, NOT_A_MEMBER
        """
        try:
            since = cls._parse_sequence(since_sequence)
            conversation = ConversationService.require_member(conversation_id, user)
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        messages = cls.messages_after(conversation, since).iterator(
            chunk_size=MESSAGE_CONFIG.ITERATOR_CHUNK_SIZE
        )
        return ServiceResult.success(messages)

    @classmethod
    def messages_after(cls, conversation: Conversation, since_sequence: int = 0) -> QuerySet[Message]:
        """Queryset behind list_messages (also used for cursor pagination)."""
        return (
            Message.objects.filter(conversation=conversation, sequence__gt=since_sequence)
            .prefetch_related("read_receipts")
            .order_by("sequence")
        )

    @classmethod
    def mark_all_read(
        cls, conversation_id, user: User, up_to_sequence: int | None = None
    ) -> ServiceResult[int]:
        """
        Read every unread message (optionally only up to a sequence).

        Returns the number of messages newly marked read. Publishes one
        read_by delta per newly read message.
        """
        try:
            with cls.atomic():
                conversation = ConversationService.require_member(conversation_id, user)

                unread = Message.objects.filter(conversation=conversation).exclude(
                    read_receipts__user=user
                )
                if up_to_sequence is not None:
                    unread = unread.filter(
                        sequence__lte=cls._parse_sequence(up_to_sequence)
                    )
                unread = list(unread.order_by("sequence"))
                if not unread:
                    return ServiceResult.success(0)

                MessageReadReceipt.objects.bulk_create(
                    [MessageReadReceipt(message=message, user=user) for message in unread],
                    ignore_conflicts=True,
                )

                readers: dict[int, list[str]] = {}
                for message_id, reader_id in MessageReadReceipt.objects.filter(
                    message__in=unread
                ).values_list("message_id", "user_id"):
                    readers.setdefault(message_id, []).append(str(reader_id))

                topic = Topic.for_conversation(conversation)
                for message in unread:
                    FanoutService.publish(
                        topic,
                        DeltaOp.READ_BY,
                        cls._read_by_payload(message, sorted(readers.get(message.id, []))),
                    )
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        cls.get_logger().debug(
            f"User {user.pk} marked {len(unread)} messages read in {conversation.id}"
        )
        return ServiceResult.success(len(unread))

    @classmethod
    def unread_count(cls, conversation: Conversation, user: User) -> int:
        """Messages from other users that user has not read."""
        return (
            Message.objects.filter(conversation=conversation)
            .exclude(sender=user)
            .exclude(read_receipts__user=user)
            .count()
        )

    @classmethod
    def upload_media(cls, conversation_id, user: User, uploaded_file) -> ServiceResult[dict]:
        """
        Store an uploaded image or video in the blob store.

        The returned {"kind", "url"} is what append_message accepts as
        media; the blob exists before this method returns.

        Error codes:
            UNSUPPORTED_MEDIA_TYPE: content type is not image/* or video/*
            MEDIA_TOO_LARGE: over settings.CHAT_MEDIA_MAX_UPLOAD_BYTES
            CONVERSATION_NOT_FOUND, NOT_A_MEMBER
        """
        try:
            conversation = ConversationService.require_member(conversation_id, user)

            content_type = (getattr(uploaded_file, "content_type", "") or "").lower()
            kind = next(
                (
                    media_kind
                    for prefix, media_kind in MEDIA_CONFIG.CONTENT_TYPE_KINDS.items()
                    if content_type.startswith(prefix)
                ),
                None,
            )
            if kind is None:
                raise ValidationError(
                    f"Unsupported media type '{content_type}'",
                    error_code="UNSUPPORTED_MEDIA_TYPE",
                )
            if uploaded_file.size > settings.CHAT_MEDIA_MAX_UPLOAD_BYTES:
                raise ValidationError(
                    "Media file is too large", error_code="MEDIA_TOO_LARGE"
                )

            extension = os.path.splitext(uploaded_file.name or "")[1].lower()[:10]
            path = (
                f"{MEDIA_CONFIG.UPLOAD_PATH_PREFIX}/{conversation.id}/"
                f"{uuid.uuid4().hex}{extension}"
            )
            try:
                url = get_blob_store().put(path, uploaded_file.read())
            except OSError as exc:
                raise TransientInfraError(
                    "Blob store unavailable", error_code="BLOB_STORE_UNAVAILABLE"
                ) from exc
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        cls.get_logger().info(
            f"User {user.pk} uploaded {kind} ({uploaded_file.size} bytes) to {conversation.id}"
        )
        return ServiceResult.success({"kind": kind, "url": url})

    # ==========================================================================
    # Internals
    # ==========================================================================

    @classmethod
    def _validate_media(cls, media) -> tuple[str, str]:
        """Return (kind, url) for a media reference, ("", "") when absent."""
        if not media:
            return "", ""
        if not isinstance(media, dict):
            raise ValidationError("Malformed media", error_code="INVALID_MEDIA")

        kind = media.get("kind")
        url = media.get("url")
        if kind not in MEDIA_CONFIG.ALLOWED_KINDS or not isinstance(url, str) or not url:
            raise ValidationError("Malformed media", error_code="INVALID_MEDIA")
        if len(url) > MEDIA_CONFIG.MAX_URL_LENGTH:
            raise ValidationError("Media URL is too long", error_code="INVALID_MEDIA")
        if not get_blob_store().exists(url):
            raise ValidationError(
                "Media is not in the blob store", error_code="MEDIA_NOT_DURABLE"
            )
        return kind, url

    @classmethod
    def _parse_sequence(cls, value) -> int:
        try:
            sequence = int(value)
        except (TypeError, ValueError):
            raise ValidationError(
                "Sequence must be an integer", error_code="INVALID_SEQUENCE"
            ) from None
        if sequence < 0:
            raise ValidationError(
                "Sequence cannot be negative", error_code="INVALID_SEQUENCE"
            )
        return sequence

    @classmethod
    def _get_message(cls, conversation: Conversation, message_id) -> Message:
        try:
            message_pk = int(message_id)
        except (TypeError, ValueError):
            message_pk = None
        message = (
            Message.objects.filter(pk=message_pk, conversation=conversation).first()
            if message_pk is not None
            else None
        )
        if message is None:
            raise NotFoundError("Message not found", error_code="MESSAGE_NOT_FOUND")
        return message

    @classmethod
    def _readers(cls, message: Message) -> list[str]:
        return sorted(
            str(user_id)
            for user_id in message.read_receipts.values_list("user_id", flat=True)
        )

    @classmethod
    def _read_by_payload(cls, message: Message, readers: list[str]) -> dict:
        return {
            "conversation_id": str(message.conversation_id),
            "message_id": message.id,
            "sequence": message.sequence,
            "read_by": readers,
        }

    @classmethod
    def _preview(cls, message: Message) -> str:
        if message.text:
            return message.text[: MESSAGE_CONFIG.LAST_MESSAGE_PREVIEW_LENGTH]
        return f"[{message.media_kind}]"

    @classmethod
    def _publish_append(cls, conversation: Conversation, message: Message) -> None:
        FanoutService.publish(
            Topic.for_conversation(conversation),
            DeltaOp.INSERT,
            dict(MessageSerializer(message).data),
        )

        summary = {
            "conversation_id": str(conversation.id),
            "last_message": ConversationSerializer().get_last_message(conversation),
        }
        member_ids = conversation.participants.values_list("user_id", flat=True)
        FanoutService.publish_many(
            [Topic.directory(member_id) for member_id in member_ids],
            DeltaOp.LAST_MESSAGE,
            summary,
        )


class PresenceService(BaseService):
    """
    Heartbeat-derived presence.

    A user is online iff is_online is set and the last heartbeat is within
    settings.PRESENCE_TIMEOUT_SECONDS. Explicit disconnects clear is_online
    at once; crashed connections are covered by the timeout check and by
    the periodic sweep (chat.tasks.sweep_stale_presence).

    Usage:
        PresenceService.heartbeat(user.id)
        PresenceService.is_online(user.id)  # True
        PresenceService.explicit_disconnect(user.id)
    """

    @classmethod
    def timeout(cls) -> timedelta:
        return timedelta(
            seconds=getattr(
                settings,
                "PRESENCE_TIMEOUT_SECONDS",
                PRESENCE_CONFIG.DEFAULT_TIMEOUT_SECONDS,
            )
        )

    @classmethod
    def heartbeat(cls, user_id, at=None) -> ServiceResult[Presence]:
        """Record a heartbeat. Safe to repeat."""
        at = at or timezone.now()
        presence, _ = Presence.objects.update_or_create(
            user_id=_user_pk(user_id),
            defaults={
                "is_online": True,
                "last_heartbeat_at": at,
                "last_seen_at": at,
            },
        )
        return ServiceResult.success(presence)

    @classmethod
    def explicit_disconnect(cls, user_id, at=None) -> ServiceResult[Presence]:
        """Mark the user offline immediately (socket closed cleanly)."""
        at = at or timezone.now()
        presence, _ = Presence.objects.update_or_create(
            user_id=_user_pk(user_id),
            defaults={"is_online": False, "last_seen_at": at},
        )
        cls.get_logger().debug(f"User {presence.user_id} disconnected")
        return ServiceResult.success(presence)

    @classmethod
    def is_online(cls, user_id, now=None) -> bool:
        presence = Presence.objects.filter(user_id=_user_pk(user_id)).first()
        return cls._derive_online(presence, now or timezone.now())

    @classmethod
    def get_presence(cls, user_id, now=None) -> ServiceResult[dict]:
        """
        Derived presence for one user.

        Users that never sent a heartbeat are reported offline with no
        last_seen_at.
        """
        user_pk = parse_uuid(_user_pk(user_id))
        if user_pk is None:
            return ServiceResult.failure("Invalid user id", error_code="INVALID_USER_ID")
        presence = Presence.objects.filter(user_id=user_pk).first()
        return ServiceResult.success(
            cls._as_dict(user_pk, presence, now or timezone.now())
        )

    @classmethod
    def get_bulk_presence(cls, user_ids, now=None) -> ServiceResult[dict]:
        """Derived presence keyed by user id string."""
        if len(user_ids) > PRESENCE_CONFIG.MAX_BULK_USERS:
            return ServiceResult.failure(
                "Too many user ids", error_code="TOO_MANY_USERS"
            )
        user_pks = [parse_uuid(_user_pk(user_id)) for user_id in user_ids]
        if any(user_pk is None for user_pk in user_pks):
            return ServiceResult.failure("Invalid user id", error_code="INVALID_USER_ID")

        now = now or timezone.now()
        rows = {
            presence.user_id: presence
            for presence in Presence.objects.filter(user_id__in=user_pks)
        }
        return ServiceResult.success(
            {
                str(user_pk): cls._as_dict(user_pk, rows.get(user_pk), now)
                for user_pk in user_pks
            }
        )

    @classmethod
    def sweep_stale(cls, now=None) -> int:
        """
        Mark users whose last heartbeat is older than the timeout offline.

        Returns:
            Number of users swept
        """
        cutoff = (now or timezone.now()) - cls.timeout()
        swept = Presence.objects.filter(
            is_online=True, last_heartbeat_at__lt=cutoff
        ).update(is_online=False)
        if swept:
            cls.get_logger().info(f"Swept {swept} stale presence rows")
        return swept

    @classmethod
    def _derive_online(cls, presence: Presence | None, now) -> bool:
        if presence is None or not presence.is_online or presence.last_heartbeat_at is None:
            return False
        return now - presence.last_heartbeat_at <= cls.timeout()

    @classmethod
    def _as_dict(cls, user_pk, presence: Presence | None, now) -> dict:
        return {
            "user_id": user_pk,
            "is_online": cls._derive_online(presence, now),
            "last_seen_at": presence.last_seen_at if presence else None,
        }
