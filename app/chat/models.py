"""
Chat system models.

This module defines the data models for the chat system supporting:
- Rooms: named conversations any user can join, with a single owner
- Private chats: exactly one conversation per unordered pair of users

Models:
    Conversation: Container for messages (kind=room or kind=private)
    PrivateChatPair: Enforces uniqueness of private chats per user pair
    Participant: Membership of a user in a conversation
    Message: Append-only log entry with a per-conversation sequence number
    MessageReadReceipt: One row per (message, reader)
    Presence: Heartbeat-derived online state, one row per user

Design Decisions:
    - Message sequence numbers are assigned under a row lock on the
      conversation (message_seq), so they are gapless and start at 1
    - A room is hard-deleted (with its messages) when its last member leaves
    - Private chats are never deleted and always have exactly two members
    - Messages are immutable except for their growing read-by set
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from chat.constants import CONVERSATION_CONFIG, MEDIA_CONFIG

if TYPE_CHECKING:
    from authentication.models import User


class ConversationKind(models.TextChoices):
    """
    Kind of conversation.

    ROOM: Named, joinable, single owner, deleted when empty
    PRIVATE: Exactly two participants, unique per pair, never deleted
    """

    ROOM = "room", "Room"
    PRIVATE = "private", "Private Chat"


class MediaKind(models.TextChoices):
    IMAGE = MEDIA_CONFIG.IMAGE, "Image"
    VIDEO = MEDIA_CONFIG.VIDEO, "Video"


class Conversation(UUIDPrimaryKeyMixin, BaseModel):
    """
    A room or a private chat.

    Fields:
        kind: room or private
        name: Room name (empty for private chats)
        description: Room description
        owner: Room owner (always a member); null for private chats
        idempotency_key: Client retry key for room creation, unique per owner
        message_seq: Sequence number of the last appended message
        last_message_text: Preview of the latest message (directory listing)
        last_message_sender: Sender of the latest message
        last_message_at: Time of the latest message (directory ordering)

    Relationships:
        participants: Participant rows (the member set)
        messages: Message log
        private_pair: PrivateChatPair if kind is PRIVATE
    """

    kind = models.CharField(
        max_length=10,
        choices=ConversationKind.choices,
        default=ConversationKind.ROOM,
        db_index=True,
        help_text="Type of conversation (room or private)",
    )

    name = models.CharField(
        max_length=CONVERSATION_CONFIG.MAX_ROOM_NAME_LENGTH,
        blank=True,
        default="",
        help_text="Room name (empty for private chats)",
    )

    description = models.CharField(
        max_length=CONVERSATION_CONFIG.MAX_DESCRIPTION_LENGTH,
        blank=True,
        default="",
        help_text="Room description",
    )

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="owned_rooms",
        help_text="Room owner (null for private chats)",
    )

    idempotency_key = models.CharField(
        max_length=CONVERSATION_CONFIG.IDEMPOTENCY_KEY_MAX_LENGTH,
        null=True,
        blank=True,
        help_text="Client retry key for room creation",
    )

    message_seq = models.PositiveBigIntegerField(
        default=0,
        help_text="Sequence number of the last message (0 when empty)",
    )

    last_message_text = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Preview of the most recent message",
    )

    last_message_sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Sender of the most recent message",
    )

    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp of most recent message (for sorting conversation lists)",
    )

    class Meta:
        db_table = "chat_conversation"
        ordering = [F("last_message_at").desc(nulls_last=True), "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "idempotency_key"],
                condition=Q(idempotency_key__isnull=False),
                name="unique_room_idempotency_key",
            ),
            # Rooms are created with an owner; private chats never have one
            models.CheckConstraint(
                condition=Q(kind=ConversationKind.ROOM) | Q(owner__isnull=True),
                name="private_chat_has_no_owner",
            ),
        ]
        indexes = [
            models.Index(fields=["kind", "name"], name="chat_conv_kind_name_idx"),
        ]

    def __str__(self) -> str:
        if self.is_private:
            return f"PrivateChat({self.pk})"
        return f"Room: {self.name}"

    @property
    def is_room(self) -> bool:
        return self.kind == ConversationKind.ROOM

    @property
    def is_private(self) -> bool:
        return self.kind == ConversationKind.PRIVATE

    def has_member(self, user: User) -> bool:
        return self.participants.filter(user=user).exists()


class PrivateChatPair(models.Model):
    """
    Enforces uniqueness of private chats between two users.

    Users are stored in canonical order (lower id first) and the pair also
    carries the canonical pair key, so concurrent get-or-create calls from
    either side collide on the same unique index.

    Constraints:
        - UniqueConstraint(user_lower, user_higher)
        - UniqueConstraint(pair_key)
        - CheckConstraint(user_lower_id < user_higher_id)
    """

    conversation = models.OneToOneField(
        Conversation,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="private_pair",
        help_text="The private chat this pair represents",
    )

    user_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with lower ID in this pair",
    )

    user_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with higher ID in this pair",
    )

    pair_key = models.CharField(
        max_length=CONVERSATION_CONFIG.PAIR_KEY_MAX_LENGTH,
        unique=True,
        help_text='Canonical "<lower>:<higher>" key of the two user ids',
    )

    class Meta:
        db_table = "chat_private_chat_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_lower", "user_higher"],
                name="unique_private_chat_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="private_pair_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        return f"PrivatePair({self.user_lower_id}, {self.user_higher_id})"


class Participant(BaseModel):
    """
    Membership of a user in a conversation.

    created_at doubles as the join time; ownership transfer picks the
    remaining member with the oldest join time.

    Constraints:
        - UniqueConstraint(conversation, user)
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="participants",
        help_text="Conversation this membership belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversation_participations",
        help_text="Member user",
    )

    class Meta:
        db_table = "chat_participant"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                name="unique_participation",
            ),
        ]
        indexes = [
            models.Index(
                fields=["conversation", "created_at"],
                name="chat_part_conv_joined_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Participant: {self.user_id} in {self.conversation_id}"

    @property
    def joined_at(self):
        return self.created_at


class Message(BaseModel):
    """
    A message within a conversation.

    Fields:
        conversation: Conversation this message belongs to
        sender: Author (null only if the user record is later removed)
        text: Trimmed message text (may be empty when media is present)
        media_kind: image or video when media is attached
        media_url: Blob-store URL of the attached media
        sequence: Server-assigned position in the conversation (1, 2, 3, ...)

    Relationships:
        read_receipts: MessageReadReceipt rows (the read-by set)
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Conversation this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
        help_text="User who sent this message",
    )

    text = models.TextField(
        blank=True,
        default="",
        help_text="Message text",
    )

    media_kind = models.CharField(
        max_length=10,
        choices=MediaKind.choices,
        blank=True,
        default="",
        help_text="Kind of attached media (empty when none)",
    )

    media_url = models.CharField(
        max_length=MEDIA_CONFIG.MAX_URL_LENGTH,
        blank=True,
        default="",
        help_text="Blob-store URL of the attached media",
    )

    sequence = models.PositiveBigIntegerField(
        help_text="Position in the conversation log, starting at 1",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["conversation", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "sequence"],
                name="unique_message_sequence",
            ),
            models.CheckConstraint(
                condition=Q(sequence__gte=1),
                name="message_sequence_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Message({self.conversation_id}#{self.sequence})"

    @property
    def media(self) -> dict | None:
        if not self.media_url:
            return None
        return {"kind": self.media_kind, "url": self.media_url}


class MessageReadReceipt(models.Model):
    """
    Membership of a user in a message's read-by set.

    The sender's receipt is written together with the message.
    """

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="read_receipts",
        help_text="Message that was read",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="message_read_receipts",
        help_text="User who read the message",
    )

    read_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user first read the message",
    )

    class Meta:
        db_table = "chat_message_read_receipt"
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user"],
                name="unique_message_read_receipt",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "message"], name="chat_receipt_user_msg_idx"),
        ]

    def __str__(self) -> str:
        return f"Read({self.message_id} by {self.user_id})"


class Presence(models.Model):
    """
    Heartbeat-derived presence for one user.

    is_online alone is not authoritative: a user counts as online only if
    is_online is set and the last heartbeat is within the presence timeout
    (see PresenceService).
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="presence",
        help_text="User this presence row belongs to",
    )

    is_online = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Set by heartbeat, cleared by disconnect or sweep",
    )

    last_heartbeat_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Time of the most recent heartbeat",
    )

    last_seen_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last time the user was known to be connected",
    )

    class Meta:
        db_table = "chat_presence"
        verbose_name_plural = "presence"

    def __str__(self) -> str:
        return f"Presence({self.user_id}, online={self.is_online})"
