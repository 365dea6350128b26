"""
Serializers for the chat API and realtime payloads.

Output serializers double as fan-out payload builders: their data is
placed on the channel layer, so every field must render to plain
JSON/msgpack types (ids and timestamps as strings).

Serializer Hierarchy:
    ConversationSerializer: Summary with members and last message
    RoomListSerializer: Room browsing entry with member count
    MessageSerializer: Message with media and read-by set
    PresenceSerializer: Derived presence for one user

    RoomCreateSerializer, RoomJoinSerializer, PrivateChatCreateSerializer,
    MessageCreateSerializer, MessageListQuerySerializer,
    MarkAllReadSerializer, MediaUploadSerializer,
    BulkPresenceRequestSerializer: request input
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.serializers import PublicUserSerializer
from chat.constants import CONVERSATION_CONFIG, MEDIA_CONFIG, PRESENCE_CONFIG
from chat.models import Conversation, Message

_datetime_field = serializers.DateTimeField()


# =============================================================================
# Message Serializers
# =============================================================================


class MediaSerializer(serializers.Serializer):
    """Attached media reference: {"kind": "image"|"video", "url": ...}."""

    kind = serializers.ChoiceField(choices=list(MEDIA_CONFIG.ALLOWED_KINDS))
    url = serializers.CharField(max_length=MEDIA_CONFIG.MAX_URL_LENGTH)


class MessageSerializer(serializers.ModelSerializer):
    """
    Message as delivered to clients.

    read_by is built from the prefetched read_receipts relation when
    available.
    """

    conversation_id = serializers.UUIDField(read_only=True)
    sender_id = serializers.UUIDField(read_only=True, allow_null=True)
    media = serializers.SerializerMethodField()
    read_by = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            "id",
            "conversation_id",
            "sender_id",
            "text",
            "media",
            "sequence",
            "created_at",
            "read_by",
        ]
        read_only_fields = fields

    def get_media(self, obj: Message) -> dict | None:
        return obj.media

    def get_read_by(self, obj: Message) -> list[str]:
        return sorted(str(receipt.user_id) for receipt in obj.read_receipts.all())


class MessageCreateSerializer(serializers.Serializer):
    """
    Input for appending a message.

    Length and emptiness rules are enforced by MessageService so REST and
    socket clients get identical validation.
    """

    text = serializers.CharField(
        required=False, allow_blank=True, default="", trim_whitespace=False
    )
    media = MediaSerializer(required=False, allow_null=True)


class MessageListQuerySerializer(serializers.Serializer):
    """Query parameters for listing messages."""

    since = serializers.IntegerField(required=False, default=0, min_value=0)


class MarkAllReadSerializer(serializers.Serializer):
    up_to_sequence = serializers.IntegerField(
        required=False, allow_null=True, min_value=1
    )


class MediaUploadSerializer(serializers.Serializer):
    file = serializers.FileField()


# =============================================================================
# Conversation Serializers
# =============================================================================


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation summary used by the directory and snapshots.

    members reads the participants relation; prefetch
    ``participants__user`` when serializing many conversations.
    """

    owner_id = serializers.UUIDField(read_only=True, allow_null=True)
    members = serializers.SerializerMethodField()
    last_message = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "kind",
            "name",
            "description",
            "owner_id",
            "members",
            "message_seq",
            "last_message",
            "created_at",
        ]
        read_only_fields = fields

    def get_members(self, obj: Conversation) -> list[dict]:
        return [
            dict(PublicUserSerializer(participant.user).data)
            for participant in obj.participants.all()
        ]

    def get_last_message(self, obj: Conversation) -> dict | None:
        if obj.last_message_at is None:
            return None
        return {
            "text": obj.last_message_text,
            "sender_id": (
                str(obj.last_message_sender_id) if obj.last_message_sender_id else None
            ),
            "sequence": obj.message_seq,
            "at": _datetime_field.to_representation(obj.last_message_at),
        }


class DirectoryEntrySerializer(ConversationSerializer):
    """Conversation summary plus the requesting user's unread count."""

    unread_count = serializers.SerializerMethodField()

    class Meta(ConversationSerializer.Meta):
        fields = [*ConversationSerializer.Meta.fields, "unread_count"]
        read_only_fields = fields

    def get_unread_count(self, obj: Conversation) -> int:
        # Annotated by ConversationService.user_directory()
        return getattr(obj, "unread_count", 0)


class RoomListSerializer(serializers.ModelSerializer):
    """Room as shown when browsing rooms to join."""

    owner_id = serializers.UUIDField(read_only=True, allow_null=True)
    member_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Conversation
        fields = ["id", "name", "description", "owner_id", "member_count", "created_at"]
        read_only_fields = fields


class RoomCreateSerializer(serializers.Serializer):
    """Input for POST /chat/rooms/."""

    name = serializers.CharField(allow_blank=True, trim_whitespace=False)
    description = serializers.CharField(
        required=False, allow_blank=True, default="", trim_whitespace=False
    )
    idempotency_key = serializers.CharField(
        required=False,
        allow_null=True,
        max_length=CONVERSATION_CONFIG.IDEMPOTENCY_KEY_MAX_LENGTH,
    )


class RoomJoinSerializer(serializers.Serializer):
    """Input for POST /chat/rooms/{id}/join/ (user_id adds someone else)."""

    user_id = serializers.UUIDField(required=False, allow_null=True)


class PrivateChatCreateSerializer(serializers.Serializer):
    """Input for POST /chat/private-chats/."""

    user_id = serializers.UUIDField()


# =============================================================================
# Presence Serializers
# =============================================================================


class PresenceSerializer(serializers.Serializer):
    """Derived presence of one user."""

    user_id = serializers.UUIDField()
    is_online = serializers.BooleanField()
    last_seen_at = serializers.DateTimeField(allow_null=True)


class BulkPresenceRequestSerializer(serializers.Serializer):
    user_ids = serializers.ListField(
        child=serializers.UUIDField(),
        max_length=PRESENCE_CONFIG.MAX_BULK_USERS,
    )
