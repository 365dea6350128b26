"""
Serializers for friend requests and friend lists.

Output serializers are also used to build fan-out payloads, so their data
must stay JSON/msgpack friendly (ids and timestamps as strings).
"""

from rest_framework import serializers

from authentication.serializers import PublicUserSerializer
from social.constants import FRIEND_REQUEST_CONFIG
from social.models import FriendRequest


class FriendRequestSerializer(serializers.ModelSerializer):
    """Friend request with both parties expanded."""

    sender = PublicUserSerializer(read_only=True)
    receiver = PublicUserSerializer(read_only=True)

    class Meta:
        model = FriendRequest
        fields = [
            "id",
            "sender",
            "receiver",
            "status",
            "created_at",
            "responded_at",
        ]
        read_only_fields = fields


class SendFriendRequestSerializer(serializers.Serializer):
    """Input for POST /api/v1/social/requests/."""

    receiver_id = serializers.UUIDField()
    idempotency_key = serializers.CharField(
        required=False,
        allow_null=True,
        max_length=FRIEND_REQUEST_CONFIG.IDEMPOTENCY_KEY_MAX_LENGTH,
    )


class RequestDirectionSerializer(serializers.Serializer):
    """Query parameters for GET /api/v1/social/requests/."""

    direction = serializers.ChoiceField(
        choices=["incoming", "outgoing"], default="incoming"
    )
