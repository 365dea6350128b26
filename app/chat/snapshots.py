"""
Topic authorization and snapshots.

A subscriber first receives a snapshot of the topic's current state, then
the deltas published after it. The snapshot records the topic version read
BEFORE the data, so a change that commits while the snapshot is being
built is delivered again as a delta. Subscribers apply deltas by entity id
and version/sequence, so the redelivery is harmless.

Kept apart from chat.fanout because it reads through the chat and social
services, which themselves publish through chat.fanout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from authentication.serializers import PublicUserSerializer
from core.exceptions import NotFoundError, PermissionDeniedError
from social.serializers import FriendRequestSerializer
from social.services import FriendRequestService, FriendshipService

from chat.constants import FANOUT_CONFIG
from chat.fanout import FanoutService, Topic, TopicKind
from chat.models import Conversation, ConversationKind, Message
from chat.serializers import (
    ConversationSerializer,
    DirectoryEntrySerializer,
    MessageSerializer,
)
from chat.services import ConversationService

if TYPE_CHECKING:
    from authentication.models import User


class SnapshotService:
    """
    Builds {topic, version, data, sequence} snapshots for subscribers.

    sequence is the conversation's last message sequence for conversation
    topics and None otherwise.
    """

    @classmethod
    def authorize(cls, topic: Topic, user: User) -> Conversation | None:
        """
        Check that user may subscribe to topic.

        Returns:
            The conversation for conversation topics, None otherwise

        Raises:
            NotFoundError: Conversation does not exist (or has the other kind)
            PermissionDeniedError: Not a member / not the topic's owner
        """
        if topic.kind in TopicKind.USER_KINDS:
            if topic.id != user.pk:
                raise PermissionDeniedError(
                    "Topic belongs to another user", error_code="FOREIGN_TOPIC"
                )
            return None

        conversation = ConversationService.require_member(topic.id, user)
        expected_kind = (
            ConversationKind.ROOM
            if topic.kind == TopicKind.ROOM
            else ConversationKind.PRIVATE
        )
        if conversation.kind != expected_kind:
            raise NotFoundError(
                "Conversation not found", error_code="CONVERSATION_NOT_FOUND"
            )
        return conversation

    @classmethod
    def build(cls, topic: Topic, user: User, since_sequence: int | None = None) -> dict:
        """
        Authorize and build the snapshot for topic.

        Args:
            since_sequence: For conversation topics, send every message after
                this sequence (a catch-up) instead of the most recent window
        """
        conversation = cls.authorize(topic, user)
        version = FanoutService.current_version(topic)

        if conversation is not None:
            data, sequence = cls._conversation_data(conversation, since_sequence)
        elif topic.kind == TopicKind.DIRECTORY:
            data, sequence = cls._directory_data(user), None
        else:
            data, sequence = cls._friend_requests_data(user), None

        return {
            "topic": str(topic),
            "version": version,
            "sequence": sequence,
            "data": data,
        }

    @classmethod
    def _conversation_data(
        cls, conversation: Conversation, since_sequence: int | None = None
    ) -> tuple[dict, int]:
        # Re-read so the summary and the message window agree on message_seq
        conversation = Conversation.objects.prefetch_related("participants__user").get(
            pk=conversation.pk
        )
        messages = Message.objects.filter(
            conversation=conversation,
            sequence__lte=conversation.message_seq,
        ).prefetch_related("read_receipts")

        if since_sequence is not None:
            window = list(messages.filter(sequence__gt=since_sequence).order_by("sequence"))
        else:
            window = list(
                messages.order_by("-sequence")[: FANOUT_CONFIG.SNAPSHOT_MESSAGE_LIMIT]
            )
            window.reverse()

        data = {
            "conversation": dict(ConversationSerializer(conversation).data),
            "messages": [dict(item) for item in MessageSerializer(window, many=True).data],
            "catch_up": since_sequence is not None,
        }
        return data, conversation.message_seq

    @classmethod
    def _directory_data(cls, user: User) -> dict:
        conversations = ConversationService.user_directory(user)
        return {
            "conversations": [
                dict(item)
                for item in DirectoryEntrySerializer(conversations, many=True).data
            ]
        }

    @classmethod
    def _friend_requests_data(cls, user: User) -> dict:
        def serialize_requests(queryset):
            return [dict(item) for item in FriendRequestSerializer(queryset, many=True).data]

        return {
            "incoming": serialize_requests(FriendRequestService.list_incoming(user)),
            "outgoing": serialize_requests(FriendRequestService.list_outgoing(user)),
            "friends": [
                dict(item)
                for item in PublicUserSerializer(
                    FriendshipService.list_friends(user), many=True
                ).data
            ],
        }
