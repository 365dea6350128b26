"""
Views for the chat API.

URL Structure (prefixed with /api/v1/chat/):
    rooms/                                       GET (?search=), POST
    rooms/{id}/join/                             POST
    rooms/{id}/leave/                            POST
    private-chats/                               POST
    directory/                                   GET
    conversations/{id}/                          GET
    conversations/{id}/messages/                 GET (?since=, cursor), POST
    conversations/{id}/messages/{msg_id}/read/   POST
    conversations/{id}/read/                     POST
    conversations/{id}/media/                    POST (multipart)
    presence/                                    POST (heartbeat)
    presence/bulk/                               POST
    presence/{user_id}/                          GET

Realtime updates for all of these go over the ws/realtime/ socket (see
consumers.py); these endpoints are the request/response half.
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.views import service_error_response

from chat.pagination import MessageCursorPagination
from chat.serializers import (
    BulkPresenceRequestSerializer,
    ConversationSerializer,
    DirectoryEntrySerializer,
    MarkAllReadSerializer,
    MediaSerializer,
    MediaUploadSerializer,
    MessageCreateSerializer,
    MessageListQuerySerializer,
    MessageSerializer,
    PresenceSerializer,
    PrivateChatCreateSerializer,
    RoomCreateSerializer,
    RoomJoinSerializer,
    RoomListSerializer,
)
from chat.services import ConversationService, MessageService, PresenceService


# =============================================================================
# Rooms and private chats
# =============================================================================


@extend_schema_view(
    get=extend_schema(
        operation_id="list_rooms",
        summary="Browse rooms",
        tags=["Chat - Rooms"],
        parameters=[
            OpenApiParameter(
                name="search",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Case-insensitive room name fragment",
            ),
        ],
        responses={200: RoomListSerializer(many=True)},
    ),
    post=extend_schema(
        operation_id="create_room",
        summary="Create a room",
        tags=["Chat - Rooms"],
        request=RoomCreateSerializer,
        responses={
            201: ConversationSerializer,
            400: OpenApiResponse(description="Invalid room name or description"),
        },
    ),
)
class RoomListView(APIView):
    """Browse and create rooms."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        rooms = ConversationService.list_rooms(request.query_params.get("search"))
        return Response(RoomListSerializer(rooms, many=True).data)

    def post(self, request):
        serializer = RoomCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConversationService.create_room(
            owner=request.user,
            name=serializer.validated_data["name"],
            description=serializer.validated_data.get("description", ""),
            idempotency_key=serializer.validated_data.get("idempotency_key"),
        )
        if not result.success:
            return service_error_response(result)

        return Response(
            ConversationSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class RoomJoinView(APIView):
    """Join a room, or add another user to a room you belong to."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="join_room",
        summary="Join a room",
        tags=["Chat - Rooms"],
        request=RoomJoinSerializer,
        responses={
            200: ConversationSerializer,
            403: OpenApiResponse(description="Adding others requires membership"),
            404: OpenApiResponse(description="Room or user not found"),
        },
    )
    def post(self, request, room_id):
        serializer = RoomJoinSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        target = serializer.validated_data.get("user_id") or request.user
        result = ConversationService.join_room(room_id, target, actor=request.user)
        if not result.success:
            return service_error_response(result)
        return Response(ConversationSerializer(result.data).data)


class RoomLeaveView(APIView):
    """Leave a room. The last member leaving deletes it."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="leave_room",
        summary="Leave a room",
        tags=["Chat - Rooms"],
        request=None,
        responses={
            200: ConversationSerializer,
            204: OpenApiResponse(description="Room deleted (last member left)"),
            403: OpenApiResponse(description="Not a member"),
        },
    )
    def post(self, request, room_id):
        result = ConversationService.leave_room(room_id, request.user)
        if not result.success:
            return service_error_response(result)
        if result.data is None:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return Response(ConversationSerializer(result.data).data)


class PrivateChatView(APIView):
    """Open (get or create) the private chat with another user."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_or_create_private_chat",
        summary="Open a private chat",
        tags=["Chat - Private Chats"],
        request=PrivateChatCreateSerializer,
        responses={
            200: ConversationSerializer,
            400: OpenApiResponse(description="Cannot chat with yourself"),
            403: OpenApiResponse(description="Friendship required"),
            404: OpenApiResponse(description="User not found"),
        },
    )
    def post(self, request):
        serializer = PrivateChatCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ConversationService.get_or_create_private_chat(
            request.user, serializer.validated_data["user_id"]
        )
        if not result.success:
            return service_error_response(result)
        return Response(ConversationSerializer(result.data).data)


# =============================================================================
# Directory and conversations
# =============================================================================


class DirectoryView(APIView):
    """The current user's conversations, most recent first."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="conversation_directory",
        summary="List my conversations",
        tags=["Chat - Directory"],
        responses={200: DirectoryEntrySerializer(many=True)},
    )
    def get(self, request):
        conversations = ConversationService.user_directory(request.user)
        return Response(DirectoryEntrySerializer(conversations, many=True).data)


class ConversationDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_conversation",
        summary="Get a conversation",
        tags=["Chat - Directory"],
        responses={200: ConversationSerializer},
    )
    def get(self, request, conversation_id):
        result = ConversationService.get_conversation_for_member(
            conversation_id, request.user
        )
        if not result.success:
            return service_error_response(result)
        return Response(ConversationSerializer(result.data).data)


# =============================================================================
# Messages
# =============================================================================


@extend_schema_view(
    get=extend_schema(
        operation_id="list_messages",
        summary="List messages after a sequence number",
        tags=["Chat - Messages"],
        parameters=[
            OpenApiParameter(
                name="since",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                description="Return messages with sequence greater than this (default 0)",
            ),
        ],
        responses={200: MessageSerializer(many=True)},
    ),
    post=extend_schema(
        operation_id="append_message",
        summary="Send a message",
        tags=["Chat - Messages"],
        request=MessageCreateSerializer,
        responses={
            201: MessageSerializer,
            400: OpenApiResponse(description="Empty, too long, or media not stored"),
            403: OpenApiResponse(description="Not a member"),
        },
    ),
)
class MessageListView(APIView):
    """Message log of one conversation."""

    permission_classes = [IsAuthenticated]
    pagination_class = MessageCursorPagination

    def get(self, request, conversation_id):
        params = MessageListQuerySerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        result = ConversationService.get_conversation_for_member(
            conversation_id, request.user
        )
        if not result.success:
            return service_error_response(result)

        messages = MessageService.messages_after(
            result.data, params.validated_data["since"]
        )
        paginator = self.pagination_class()
        page = paginator.paginate_queryset(messages, request, view=self)
        return paginator.get_paginated_response(MessageSerializer(page, many=True).data)

    def post(self, request, conversation_id):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        media = serializer.validated_data.get("media")
        result = MessageService.append_message(
            conversation_id,
            request.user,
            text=serializer.validated_data.get("text", ""),
            media=dict(media) if media else None,
        )
        if not result.success:
            return service_error_response(result)

        return Response(
            MessageSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class MessageReadView(APIView):
    """Mark one message read. Idempotent."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="mark_message_read",
        summary="Mark a message read",
        tags=["Chat - Messages"],
        request=None,
        responses={200: MessageSerializer},
    )
    def post(self, request, conversation_id, message_id):
        result = MessageService.mark_read(conversation_id, message_id, request.user)
        if not result.success:
            return service_error_response(result)
        return Response(MessageSerializer(result.data).data)


class MarkAllReadView(APIView):
    """Mark every message (optionally up to a sequence) read."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="mark_all_read",
        summary="Mark conversation read",
        tags=["Chat - Messages"],
        request=MarkAllReadSerializer,
        responses={200: OpenApiResponse(description='{"marked": <count>}')},
    )
    def post(self, request, conversation_id):
        serializer = MarkAllReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.mark_all_read(
            conversation_id,
            request.user,
            up_to_sequence=serializer.validated_data.get("up_to_sequence"),
        )
        if not result.success:
            return service_error_response(result)
        return Response({"marked": result.data})


class MediaUploadView(APIView):
    """
    Upload an image or video for a later message.

    The response's {kind, url} is passed as ``media`` when sending.
    """

    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]

    @extend_schema(
        operation_id="upload_media",
        summary="Upload message media",
        tags=["Chat - Messages"],
        request={"multipart/form-data": MediaUploadSerializer},
        responses={
            201: MediaSerializer,
            400: OpenApiResponse(description="Unsupported type or too large"),
            503: OpenApiResponse(description="Blob store unavailable"),
        },
    )
    def post(self, request, conversation_id):
        serializer = MediaUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.upload_media(
            conversation_id, request.user, serializer.validated_data["file"]
        )
        if not result.success:
            return service_error_response(result)
        return Response(result.data, status=status.HTTP_201_CREATED)


# =============================================================================
# Presence
# =============================================================================


class HeartbeatView(APIView):
    """Presence heartbeat for clients without an open socket."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="presence_heartbeat",
        summary="Send a presence heartbeat",
        tags=["Chat - Presence"],
        request=None,
        responses={200: PresenceSerializer},
    )
    def post(self, request):
        PresenceService.heartbeat(request.user.pk)
        result = PresenceService.get_presence(request.user.pk)
        return Response(PresenceSerializer(result.data).data)


class PresenceDetailView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_presence",
        summary="Get a user's presence",
        tags=["Chat - Presence"],
        responses={200: PresenceSerializer},
    )
    def get(self, request, user_id):
        result = PresenceService.get_presence(user_id)
        if not result.success:
            return service_error_response(result)
        return Response(PresenceSerializer(result.data).data)


class BulkPresenceView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_bulk_presence",
        summary="Get presence for several users",
        tags=["Chat - Presence"],
        request=BulkPresenceRequestSerializer,
        responses={200: OpenApiResponse(description="Presence keyed by user id")},
    )
    def post(self, request):
        serializer = BulkPresenceRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PresenceService.get_bulk_presence(serializer.validated_data["user_ids"])
        if not result.success:
            return service_error_response(result)
        return Response(
            {
                user_id: PresenceSerializer(presence).data
                for user_id, presence in result.data.items()
            }
        )
