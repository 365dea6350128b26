"""
URL configuration for the chat API.

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
The realtime socket is routed separately (see routing.py).
"""

from django.urls import path

from chat.views import (
    BulkPresenceView,
    ConversationDetailView,
    DirectoryView,
    HeartbeatView,
    MarkAllReadView,
    MediaUploadView,
    MessageListView,
    MessageReadView,
    PresenceDetailView,
    PrivateChatView,
    RoomJoinView,
    RoomLeaveView,
    RoomListView,
)

app_name = "chat"

urlpatterns = [
    # Rooms and private chats
    path("rooms/", RoomListView.as_view(), name="room-list"),
    path("rooms/<uuid:room_id>/join/", RoomJoinView.as_view(), name="room-join"),
    path("rooms/<uuid:room_id>/leave/", RoomLeaveView.as_view(), name="room-leave"),
    path("private-chats/", PrivateChatView.as_view(), name="private-chat"),
    # Directory and conversations
    path("directory/", DirectoryView.as_view(), name="directory"),
    path(
        "conversations/<uuid:conversation_id>/",
        ConversationDetailView.as_view(),
        name="conversation-detail",
    ),
    # Messages
    path(
        "conversations/<uuid:conversation_id>/messages/",
        MessageListView.as_view(),
        name="message-list",
    ),
    path(
        "conversations/<uuid:conversation_id>/messages/<int:message_id>/read/",
        MessageReadView.as_view(),
        name="message-read",
    ),
    path(
        "conversations/<uuid:conversation_id>/read/",
        MarkAllReadView.as_view(),
        name="mark-all-read",
    ),
    path(
        "conversations/<uuid:conversation_id>/media/",
        MediaUploadView.as_view(),
        name="media-upload",
    ),
    # Presence
    path("presence/", HeartbeatView.as_view(), name="presence-heartbeat"),
    path("presence/bulk/", BulkPresenceView.as_view(), name="presence-bulk"),
    path(
        "presence/<uuid:user_id>/",
        PresenceDetailView.as_view(),
        name="presence-detail",
    ),
]
