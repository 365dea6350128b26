"""
Chat application configuration.

This app provides the messaging side of the backend:
- Rooms and private chats (the conversation directory)
- Append-only message logs with read receipts and media
- Heartbeat-based presence
- Topic fan-out over a single realtime socket
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"
