"""
Chat app for real-time messaging.

This app handles:
- Rooms (joinable, owned) and private chats (one per user pair)
- Message logs with per-conversation sequence numbers
- Read receipts and unread counts
- Presence heartbeats
- Realtime topic subscriptions

Related apps:
    - authentication: User model for members
    - social: Friendships (optionally required for private chats)

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for the socket handler and routing.py for its URL.

Usage:
    from chat.services import ConversationService, MessageService

    room = ConversationService.create_room(owner=user, name="Team").data
    MessageService.append_message(room.id, user, text="Hello!")
"""
