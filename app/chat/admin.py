"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Room and private chat inspection
- Message moderation
- Presence inspection
"""

from django.contrib import admin

from chat.models import Conversation, Message, Participant, Presence, PrivateChatPair


class ParticipantInline(admin.TabularInline):
    """Inline display of members in conversation admin."""

    model = Participant
    extra = 0
    readonly_fields = ["created_at"]
    raw_id_fields = ["user"]


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin interface for Conversation model."""

    list_display = [
        "id",
        "kind",
        "name",
        "owner",
        "message_seq",
        "created_at",
        "last_message_at",
    ]
    list_filter = ["kind", "created_at"]
    search_fields = ["name", "id"]
    readonly_fields = [
        "created_at",
        "updated_at",
        "message_seq",
        "last_message_text",
        "last_message_at",
    ]
    raw_id_fields = ["owner", "last_message_sender"]
    inlines = [ParticipantInline]
    ordering = ["-created_at"]


@admin.register(PrivateChatPair)
class PrivateChatPairAdmin(admin.ModelAdmin):
    list_display = ["conversation", "user_lower", "user_higher"]
    raw_id_fields = ["conversation", "user_lower", "user_higher"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "conversation",
        "sequence",
        "sender",
        "text_preview",
        "media_kind",
        "created_at",
    ]
    list_filter = ["media_kind", "created_at"]
    search_fields = ["text", "sender__email"]
    readonly_fields = ["created_at", "updated_at", "sequence"]
    raw_id_fields = ["conversation", "sender"]
    ordering = ["-created_at"]

    @admin.display(description="Text Preview")
    def text_preview(self, obj: Message) -> str:
        """Return truncated text for list display."""
        max_length = 50
        if len(obj.text) > max_length:
            return obj.text[:max_length] + "..."
        return obj.text


@admin.register(Presence)
class PresenceAdmin(admin.ModelAdmin):
    list_display = ["user", "is_online", "last_heartbeat_at", "last_seen_at"]
    list_filter = ["is_online"]
    search_fields = ["user__email"]
    raw_id_fields = ["user"]
