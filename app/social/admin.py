from django.contrib import admin

from social.models import FriendRequest


@admin.register(FriendRequest)
class FriendRequestAdmin(admin.ModelAdmin):
    """Read-mostly admin for friend requests; state changes go through services."""

    list_display = ["id", "sender", "receiver", "status", "created_at", "responded_at"]
    list_filter = ["status"]
    search_fields = ["sender__email", "receiver__email"]
    raw_id_fields = ["sender", "receiver"]
    readonly_fields = ["pair_key", "status", "responded_at", "created_at", "updated_at"]
