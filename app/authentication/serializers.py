"""
Serializers for the User model.

- UserSerializer: the authenticated user's own record
- PublicUserSerializer: what other users may see (directory, friend lists)
- ProfileUpdateSerializer: input for profile edits
"""

from rest_framework import serializers

from authentication.models import User


class UserSerializer(serializers.ModelSerializer):
    """Serializer for the current user (read operations)."""

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "display_name",
            "photo_url",
            "date_joined",
        ]
        read_only_fields = fields


class PublicUserSerializer(serializers.ModelSerializer):
    """Serializer for users as seen by other users."""

    class Meta:
        model = User
        fields = ["id", "display_name", "photo_url"]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.Serializer):
    """
    Input for PATCH /api/v1/auth/me/.

    Business validation (blank names, URL shape) lives in
    IdentityService.update_profile so the socket and REST paths agree.
    """

    display_name = serializers.CharField(
        required=False, allow_blank=True, trim_whitespace=False
    )
    photo_url = serializers.CharField(
        required=False, allow_blank=True, max_length=1024
    )
