"""
Identity services.

This module provides IdentityService, the in-process face of the external
identity collaborator:
    - provision: create the local User the first time a verified identity
      is seen
    - resolve_token_user: map a verified JWT to an active User
    - update_profile: display name and photo edits
    - search_users: user directory lookup by display name or email

Related files:
    - backends.py: DRF authentication built on resolve_token_user
    - chat/middleware.py: WebSocket authentication built on resolve_token_user

Security:
    Only the verified user_id claim identifies a user. Email and name
    claims are used solely to populate a newly provisioned record.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.db import IntegrityError
from django.db.models import Q
from rest_framework_simplejwt.settings import api_settings as jwt_settings

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ValidationError,
)
from core.helpers import parse_uuid
from core.services import BaseService, ServiceResult

from authentication.models import User

if TYPE_CHECKING:
    from django.db.models import QuerySet


DISPLAY_NAME_MAX_LENGTH = 150
SEARCH_MIN_QUERY_LENGTH = 2
SEARCH_MAX_RESULTS = 50


class IdentityService(BaseService):
    """
    User provisioning, profile management and directory search.

    Usage:
        result = IdentityService.provision(
            user_id=claims["user_id"],
            email=claims["email"],
            display_name=claims.get("name", ""),
        )
        user = result.data
    """

    @classmethod
    def provision(
        cls,
        user_id,
        email: str,
        display_name: str = "",
    ) -> ServiceResult[User]:
        """
        Get or create the local user for a verified identity.

        Safe under concurrent first requests: a racing insert of the same
        id resolves to the row the winner created.

        Error codes:
            INVALID_IDENTITY: user_id is not a UUID or email is missing
            EMAIL_TAKEN: another user already owns this email
        """
        uid = parse_uuid(user_id)
        if uid is None or not email:
            return ServiceResult.failure(
                "Identity must carry a UUID user id and an email",
                error_code="INVALID_IDENTITY",
            )

        existing = User.objects.filter(id=uid).first()
        if existing:
            return ServiceResult.success(existing)

        extra = {"display_name": display_name.strip()[:DISPLAY_NAME_MAX_LENGTH]}
        if not extra["display_name"]:
            extra.pop("display_name")

        try:
            with cls.atomic():
                user = User.objects.create_user(email=email, id=uid, **extra)
        except IntegrityError:
            user = User.objects.filter(id=uid).first()
            if user is None:
                error = ConflictError(
                    "Email is already registered to another user",
                    error_code="EMAIL_TAKEN",
                )
                cls.get_logger().warning(f"Provisioning {uid} failed: {error}")
                return ServiceResult.from_error(error)
            return ServiceResult.success(user)
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        cls.get_logger().info(f"Provisioned user {user.id}")
        return ServiceResult.success(user)

    @classmethod
    def resolve_token_user(cls, token) -> User | None:
        """
        Return the active user for a validated JWT, provisioning if needed.

        Args:
            token: A validated simplejwt token (AccessToken or similar)

        Returns:
            User, or None when the token has no usable identity or the
            user is deactivated
        """
        user_id = token.get(jwt_settings.USER_ID_CLAIM)
        if not user_id:
            return None

        user = User.objects.filter(**{jwt_settings.USER_ID_FIELD: user_id}).first()
        if user is None:
            email = token.get("email")
            if not email:
                cls.get_logger().warning(
                    f"Token for unknown user {user_id} has no email claim"
                )
                return None
            result = cls.provision(user_id, email, token.get("name", ""))
            if not result.success:
                return None
            user = result.data

        if not user.is_active:
            cls.get_logger().warning(f"Inactive user {user.id} presented a token")
            return None

        return user

    @classmethod
    def update_profile(
        cls,
        user: User,
        display_name: str | None = None,
        photo_url: str | None = None,
    ) -> ServiceResult[User]:
        """
        Update the user's display name and/or photo reference.

        Error codes:
            DISPLAY_NAME_REQUIRED: display name blank after trimming
            DISPLAY_NAME_TOO_LONG: display name over 150 characters
            INVALID_PHOTO_URL: photo_url is neither blank nor a valid URL/path
        """
        update_fields = []

        try:
            if display_name is not None:
                display_name = display_name.strip()
                if not display_name:
                    raise ValidationError(
                        "Display name cannot be empty",
                        error_code="DISPLAY_NAME_REQUIRED",
                    )
                if len(display_name) > DISPLAY_NAME_MAX_LENGTH:
                    raise ValidationError(
                        "Display name is too long",
                        error_code="DISPLAY_NAME_TOO_LONG",
                    )
                user.display_name = display_name
                update_fields.append("display_name")

            if photo_url is not None:
                photo_url = photo_url.strip()
                if photo_url and not cls._is_valid_photo_reference(photo_url):
                    raise ValidationError(
                        "Photo URL is not a valid reference",
                        error_code="INVALID_PHOTO_URL",
                    )
                user.photo_url = photo_url
                update_fields.append("photo_url")
        except BaseApplicationError as exc:
            return ServiceResult.from_error(exc)

        if update_fields:
            user.save(update_fields=[*update_fields, "updated_at"])
            cls.get_logger().info(
                f"User {user.id} updated profile fields {update_fields}"
            )

        return ServiceResult.success(user)

    @classmethod
    def search_users(
        cls,
        query: str,
        exclude: User | None = None,
        limit: int = SEARCH_MAX_RESULTS,
    ) -> QuerySet[User]:
        """
        Search active users by display name or email (case-insensitive).

        Queries shorter than two characters return no results.
        """
        query = (query or "").strip()
        if len(query) < SEARCH_MIN_QUERY_LENGTH:
            return User.objects.none()

        queryset = User.objects.filter(is_active=True).filter(
            Q(display_name__icontains=query) | Q(email__icontains=query)
        )
        if exclude is not None:
            queryset = queryset.exclude(id=exclude.id)
        return queryset.order_by("display_name", "email")[: min(limit, SEARCH_MAX_RESULTS)]

    @staticmethod
    def _is_valid_photo_reference(value: str) -> bool:
        """Accept absolute http(s) URLs and site-relative blob paths."""
        if value.startswith("/") and not value.startswith("//"):
            return True
        try:
            URLValidator(schemes=["http", "https"])(value)
        except DjangoValidationError:
            return False
        return True
