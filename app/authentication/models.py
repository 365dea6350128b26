"""
Authentication models.

This module defines the User model:
- Identity fields handed down by the identity provider (id, email, display name)
- Profile fields edited by the user (display name, photo URL)
- The symmetric friend set owned by the social graph

Related files:
    - managers.py: Custom user manager for email-based creation
    - services.py: IdentityService (provisioning, profile, directory search)
    - social/services.py: Friend set mutations

Invariant:
    friends is a symmetrical self-relation: A in B.friends iff B in A.friends.
    Django writes both rows of the through table for every add/remove.
"""

import uuid

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model keyed by the identity provider's user id.

    Users are provisioned on first authentication and never hard-deleted;
    deactivation sets is_active=False.

    Fields:
        id: UUID issued by the identity provider (JWT user_id claim)
        email: Unique email address (USERNAME_FIELD)
        display_name: Name shown to other users
        photo_url: Blob-store reference for the profile photo
        friends: Symmetric friend set
        is_active: Whether the user account is active
        is_staff: Whether the user can access Django admin
        date_joined: When the user was provisioned
        updated_at: When the user record was last modified

    Usage:
        user = User.objects.create_user(
            email="user@example.com",
            display_name="User",
        )
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="User id issued by the identity provider",
    )

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    display_name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        db_index=True,
        help_text="Name shown to other users",
    )

    photo_url = models.CharField(
        max_length=1024,
        blank=True,
        default="",
        help_text="Blob-store URL of the profile photo",
    )

    friends = models.ManyToManyField(
        "self",
        symmetrical=True,
        blank=True,
        help_text="Symmetric friend set (maintained by the social graph services)",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.display_name or self.email

    def get_full_name(self):
        return self.display_name or self.email

    def get_short_name(self):
        return self.display_name or self.email.split("@")[0]
