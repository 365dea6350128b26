"""
DRF authentication backed by the identity provider's JWTs.

ProvisioningJWTAuthentication validates the bearer token exactly like
simplejwt's JWTAuthentication, but resolves the user through
IdentityService so that a user seen for the first time is provisioned
from the token claims instead of being rejected.

Configured in settings.REST_FRAMEWORK["DEFAULT_AUTHENTICATION_CLASSES"].
"""

from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed

from authentication.services import IdentityService


class ProvisioningJWTAuthentication(JWTAuthentication):
    """JWT authentication that provisions unknown users on first sight."""

    def get_user(self, validated_token):
        user = IdentityService.resolve_token_user(validated_token)
        if user is None:
            raise AuthenticationFailed(
                "User not found or inactive",
                code="user_not_found",
            )
        return user
