"""
Authentication application.

Bridges the external identity provider into the backend:
    - User model: identity-provisioned users with profile fields and friend set
    - IdentityService: provisioning on first authentication, profile edits,
      user directory search
    - ProvisioningJWTAuthentication: DRF authentication that trusts only the
      verified JWT user_id claim

Usage:
    from authentication.models import User
    from authentication.services import IdentityService
"""
