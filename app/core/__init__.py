"""
Core Application - Infrastructure & Base Classes

Shared infrastructure used by the authentication, social and chat apps.
No domain logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer (logging, atomic())
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError and its categorised subclasses
    - ErrorCategory: client-visible error categories

Helpers (import from core.helpers):
    - canonical_pair / canonical_pair_key: order-independent pair identity
    - parse_uuid: lenient UUID coercion

Blob store (import from core.storage / core.protocols):
    - BlobStore protocol, DjangoStorageBlobStore, get_blob_store

Note:
    Django models and storage helpers are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

# Exceptions (no Django dependencies)
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ErrorCategory,
    IntegrityViolationError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    TransientInfraError,
    ValidationError,
)

# Helpers (no Django dependencies)
from .helpers import canonical_pair, canonical_pair_key, parse_uuid

# Protocols (no Django dependencies)
from .protocols import BlobStore

__all__ = [
    # Exceptions
    "BaseApplicationError",
    "ErrorCategory",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "IntegrityViolationError",
    "TransientInfraError",
    "RateLimitError",
    # Helpers
    "canonical_pair",
    "canonical_pair_key",
    "parse_uuid",
    # Protocols
    "BlobStore",
]
