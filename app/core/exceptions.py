"""
Application exception hierarchy.

Every domain error carries three things:
- message: human-readable description (logged, never sent to clients)
- error_code: machine-readable code for tests and logs (e.g. DUPLICATE_REQUEST)
- category: the coarse error class that is the only thing surfaced at the
  client boundary (REST responses and realtime socket frames)

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input rejected at the service boundary
    ├── NotFoundError - Missing entity
    ├── PermissionDeniedError - Actor is not a member/participant/owner
    ├── ConflictError - Duplicate create where uniqueness is required
    ├── IntegrityViolationError - Operation would break a store invariant
    ├── TransientInfraError - Storage/network unavailable, retryable
    └── RateLimitError - Rate limit exceeded

Usage:
    from core.exceptions import ConflictError, NotFoundError

    raise ConflictError(
        "A pending request already exists for this pair",
        error_code="DUPLICATE_REQUEST",
    )

    try:
        ...
    except BaseApplicationError as e:
        return Response({"error": e.category}, status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class ErrorCategory:
    """
    Client-visible error categories.

    These strings are part of the public API: REST error bodies and
    realtime error frames carry exactly one of them.
    """

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PERMISSION = "PERMISSION"
    TRANSIENT = "TRANSIENT"
    INTEGRITY = "INTEGRITY"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL = "INTERNAL"

    HTTP_STATUS = {
        VALIDATION: 400,
        NOT_FOUND: 404,
        CONFLICT: 409,
        PERMISSION: 403,
        TRANSIENT: 503,
        INTEGRITY: 409,
        RATE_LIMITED: 429,
        INTERNAL: 500,
    }

    @classmethod
    def http_status_for(cls, category: str | None) -> int:
        """Map a category to its HTTP status (500 for unknown categories)."""
        return cls.HTTP_STATUS.get(category, 500)


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code (defaults to class default)
        details: Additional error context (ids, field errors)
        category: Client-visible category (class attribute)

    Example:
        try:
            FriendRequestService.accept_or_raise(request_id, user)
        except NotFoundError as e:
            logger.warning(f"Accept failed: {e}")
            return Response({"error": e.category}, status=e.http_status)
    """

    default_error_code: str = "APPLICATION_ERROR"
    category: str = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    @property
    def http_status(self) -> int:
        """HTTP status matching this error's category."""
        return ErrorCategory.http_status_for(self.category)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to a dictionary for internal logging and debugging.

        Not suitable for client responses, which must carry the category
        only (see to_client_dict).
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
            "category": self.category,
        }
        if self.details:
            result["details"] = self.details
        return result

    def to_client_dict(self) -> dict[str, str]:
        """Client-safe payload: the category and nothing else."""
        return {"error": self.category}

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input fails validation at the service boundary.

    Use for:
    - Empty or over-long text fields
    - Unsupported media kinds
    - Malformed topic names or ids
    - Self-targeted operations (friend request to yourself)

    Example:
        raise ValidationError("Room name is required", error_code="NAME_REQUIRED")
    """

    default_error_code: str = "VALIDATION_ERROR"
    category: str = ErrorCategory.VALIDATION


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested entity does not exist.

    Also used when an entity exists but is not in a state the operation
    applies to (accepting a request that is no longer pending).
    """

    default_error_code: str = "NOT_FOUND"
    category: str = ErrorCategory.NOT_FOUND


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the actor may not perform the operation.

    Use for:
    - Posting to a conversation the sender is not a member of
    - Modifying membership of a room the actor does not belong to
    - Subscribing to another user's directory or inbox
    - Accepting a friend request addressed to someone else

    Note:
        For authentication failures (missing/invalid token), DRF's
        AuthenticationFailed is used. This is for authorization.
    """

    default_error_code: str = "PERMISSION_DENIED"
    category: str = ErrorCategory.PERMISSION


class ConflictError(BaseApplicationError):
    """
    Raised when a create would duplicate an entity that must be unique.

    Example:
        raise ConflictError(
            "A pending friend request already exists",
            error_code="DUPLICATE_REQUEST",
            details={"pair_key": pair_key},
        )
    """

    default_error_code: str = "CONFLICT"
    category: str = ErrorCategory.CONFLICT


class IntegrityViolationError(BaseApplicationError):
    """
    Raised when an operation would break a store invariant.

    The surrounding transaction is always rolled back before this reaches
    a caller, so it never describes partially applied state.

    Example:
        # Conditional insert lost a race but the winner cannot be read back
        raise IntegrityViolationError(
            "Private chat uniqueness could not be established",
            error_code="PRIVATE_CHAT_INTEGRITY",
        )
    """

    default_error_code: str = "INTEGRITY_VIOLATION"
    category: str = ErrorCategory.INTEGRITY


class TransientInfraError(BaseApplicationError):
    """
    Raised when storage or network infrastructure is temporarily unavailable.

    Clients may retry the same request. Raised by BaseService.atomic() when
    the database connection fails.
    """

    default_error_code: str = "TRANSIENT_INFRA_ERROR"
    category: str = ErrorCategory.TRANSIENT


class RateLimitError(BaseApplicationError):
    """
    Raised when rate limit is exceeded.

    Note:
        Include retry_after in details when possible.
    """

    default_error_code: str = "RATE_LIMIT_EXCEEDED"
    category: str = ErrorCategory.RATE_LIMITED
