"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with logging and transaction helpers

Service Layer Philosophy:
    Services encapsulate business logic separate from views and models.
    Views and socket consumers handle transport concerns, models handle
    data, services handle logic and transaction boundaries.

Pattern:
    Inside a service method, domain failures are raised as
    core.exceptions errors so the surrounding transaction rolls back.
    At the method boundary they are converted to a failed ServiceResult
    carrying error, error_code and category.

Usage:
    from core.exceptions import BaseApplicationError, ValidationError
    from core.services import BaseService, ServiceResult

    class RoomService(BaseService):
        @classmethod
        def create(cls, owner, name) -> ServiceResult[Room]:
            try:
                with cls.atomic():
                    if not name:
                        raise ValidationError("Name required", error_code="NAME_REQUIRED")
                    room = Room.objects.create(owner=owner, name=name)
            except BaseApplicationError as exc:
                return ServiceResult.from_error(exc)

            cls.get_logger().info(f"Created room {room.id}")
            return ServiceResult.success(room)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import InterfaceError, OperationalError, transaction

from core.exceptions import BaseApplicationError, ErrorCategory, TransientInfraError

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (internal, for logs)
        error_code: Machine-readable error code
        category: Client-visible error category (see ErrorCategory)
        errors: Field-level errors for validation failures

    Usage:
        result = ConversationService.create_room(owner=user, name="Team")
        if result.success:
            room = result.data
        else:
            print(f"Error: {result.error} ({result.error_code}/{result.category})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    category: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
        category: str = ErrorCategory.VALIDATION,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code
            errors: Field-level errors (for validation failures)
            category: Client-visible category (defaults to VALIDATION)

        Returns:
            ServiceResult with success=False and error details
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            category=category,
            errors=errors,
        )

    @classmethod
    def from_error(cls, exc: BaseApplicationError) -> ServiceResult[T]:
        """
        Create a failed result from a domain exception.

        Copies message, error_code and category so callers can branch on
        either without re-raising.
        """
        return cls(
            success=False,
            error=exc.message,
            error_code=exc.error_code,
            category=exc.category,
            errors=exc.details.get("errors") if exc.details else None,
        )

    @property
    def http_status(self) -> int:
        """HTTP status for this result (200 on success)."""
        if self.success:
            return 200
        return ErrorCategory.http_status_for(self.category)

    def to_response(self) -> dict[str, Any]:
        """
        Convert to a client-facing payload.

        Failed results expose only their category; message and code stay
        in the logs.
        """
        if self.success:
            return {"success": True, "data": self.data}
        return {"error": self.category or ErrorCategory.INTERNAL}

    def map(self, func) -> ServiceResult:
        """
        Transform the data if successful.

        Example:
            result = ConversationService.create_room(owner, "Team")
            serialized = result.map(lambda room: ConversationSerializer(room).data)
        """
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self  # type: ignore

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management with infrastructure error translation

    Design Notes:
        - Use @classmethod (no instance state)
        - Raise core.exceptions errors inside transactions
        - Convert to ServiceResult at the public method boundary
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for easy filtering.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Any exception raised inside the block rolls back every write made
        in it. Connection-level failures are re-raised as
        TransientInfraError so callers can tell retryable failures apart
        from domain errors.

        Example:
            with cls.atomic():
                request.accept()
                request.save()
                cls._link(sender, receiver)
        """
        try:
            with transaction.atomic():
                yield
        except (OperationalError, InterfaceError) as exc:
            cls.get_logger().error(f"Database unavailable: {exc}", exc_info=True)
            raise TransientInfraError(
                "Storage temporarily unavailable",
                details={"service": cls.__name__},
            ) from exc

