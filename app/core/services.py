"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with logging and transaction helpers

Pattern Comparison:
    - ServiceResult: Use for expected failures (malformed payloads, business rules)
    - Exceptions: Use for unexpected failures (provider outages, database errors)

Usage:
    from core.services import BaseService, ServiceResult

    class LinkStudentService(BaseService):
        def link(self, student, subscription_id: str) -> ServiceResult[Student]:
            if Student.objects.filter(stripe_subscription_id=subscription_id).exists():
                return ServiceResult.failure(
                    "Subscription already linked",
                    error_code="ALREADY_LINKED",
                )

            with self.atomic():
                student.stripe_subscription_id = subscription_id
                student.save(update_fields=["stripe_subscription_id"])

            self.get_logger().info("Linked student", extra={"student_id": str(student.id)})
            return ServiceResult.success(student)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code
        errors: Field-level errors for validation failures

    Usage:
        result = router.route(event)
        if result.success:
            summary = result.data
        else:
            logger.warning(result.error, extra={"error_code": result.error_code})
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result carrying data."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code
            errors: Field-level errors (for validation failures)

        Example:
            return ServiceResult.failure(
                "Missing object id in webhook payload",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(
        cls, exc: Exception, error_code: str | None = None
    ) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Uses the exception's own error_code when it carries one
        (BaseApplicationError subclasses do).
        """
        return cls(
            success=False,
            error=getattr(exc, "message", None) or str(exc),
            error_code=error_code
            or getattr(exc, "error_code", None)
            or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """
        Convert to API response format.

        Returns:
            Dict with success status and data or error details
        """
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def map(self, func: Callable[[T], Any]) -> ServiceResult:
        """Transform the data if successful; failures pass through unchanged."""
        if self.success and self.data is not None:
            return ServiceResult.success(func(self.data))
        return self

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Provides:
    - A logger named after the concrete service class
    - An explicit transaction boundary helper

    Services in this project take their collaborators (Stripe adapter,
    cache, clock) as constructor arguments so tests can swap in fakes.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns:
            Logger named "<module>.<ClassName>" for easy filtering
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        All database writes inside the block commit together or not at all.
        Nested use creates a savepoint.

        Example:
            with self.atomic():
                Subscription.objects.update_or_create(...)
                Student.objects.filter(id__in=ids).update(...)
        """
        with transaction.atomic():
            yield
