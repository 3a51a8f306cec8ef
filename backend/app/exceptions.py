"""
Snapcheck Backend — Custom Exception Hierarchy
=================================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured JSON error responses with correct HTTP status codes.
Who:   Raised by services, jobs and middleware; caught by global handlers.

Exception Hierarchy:
    SnapcheckError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── UnauthorizedError        → 401 Unauthorized (no authenticated user)
    ├── ForbiddenError           → 403 Forbidden (missing write permission)
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── BillingServiceError      → 503 Service Unavailable (Stripe failed)
    ├── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
    ├── InvariantError           → 500 Internal Server Error (incoherent data)
    └── DatabaseError            → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class SnapcheckError(Exception):
    """
    Base exception for all Snapcheck application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, returned only where the handler says so)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(SnapcheckError):
    """
    Raised when client input fails a business rule.

    When:    Reserved slug, slug already taken.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "Slug already exists",
            "details": {"field": "slug"}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnauthorizedError(SnapcheckError):
    """Raised when an operation requires an authenticated user and there is none."""

    def __init__(
        self,
        message: str = "Unauthorized",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ForbiddenError(SnapcheckError):
    """
    Raised when the authenticated user lacks permission on a resource.

    When:    Updating an account the user does not own, or a team the user
             is not an owner of.
    HTTP:    403 Forbidden
    """

    def __init__(
        self,
        message: str = "Unauthorized",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(SnapcheckError):
    """
    Raised when a requested resource does not exist or is not readable.

    HTTP:    404 Not Found

    Unreadable resources are reported as missing so that slugs of private
    accounts cannot be probed.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class BillingServiceError(SnapcheckError):
    """
    Raised when the payment provider (Stripe) cannot complete an operation.

    When:    After tenacity retries are exhausted, when the customer has no
             subscription, or when the account has no Stripe customer.
    HTTP:    503 Service Unavailable
    """

    def __init__(
        self,
        message: str = "Billing service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(SnapcheckError):
    """
    Raised when the billing circuit breaker is in OPEN state.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for the recovery timeout)
        → After the timeout → HALF-OPEN (allow one test call)
        → If test succeeds → CLOSED
        → If test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Billing service is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class InvariantError(SnapcheckError):
    """
    Raised when stored data breaks a model invariant.

    When:    An account row references both a user and a team, or neither.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Invariant violated",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(SnapcheckError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    The message returned to the client is always generic; details are
    logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(SnapcheckError):
    """
    Raised when a client exceeds the per-client request rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
