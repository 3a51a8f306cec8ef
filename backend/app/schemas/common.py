"""
Snapcheck Backend — Shared Pydantic Schemas
=============================================

What:  Response models shared by every route module: error envelope,
       pagination info, health check.
"""

from typing import Optional

from pydantic import BaseModel, Field


class PageInfo(BaseModel):
    """
    Offset pagination state.

    has_next_page is true when `after + first < total_count`.
    """
    total_count: int = Field(description="Total number of items")
    has_next_page: bool = Field(description="Whether another page is available")


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Fields:
        error: Machine-readable error code (e.g., "validation_error", "not_found")
        message: Human-readable description for display to users
        details: Optional extra context (e.g., which field failed validation)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "validation_error",
            "message": "Slug is reserved for internal usage",
            "details": {"field": "slug"},
            "request_id": "1f0c2a9b"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    What:  Health check response showing service and dependency status.
    Who:   Returned by GET /health for monitoring and load balancer health checks.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    billing: str = Field(description="Stripe status: available, unconfigured, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
