"""
ERP Gateway - Shared API Schemas
=================================

What:  Response models used by every router (errors, health, plain messages).
"""

from typing import Optional

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Plain acknowledgement returned by state-changing session routes."""

    message: str = Field(description="Human-readable result message")


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Fields:
        error: Stable machine-readable code (e.g., "no_company_selected")
        message: Human-readable description for display to users
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "upstream_auth_failed",
            "message": "Kullanıcı adı veya şifre hatalı",
            "request_id": "3f9a1c2e"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""

    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    live_subscribers: int = Field(description="Open credit-count streams in this process")
    uptime_seconds: float = Field(description="Seconds since service started")
