"""
ShutterBox Backend — Shared Response Schemas
==============================================

What:  Error, health and reference models used by every router.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Collection(str, Enum):
    images = "images"
    users = "users"


class Ref(BaseModel):
    """A typed pointer to a row: which collection, which id."""
    collection: Collection
    id: int


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "conflict",
            "message": "Username or email already exists",
            "request_id": "550e8400"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class AcceptedResponse(BaseModel):
    message: str = Field(default="Accepted")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    vision: str = Field(description="Vision API status: available, unavailable, circuit_open, disabled")
    uptime_seconds: float = Field(description="Seconds since service started")
