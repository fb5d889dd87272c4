"""
Standardized error response models for the DeepSearch API.

Provides consistent error formatting for REST rejections (401/429/422)
and the error codes carried inside tool results.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Application-specific error codes for categorization."""

    # Authentication errors (1xxx)
    AUTH_REQUIRED = "AUTH_1001"
    AUTH_INVALID_TOKEN = "AUTH_1002"

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VAL_2001"

    # Admission errors (3xxx)
    RATE_LIMITED = "ADM_3001"

    # Tool errors (4xxx)
    TOOL_ARGUMENT_INVALID = "TOOL_4001"
    TOOL_EXECUTION_FAILED = "TOOL_4002"
    TOOL_UNKNOWN = "TOOL_4003"
    TOOL_CANCELLED = "TOOL_4004"
    SEARCH_PROVIDER_ERROR = "TOOL_4010"

    # Model errors (7xxx)
    MODEL_TRANSPORT_ERROR = "EXT_7010"

    # Resource errors (5xxx)
    RESOURCE_NOT_FOUND = "RES_5001"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "INT_9001"
    INTERNAL_STATE_ERROR = "INT_9002"
    INTERNAL_UNEXPECTED = "INT_9999"


class ErrorDetail(BaseModel):
    """Detailed information about a specific validation or sub-error."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """Standardized error response model for REST endpoints.

    Example response:
    {
        "error": {
            "code": "ADM_3001",
            "message": "Too many requests - please try again tomorrow",
            "request_id": "req_abc123",
            "timestamp": "2025-01-15T10:30:00Z",
            "path": "/api/chat"
        }
    }
    """

    code: ErrorCode
    message: str
    request_id: str | None = None
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    details: list[ErrorDetail] | None = None
    path: str | None = None
    # Debug info - only included in development mode
    debug: dict[str, Any] | None = Field(default=None, exclude=True)

    def to_dict(self, include_debug: bool = False) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        data = self.model_dump(mode="json", exclude_none=True)
        if include_debug and self.debug:
            data["debug"] = self.debug
        return {"error": data}


# HTTP status code mappings for error codes
ERROR_CODE_TO_STATUS: dict[ErrorCode, int] = {
    ErrorCode.AUTH_REQUIRED: 401,
    ErrorCode.AUTH_INVALID_TOKEN: 401,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.MODEL_TRANSPORT_ERROR: 502,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.INTERNAL_STATE_ERROR: 500,
    ErrorCode.INTERNAL_UNEXPECTED: 500,
}


def get_status_code(error_code: ErrorCode) -> int:
    """Get HTTP status code for an error code."""
    return ERROR_CODE_TO_STATUS.get(error_code, 500)


__all__ = [
    "ERROR_CODE_TO_STATUS",
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "get_status_code",
]
