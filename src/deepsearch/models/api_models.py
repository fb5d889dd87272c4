"""
Request/response models for the REST surface.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from deepsearch.models.chat_models import Message


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    messages: list[Message] = Field(..., min_length=1)


class UserInfo(BaseModel):
    """Identity resolved by the auth dependency."""

    id: str
    email: str | None = None
    is_admin: bool = False


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    model: str
    search_configured: bool


__all__ = ["ChatRequest", "HealthResponse", "UserInfo"]
