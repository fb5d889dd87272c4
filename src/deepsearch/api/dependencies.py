from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from deepsearch.api.middleware.rate_limiter import RateLimitGate, get_rate_limit_gate
from deepsearch.api.services.chat_service import ChatService
from deepsearch.core.constants import Settings, get_settings


def get_app_settings() -> Settings:
    """Provide application settings via dependency injection.

    Usage in routes:
        @router.get("/example")
        async def example(settings: AppSettings):
            return {"debug": settings.debug}
    """
    return get_settings()


def get_chat_service(request: Request) -> ChatService:
    """Get the chat service built during application startup."""
    return request.app.state.chat_service


def get_gate() -> RateLimitGate:
    return get_rate_limit_gate()


# Type aliases for cleaner route signatures
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Chat = Annotated[ChatService, Depends(get_chat_service)]
Gate = Annotated[RateLimitGate, Depends(get_gate)]
