"""
Chat endpoint: ``POST /api/chat``.

Rejections happen before any streaming starts (401 unauthenticated, 429 quota
exhausted, 422 malformed body). Once the response is open, every later failure
is reported in-band as an error frame.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from deepsearch.api.dependencies import Chat, Gate
from deepsearch.api.middleware.auth import CurrentUser
from deepsearch.api.middleware.exception_handlers import RateLimitExceededError
from deepsearch.core.constants import DATA_STREAM_HEADER, DATA_STREAM_VERSION
from deepsearch.models.api_models import ChatRequest
from deepsearch.utils.logger import logger
from deepsearch.utils.metrics import rate_limit_rejections_total

router = APIRouter()

DATA_STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


@router.post(
    "/chat",
    summary="Stream a chat completion",
    description="Runs the web-search agent over the conversation and streams AI SDK data stream frames.",
    responses={
        200: {"description": "Data stream", "content": {DATA_STREAM_MEDIA_TYPE: {}}},
        401: {"description": "Authentication required"},
        429: {"description": "Daily request quota exhausted"},
    },
    tags=["Chat"],
)
async def chat(body: ChatRequest, user: CurrentUser, gate: Gate, service: Chat) -> StreamingResponse:
    if not user.is_admin and not await gate.check_and_record(user.id):
        rate_limit_rejections_total.inc()
        logger.warning(f"Chat request rejected for {user.id}: quota exhausted")
        raise RateLimitExceededError(limit=gate.limit, retry_after=gate.seconds_until_reset())

    return StreamingResponse(
        service.stream_chat(body.messages, user_id=user.id),
        media_type=DATA_STREAM_MEDIA_TYPE,
        headers={DATA_STREAM_HEADER: DATA_STREAM_VERSION},
    )
