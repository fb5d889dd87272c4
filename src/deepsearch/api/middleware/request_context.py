"""
Request-scoped context for the chat API.

Every request gets an id, taken from ``X-Request-ID`` when the caller sends a
usable one. The id is echoed on the response and attached to each log record
emitted while the request is handled, including records from the agent run
that produces a streamed body.

The access log line is written when the response body is finished rather
than when headers go out, so for ``POST /api/chat`` its duration covers the
whole run and an aborted stream is reported as such.
"""

from __future__ import annotations

import logging
import re
import secrets
import time

from collections.abc import AsyncIterator
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_ID_PREFIX = "req_"

# Inbound ids end up in logs and response headers
_INBOUND_ID_PATTERN = re.compile(r"[A-Za-z0-9._:-]{1,128}")

_current_request: ContextVar[RequestContext | None] = ContextVar("deepsearch_request", default=None)


@dataclass
class RequestContext:
    """What the logs should know about the request being served."""

    request_id: str
    method: str = ""
    path: str = ""
    user_id: str | None = None
    started: float = field(default_factory=time.monotonic)
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000

    def to_log_context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {"request_id": self.request_id}
        if self.method:
            ctx["method"] = self.method
        if self.path:
            ctx["path"] = self.path
        if self.user_id:
            ctx["user_id"] = self.user_id
        ctx.update(self.fields)
        return ctx


def generate_request_id() -> str:
    """``req_`` followed by 16 hex characters."""
    return f"{REQUEST_ID_PREFIX}{secrets.token_hex(8)}"


def resolve_request_id(inbound: str | None) -> str:
    """Use the caller's id for tracing when it is well formed, else mint one."""
    if inbound and _INBOUND_ID_PATTERN.fullmatch(inbound):
        return inbound
    return generate_request_id()


def get_request_context() -> RequestContext | None:
    return _current_request.get()


def get_request_id() -> str | None:
    ctx = _current_request.get()
    return ctx.request_id if ctx else None


def set_request_context(context: RequestContext | None) -> None:
    _current_request.set(context)


def clear_request_context() -> None:
    _current_request.set(None)


def update_request_context(user_id: str | None = None, **fields: Any) -> None:
    """Attach the authenticated user and extra log fields to the current request.

    No-op outside a request.
    """
    ctx = _current_request.get()
    if ctx is None:
        return
    if user_id is not None:
        ctx.user_id = user_id
    ctx.fields.update(fields)


def log_access(context: RequestContext, status_code: int, body_bytes: int, completed: bool) -> None:
    outcome = "" if completed else " (aborted)"
    logger.info(
        f"{context.method} {context.path} -> {status_code}{outcome} [{body_bytes} bytes, {context.elapsed_ms:.0f}ms]",
        extra={**context.to_log_context(), "status_code": status_code, "body_bytes": body_bytes},
    )


async def _logged_body(
    body: AsyncIterator[Any],
    context: RequestContext,
    status_code: int,
) -> AsyncIterator[Any]:
    sent = 0
    completed = False
    try:
        async for chunk in body:
            sent += len(chunk)
            yield chunk
        completed = True
    finally:
        log_access(context, status_code, sent, completed)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a RequestContext for each request and writes the access log line."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext(
            request_id=resolve_request_id(request.headers.get(REQUEST_ID_HEADER)),
            method=request.method,
            path=request.url.path,
        )
        # Set in this request's task context; the endpoint task copies it
        set_request_context(context)

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = context.request_id

        body = getattr(response, "body_iterator", None)
        if body is None:
            log_access(context, response.status_code, len(response.body), completed=True)
        else:
            response.body_iterator = _logged_body(body, context, response.status_code)  # type: ignore[attr-defined]
        return response


__all__ = [
    "REQUEST_ID_HEADER",
    "REQUEST_ID_PREFIX",
    "RequestContext",
    "RequestContextMiddleware",
    "clear_request_context",
    "generate_request_id",
    "get_request_context",
    "get_request_id",
    "log_access",
    "resolve_request_id",
    "set_request_context",
    "update_request_context",
]
