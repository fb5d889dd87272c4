from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from deepsearch.api.middleware.exception_handlers import AuthenticationError
from deepsearch.api.middleware.request_context import update_request_context
from deepsearch.core.constants import Settings, get_settings
from deepsearch.models.api_models import UserInfo
from deepsearch.models.error_models import ErrorCode

bearer_scheme = HTTPBearer(auto_error=False)

LOCALHOST_HOSTS = frozenset({"127.0.0.1", "localhost", "::1"})


def decode_access_token(token: str, settings: Settings) -> dict[str, Any]:
    """Decode and validate a bearer token; raises ValueError when invalid."""
    try:
        payload: dict[str, Any] = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc

    if not payload.get("sub"):
        raise ValueError("Token has no subject")
    return payload


def user_from_payload(payload: dict[str, Any]) -> UserInfo:
    return UserInfo(
        id=str(payload["sub"]),
        email=payload.get("email"),
        is_admin=bool(payload.get("is_admin", False)),
    )


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> UserInfo:
    """Authenticate incoming REST requests."""
    settings = get_settings()

    if credentials is None:
        if settings.allow_localhost_noauth and _is_localhost(request):
            user = UserInfo(id=settings.default_user_id)
            update_request_context(user_id=user.id)
            return user
        raise AuthenticationError(
            message="Authentication required",
            code=ErrorCode.AUTH_REQUIRED,
        )

    try:
        payload = decode_access_token(credentials.credentials, settings)
    except ValueError as exc:
        raise AuthenticationError(
            message="Invalid token",
            code=ErrorCode.AUTH_INVALID_TOKEN,
        ) from exc

    user = user_from_payload(payload)
    update_request_context(user_id=user.id)
    return user


def _is_localhost(request: Request) -> bool:
    """Check if the request originates from localhost."""
    host = request.client.host if request.client else ""
    return host in LOCALHOST_HOSTS


CurrentUser = Annotated[UserInfo, Depends(get_current_user)]
