"""
Health check endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from deepsearch.api.dependencies import AppSettings
from deepsearch.models.api_models import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse, summary="Liveness probe", tags=["Health"])
async def health_check(request: Request, settings: AppSettings) -> HealthResponse:
    search_client = getattr(request.app.state, "search_client", None)
    return HealthResponse(
        version=settings.app_version,
        model=settings.model_name,
        search_configured=bool(search_client and search_client.is_configured),
    )
