from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from deepsearch.api.middleware.exception_handlers import register_exception_handlers
from deepsearch.api.middleware.rate_limiter import get_rate_limit_gate
from deepsearch.api.middleware.request_context import RequestContextMiddleware
from deepsearch.api.routes import chat, health
from deepsearch.api.services.chat_service import ChatService, build_tool_registry
from deepsearch.core.constants import get_settings
from deepsearch.integrations.model_adapter import OpenAIModelAdapter
from deepsearch.integrations.serper_client import SerperClient
from deepsearch.utils.client_factory import create_http_client, create_openai_client
from deepsearch.utils.logger import configure_uvicorn_logging, logger

# Settings are loaded via Pydantic Settings with environment-specific file support
# (.env, .env.{APP_ENV}, .env.local) - no manual dotenv loading needed
settings = get_settings()

if settings.debug:
    from deepsearch.core.constants import _get_env_files

    logger.info(f"Env files: {[f.name for f in _get_env_files()]}")
    logger.info(f"Settings: app_env={settings.app_env}, model={settings.model_name}, max_steps={settings.max_steps}")

# Configure uvicorn logging at module level to ensure workers use it
configure_uvicorn_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build shared clients, then close them on shutdown."""
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; chat runs will end with an error frame")
    if not settings.serper_api_key:
        logger.warning("SERPER_API_KEY is not set; searchWeb calls will return error results")

    # One pooled HTTP client for the model and the search provider
    http_client = create_http_client(read_timeout=settings.http_read_timeout)
    openai_client = create_openai_client(
        settings.openai_api_key or "",
        base_url=settings.openai_base_url,
        http_client=http_client,
    )
    logger.info(f"OpenAI client configured (model: {settings.model_name})")

    search_client = SerperClient(
        http_client,
        api_key=settings.serper_api_key,
        base_url=settings.serper_base_url,
        timeout=settings.search_timeout,
    )
    app.state.search_client = search_client

    app.state.chat_service = ChatService(
        model=OpenAIModelAdapter(openai_client, settings.model_name),
        registry=build_tool_registry(search_client, num_results=settings.search_result_count),
        max_steps=settings.max_steps,
        error_message=settings.stream_error_message,
    )

    # Start rate limit cleanup task
    gate = get_rate_limit_gate()
    await gate.start()
    app.state.rate_limit_gate = gate

    try:
        yield
    finally:
        logger.info("Initiating graceful shutdown sequence")
        await gate.stop()
        await http_client.aclose()
        logger.info("HTTP client closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="DeepSearch API",
        description="""
## DeepSearch API

Chat backend that answers with the help of real-time web search.

### Features
- **Streaming chat**: AI SDK data stream protocol (`X-Vercel-AI-Data-Stream: v1`)
- **Agent loop**: bounded generate / search / resume steps
- **Quota**: per-user daily request limit

### Authentication
`/api/chat` requires a JWT Bearer token. Localhost requests may skip it in development.
""",
        version=settings.app_version,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Health", "description": "Liveness probe"},
            {"name": "Chat", "description": "Streaming chat with web search"},
        ],
    )

    # Register global exception handlers for consistent error responses
    register_exception_handlers(app)

    # Request context middleware (adds request ID tracking)
    app.add_middleware(RequestContextMiddleware)

    # Production: Set CORS_ALLOW_ORIGINS to explicit list of allowed domains
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Vercel-AI-Data-Stream"],
    )

    app.include_router(chat.router, prefix="/api")
    app.include_router(health.router, prefix="/api")

    # Prometheus scrape endpoint
    app.mount("/metrics", make_asgi_app())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "deepsearch.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_config=None,
    )
