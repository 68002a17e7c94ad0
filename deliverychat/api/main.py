"""FastAPI application for the delivery chat API.

Provides the app factory and the default application instance with
routers, CORS and exception handlers configured. The lifespan builds the
shared services (database engine, assistant backend, status broadcaster,
orchestrator) and stores them on ``app.state``.
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("deliverychat").setLevel(logging.INFO)

from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deliverychat import __version__
from deliverychat.api.routes import chat, query, schema, status
from deliverychat.config import Settings
from deliverychat.errors import DeliveryChatError, error_payload
from deliverychat.orchestrator.backend.base import AssistantBackend
from deliverychat.runtime import build_services

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, backend: AssistantBackend | None = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Service settings; read from the environment if None.
        backend: Assistant backend; an Anthropic backend is created at
            startup if None.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build shared services on startup, release them on shutdown."""
        services = build_services(settings, backend)
        app.state.settings = settings
        app.state.engine = services.engine
        app.state.executor = services.executor
        app.state.public_guard = services.public_guard
        app.state.broadcaster = services.broadcaster
        app.state.backend = services.backend
        app.state.orchestrator = services.orchestrator
        logger.info(
            "Delivery chat ready (mode=%s, tool_form=%s, model=%s, database=%s)",
            settings.chat_mode,
            settings.tool_form,
            settings.model,
            services.engine.dialect.name,
        )

        yield

        await services.aclose()

    app = FastAPI(
        title="Delivery Chat API",
        description="Natural language chat over the delivery management database",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
            expose_headers=[chat.THREAD_HEADER],
        )

    @app.exception_handler(DeliveryChatError)
    async def deliverychat_error_handler(request: Request, exc: DeliveryChatError) -> JSONResponse:
        """Map domain errors to ``{error, details}`` with the registry status."""
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.http_status, content=error_payload(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_payload(exc))

    app.include_router(chat.router)
    app.include_router(status.router)
    app.include_router(query.router)
    app.include_router(schema.router)

    @app.get("/health")
    def health_check(request: Request) -> dict:
        """Liveness with version and connected status listeners."""
        broadcaster = getattr(request.app.state, "broadcaster", None)
        return {
            "status": "healthy",
            "version": __version__,
            "listeners": broadcaster.listener_count if broadcaster else 0,
        }

    return app


app = create_app()
