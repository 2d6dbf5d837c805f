"""FastAPI application setup with lifespan and exception handlers."""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gifpipe import configure_logging
from gifpipe.api.routes import router
from gifpipe.config import Settings, load_settings
from gifpipe.orchestrator.registry import build_registry
from gifpipe.services.record_store import JobRecordStore
from gifpipe.services.redis_client import create_redis

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, redis_client=None) -> FastAPI:
    """Build the submission API.

    Args:
        settings: Loaded settings; loaded from the environment if omitted.
        redis_client: Redis client to use instead of creating one from settings.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager.

        Startup:
            - Connect to Redis and build the record store
            - Build the stage registry to find the entry stage

        Shutdown:
            - Close the Redis connection pool we created
        """
        logger.info("Starting gifpipe API...")
        client = redis_client if redis_client is not None else create_redis(settings.redis)
        app.state.settings = settings
        app.state.store = JobRecordStore(client, ttl=settings.worker.status_ttl)
        app.state.first_stage = build_registry(settings).first
        logger.info("API startup complete")

        yield

        logger.info("Shutting down gifpipe API...")
        if redis_client is None:
            await client.aclose()
        logger.info("API shutdown complete")

    app = FastAPI(
        title="gifpipe API",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler to prevent stack traces in API responses."""
        logger.error(f"Unhandled exception in {request.method} {request.url.path}: {type(exc).__name__}: {str(exc)}")
        return JSONResponse(
            status_code=500,
            content={"error": str(exc)},
        )

    return app


def _build_default_app() -> FastAPI:
    settings = load_settings()
    configure_logging(settings.logging.level)
    return create_app(settings)


app = _build_default_app()
