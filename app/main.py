from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from app.api import router
from app.errors import UnhandledErrorMiddleware, register_error_handlers
from app.middleware import AccessLogMiddleware, RateLimitMiddleware, SecurityHeadersMiddleware
from datastore.city_store import build_default_store
from logging_config import configure_logging
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    build_default_store()
    logger.info(f"Smart city API started ({app.state.settings.environment})")
    try:
        yield
    finally:
        logger.info("Smart city API shutting down")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, environment=settings.environment)
    app = FastAPI(
        title="Semey Smart City API",
        description="In-memory dashboard backend for projects, IoT sensors and loyalty points.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Starlette wraps middleware in reverse order: the last one added runs first.
    app.add_middleware(UnhandledErrorMiddleware, settings=settings)
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        RateLimitMiddleware,
        requests=settings.rate_limit_max,
        window_seconds=settings.rate_limit_window_seconds,
        path_prefix="/api/",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AccessLogMiddleware)

    register_error_handlers(app, settings)
    app.include_router(router)
    return app

app = create_app()
