"""FastAPI application factory and lifespan management."""

import logging
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from beacon.api.middleware.auth import AuthMiddleware
from beacon.api.middleware.trace_id import TraceIdMiddleware
from beacon.api.router import api_router
from beacon.config import settings
from beacon.db.engine import create_all_tables, create_db_engine, create_session_factory
from beacon.errors.handlers import register_exception_handlers
from beacon.logging_config import configure_logging
from beacon.models.enums import RateLimitBackend
from beacon.services.delivery import build_senders

# Configure logging at import time
configure_logging(log_level=settings.log_level, json_output=not settings.local_mode)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)

    # SQLite runs without migrations
    if "sqlite" in db_url:
        await create_all_tables(engine)
        logger.info("SQLite tables created (local mode)")

    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)

    app.state.redis = None
    if settings.rate_limit_backend == RateLimitBackend.REDIS and not settings.local_mode:
        app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)

    app.state.http_client = httpx.AsyncClient(timeout=10.0)
    app.state.senders = build_senders(settings, app.state.http_client)

    logger.info(
        "Beacon API started (db=%s, rate_limit_backend=%s)",
        "sqlite" if "sqlite" in db_url else "postgresql",
        "redis" if app.state.redis is not None else "database",
    )
    yield

    await app.state.http_client.aclose()
    if app.state.redis is not None:
        await app.state.redis.aclose()
    await engine.dispose()
    logger.info("Beacon API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Beacon API",
        version="0.1.0",
        description="Rate limiting, prioritised notifications and time-delayed escalation.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Order matters: last added runs first, so the trace id is bound before auth
    app.add_middleware(AuthMiddleware)
    app.add_middleware(TraceIdMiddleware)

    register_exception_handlers(app)

    Instrumentator(
        should_group_status_codes=True,
        should_respect_env_var=False,
        excluded_handlers=["/api/v1/health.*", "/metrics"],
    ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    app.include_router(api_router)
    return app


app = create_app()
