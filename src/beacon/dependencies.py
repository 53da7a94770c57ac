"""FastAPI dependency injection providers."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.config import settings
from beacon.errors.exceptions import AuthenticationError, AuthorizationError
from beacon.models.enums import RateLimitBackend
from beacon.services.delivery import DeliveryService, build_senders
from beacon.services.escalation_engine import EscalationEngine
from beacon.services.notification_service import NotificationService
from beacon.services.rate_limiter import DatabaseRequestLog, RedisRequestLog, SlidingWindowRateLimiter


async def get_db(request: Request) -> AsyncGenerator:
    """Yield a database session from the app's session factory."""
    session_factory = request.app.state.db_session_factory
    async with session_factory() as session:
        yield session


async def get_principal(request: Request) -> dict:
    """Return the caller identity; anonymous callers are allowed through."""
    user = getattr(request.state, "user", None) or {"sub": "anonymous"}
    if "_auth_error" in user:
        raise AuthenticationError(user["_auth_error"])
    return user


async def get_current_user(user: dict = Depends(get_principal)) -> dict:
    """Return the authenticated principal or raise 401."""
    if user.get("sub") in ("anonymous", "", None):
        raise AuthenticationError("Authentication required")
    return user


async def require_writer(user: dict = Depends(get_principal)) -> dict:
    """Guard for mutating routes; enforced only when auth is required."""
    if settings.auth_required:
        return await get_current_user(user)
    return user


JOB_RUNNER_ROLES = ("service", "admin")


async def require_job_runner(user: dict = Depends(require_writer)) -> dict:
    """Periodic jobs belong to the scheduler: an API key or an admin token."""
    if settings.auth_required and not set(user.get("roles", [])).intersection(JOB_RUNNER_ROLES):
        raise AuthorizationError(f"Requires one of: {', '.join(JOB_RUNNER_ROLES)}")
    return user


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(
        db,
        max_attempts=settings.delivery_max_attempts,
        tz=settings.default_timezone,
    )


def get_escalation_engine(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> EscalationEngine:
    return EscalationEngine(db, notifications)


def get_delivery_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> DeliveryService:
    senders = getattr(request.app.state, "senders", None) or build_senders(
        settings, getattr(request.app.state, "http_client", None)
    )
    return DeliveryService(db, senders, notifications)


def get_rate_limiter(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> SlidingWindowRateLimiter:
    redis = getattr(request.app.state, "redis", None)
    if settings.rate_limit_backend == RateLimitBackend.REDIS and redis is not None:
        store = RedisRequestLog(redis, retention_seconds=settings.rate_limit_retention_seconds)
    else:
        store = DatabaseRequestLog(db)
    return SlidingWindowRateLimiter(
        store,
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
        fail_open=settings.rate_limit_fail_open,
    )


# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
Principal = Annotated[dict, Depends(get_principal)]
Writer = Annotated[dict, Depends(require_writer)]
JobRunner = Annotated[dict, Depends(require_job_runner)]
Notifications = Annotated[NotificationService, Depends(get_notification_service)]
Escalations = Annotated[EscalationEngine, Depends(get_escalation_engine)]
Deliveries = Annotated[DeliveryService, Depends(get_delivery_service)]
RateLimiter = Annotated[SlidingWindowRateLimiter, Depends(get_rate_limiter)]
