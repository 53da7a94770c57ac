"""Sliding-window rate limiter over a persisted request log.

Each admitted request appends one row to the log; a check counts the rows
for ``(client_id, endpoint)`` inside the trailing window and admits the
request only while that count is below ``max_requests``. Limited requests
never append a row.

The count and the append are two separate operations, so two concurrent
requests at the boundary may both be admitted. This is a soft limit.
"""

import logging
import time
import uuid
from typing import Callable, Protocol, runtime_checkable

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.errors.exceptions import PersistenceError, ValidationError
from beacon.models.rate_limit import RateLimitDecision
from beacon.repositories.rate_limit_repo import RateLimitRequestRepository

logger = logging.getLogger(__name__)


@runtime_checkable
class RequestLogStore(Protocol):
    """Persistence used by the limiter. Implementations raise PersistenceError on faults."""

    async def count_since(self, client_id: str, endpoint: str, since: int) -> tuple[int, int | None]: ...

    async def record(
        self,
        client_id: str,
        endpoint: str,
        timestamp: int,
        ip_address: str | None = None,
        user_id: str | None = None,
    ) -> None: ...

    async def prune(self, cutoff: int) -> int: ...


class DatabaseRequestLog:
    """Request log stored in the ``rate_limit_requests`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = RateLimitRequestRepository(session)

    async def count_since(self, client_id: str, endpoint: str, since: int) -> tuple[int, int | None]:
        try:
            return await self.repo.count_since(client_id, endpoint, since)
        except SQLAlchemyError as exc:
            raise PersistenceError("Rate limit log unavailable", details=str(exc)) from exc

    async def record(
        self,
        client_id: str,
        endpoint: str,
        timestamp: int,
        ip_address: str | None = None,
        user_id: str | None = None,
    ) -> None:
        try:
            await self.repo.record(client_id, endpoint, timestamp, ip_address=ip_address, user_id=user_id)
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("Failed to record rate limit request", details=str(exc)) from exc

    async def prune(self, cutoff: int) -> int:
        try:
            removed = await self.repo.prune_before(cutoff)
            await self.session.commit()
            return removed
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("Failed to prune rate limit log", details=str(exc)) from exc


class RedisRequestLog:
    """Request log kept in one Redis sorted set per (client_id, endpoint).

    Members are unique per request and scored by their epoch timestamp.
    """

    def __init__(self, redis, retention_seconds: int = 86400, prefix: str = "beacon:rate-limit"):
        self.redis = redis
        self.retention_seconds = max(retention_seconds, 1)
        self.prefix = prefix

    def _key(self, client_id: str, endpoint: str) -> str:
        return f"{self.prefix}:{client_id}:{endpoint}"

    async def count_since(self, client_id: str, endpoint: str, since: int) -> tuple[int, int | None]:
        key = self._key(client_id, endpoint)
        try:
            count = await self.redis.zcount(key, since, "+inf")
            if not count:
                return 0, None
            oldest = await self.redis.zrangebyscore(key, since, "+inf", start=0, num=1, withscores=True)
        except RedisError as exc:
            raise PersistenceError("Rate limit log unavailable", details=str(exc)) from exc
        oldest_ts = int(oldest[0][1]) if oldest else None
        return int(count), oldest_ts

    async def record(
        self,
        client_id: str,
        endpoint: str,
        timestamp: int,
        ip_address: str | None = None,
        user_id: str | None = None,
    ) -> None:
        key = self._key(client_id, endpoint)
        member = f"{timestamp}:{uuid.uuid4().hex[:12]}"
        try:
            await self.redis.zadd(key, {member: timestamp})
            await self.redis.zremrangebyscore(key, "-inf", timestamp - self.retention_seconds)
            await self.redis.expire(key, self.retention_seconds)
        except RedisError as exc:
            raise PersistenceError("Failed to record rate limit request", details=str(exc)) from exc

    async def prune(self, cutoff: int) -> int:
        # Keys expire on their own and each write trims old members.
        return 0


class SlidingWindowRateLimiter:
    """Admit or reject calls per (client, endpoint) over a trailing window."""

    def __init__(
        self,
        store: RequestLogStore,
        window_seconds: int = 60,
        max_requests: int = 100,
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.fail_open = fail_open
        self.clock = clock

    async def check(
        self,
        client_id: str,
        endpoint: str,
        *,
        window_seconds: int | None = None,
        max_requests: int | None = None,
        now: int | None = None,
        ip_address: str | None = None,
        user_id: str | None = None,
    ) -> RateLimitDecision:
        """Count, decide, then append a log row for admitted requests only.

        Raises:
            ValidationError: on missing identity/endpoint or non-positive limits.
            PersistenceError: on storage faults when configured to fail closed.
        """
        window = self.window_seconds if window_seconds is None else window_seconds
        limit = self.max_requests if max_requests is None else max_requests
        _validate(client_id, endpoint, window, limit)

        now_ts = int(self.clock()) if now is None else int(now)
        since = now_ts - window

        try:
            count, oldest = await self.store.count_since(client_id, endpoint, since)
        except PersistenceError as exc:
            return self._on_storage_fault(exc, client_id, endpoint, window, limit, now_ts)

        if count >= limit:
            retry_after = _retry_after(oldest, window, now_ts)
            logger.warning(
                "Rate limit exceeded for %s on %s (%d/%d, retry in %ds)",
                client_id, endpoint, count, limit, retry_after,
            )
            return RateLimitDecision(
                limited=True,
                current_requests=count,
                max_requests=limit,
                remaining=0,
                window_seconds=window,
                retry_after=retry_after,
                reset_at=now_ts + retry_after,
            )

        try:
            await self.store.record(client_id, endpoint, now_ts, ip_address=ip_address, user_id=user_id)
        except PersistenceError as exc:
            if not self.fail_open:
                logger.error("Rate limit log write failed for %s on %s: %s", client_id, endpoint, exc.message)
                raise
            logger.warning("Rate limit log write failed for %s on %s, admitting: %s", client_id, endpoint, exc.message)

        logger.debug("Rate limit check passed for %s on %s (%d/%d)", client_id, endpoint, count + 1, limit)
        return RateLimitDecision(
            limited=False,
            current_requests=count,
            max_requests=limit,
            remaining=max(limit - count - 1, 0),
            window_seconds=window,
            retry_after=0,
            reset_at=now_ts + window,
        )

    async def prune(self, retention_seconds: int, now: int | None = None) -> int:
        """Drop log rows older than the retention period."""
        now_ts = int(self.clock()) if now is None else int(now)
        removed = await self.store.prune(now_ts - retention_seconds)
        logger.info("Pruned %d rate limit log entries", removed)
        return removed

    def _on_storage_fault(
        self,
        exc: PersistenceError,
        client_id: str,
        endpoint: str,
        window: int,
        limit: int,
        now_ts: int,
    ) -> RateLimitDecision:
        if not self.fail_open:
            logger.error("Rate limit storage unavailable for %s on %s: %s", client_id, endpoint, exc.message)
            raise exc
        logger.warning("Rate limit storage unavailable for %s on %s, failing open: %s", client_id, endpoint, exc.message)
        return RateLimitDecision(
            limited=False,
            current_requests=0,
            max_requests=limit,
            remaining=limit,
            window_seconds=window,
            retry_after=0,
            reset_at=now_ts + window,
        )


def _validate(client_id: str, endpoint: str, window: int, limit: int) -> None:
    if not client_id or not client_id.strip():
        raise ValidationError("client_id is required")
    if not endpoint or not endpoint.strip():
        raise ValidationError("endpoint is required")
    if window <= 0:
        raise ValidationError("window_seconds must be positive", details={"window_seconds": window})
    if limit <= 0:
        raise ValidationError("max_requests must be positive", details={"max_requests": limit})


def _retry_after(oldest: int | None, window: int, now_ts: int) -> int:
    """Seconds until the oldest counted request leaves the window, within [1, window]."""
    if oldest is None:
        return window
    return min(max(oldest + window - now_ts, 1), window)
