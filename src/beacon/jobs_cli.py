"""CLI entry point for the periodic jobs, for use from cron."""

import argparse
import asyncio
import json
import logging
import sys

import httpx
import redis.asyncio as aioredis

from beacon.config import settings
from beacon.db.engine import create_all_tables, create_db_engine, create_session_factory
from beacon.errors.exceptions import BeaconError
from beacon.logging_config import bind_job_context, clear_request_context, configure_logging
from beacon.models.enums import RateLimitBackend
from beacon.services.clock import utcnow
from beacon.services.delivery import DeliveryService, build_senders
from beacon.services.escalation_engine import EscalationEngine
from beacon.services.id_generator import JOB_RUN_PREFIX, generate_id
from beacon.services.notification_service import NotificationService
from beacon.services.rate_limiter import DatabaseRequestLog, RedisRequestLog, SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


def _notifications(session) -> NotificationService:
    return NotificationService(
        session, max_attempts=settings.delivery_max_attempts, tz=settings.default_timezone
    )


async def run_job(job: str, limit: int | None = None) -> dict:
    engine = create_db_engine()
    if "sqlite" in settings.effective_database_url:
        await create_all_tables(engine)
    session_factory = create_session_factory(engine)
    try:
        async with session_factory() as session:
            if job == "escalations":
                result = await EscalationEngine(session, _notifications(session)).process_escalations(utcnow())
                return result.model_dump(mode="json")

            if job in ("deliveries", "digests"):
                async with httpx.AsyncClient(timeout=10.0) as client:
                    service = DeliveryService(session, build_senders(settings, client), _notifications(session))
                    if job == "digests":
                        result = await service.send_digests(utcnow(), limit or settings.digest_batch_size)
                    else:
                        result = await service.process_queue(utcnow(), limit or settings.delivery_batch_size)
                return result.model_dump(mode="json")

            redis = None
            if settings.rate_limit_backend == RateLimitBackend.REDIS:
                redis = aioredis.from_url(settings.redis_url, decode_responses=True)
            try:
                store = RedisRequestLog(redis) if redis is not None else DatabaseRequestLog(session)
                removed = await SlidingWindowRateLimiter(store).prune(settings.rate_limit_retention_seconds)
            finally:
                if redis is not None:
                    await redis.aclose()
            return {"removed": removed}
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="beacon-jobs", description="Run a Beacon periodic job once")
    parser.add_argument("job", choices=["escalations", "digests", "deliveries", "prune-rate-limit"])
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum queue items per delivery or digest run",
    )
    args = parser.parse_args(argv)

    configure_logging(log_level=settings.log_level, json_output=not settings.local_mode)
    bind_job_context(args.job, generate_id(JOB_RUN_PREFIX))
    try:
        result = asyncio.run(run_job(args.job, args.limit))
    except BeaconError as exc:
        logger.error("Job %s failed: %s", args.job, exc.message)
        return 1
    finally:
        clear_request_context()
    print(json.dumps(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
