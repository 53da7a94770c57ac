"""Periodic jobs, triggered by an external scheduler."""

from fastapi import APIRouter, Query

from beacon.config import settings
from beacon.dependencies import Deliveries, Escalations, JobRunner, RateLimiter
from beacon.services.clock import utcnow

router = APIRouter(tags=["Jobs"])


@router.post("/jobs/escalations")
async def run_escalations(engine: Escalations, _user: JobRunner) -> dict:
    return (await engine.process_escalations(utcnow())).model_dump(mode="json")


@router.post("/jobs/digests")
async def run_digests(
    service: Deliveries,
    _user: JobRunner,
    limit: int = Query(settings.digest_batch_size, ge=1, le=5000),
) -> dict:
    return (await service.send_digests(utcnow(), limit)).model_dump(mode="json")


@router.post("/jobs/deliveries")
async def run_deliveries(
    service: Deliveries,
    _user: JobRunner,
    limit: int = Query(settings.delivery_batch_size, ge=1, le=1000),
) -> dict:
    return (await service.process_queue(utcnow(), limit)).model_dump(mode="json")


@router.post("/jobs/rate-limit/prune")
async def prune_rate_limit_log(
    limiter: RateLimiter,
    _user: JobRunner,
    retention_seconds: int = Query(settings.rate_limit_retention_seconds, ge=1),
) -> dict:
    removed = await limiter.prune(retention_seconds)
    return {"removed": removed, "retention_seconds": retention_seconds}
