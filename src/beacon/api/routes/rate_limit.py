"""Rate limit check endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from beacon.dependencies import Principal, RateLimiter
from beacon.models.rate_limit import RateLimitCheckRequest, RateLimitDecision

router = APIRouter(tags=["Rate Limiting"])


def client_identity(request: Request, body: RateLimitCheckRequest, principal: dict) -> tuple[str, str | None]:
    """Return (client_id, ip_address).

    Precedence: authenticated user, then the body userId, then the network
    address (first X-Forwarded-For hop, CF-Connecting-IP, socket peer). An
    authenticated caller cannot pick another identity through the body.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    ip_address = (
        forwarded.split(",")[0].strip()
        or request.headers.get("cf-connecting-ip", "").strip()
        or (request.client.host if request.client else "")
        or None
    )
    sub = principal.get("sub")
    if sub and sub != "anonymous" and not sub.startswith("api_key:"):
        return sub, ip_address
    if body.user_id:
        return body.user_id, ip_address
    return ip_address or "unknown", ip_address


def _headers(decision: RateLimitDecision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.max_requests),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }
    if decision.limited:
        headers["Retry-After"] = str(decision.retry_after)
    return headers


@router.post("/rate-limit/check")
async def check_rate_limit(
    body: RateLimitCheckRequest,
    request: Request,
    limiter: RateLimiter,
    principal: Principal,
) -> JSONResponse:
    client_id, ip_address = client_identity(request, body, principal)
    decision = await limiter.check(
        client_id,
        body.endpoint,
        ip_address=ip_address,
        user_id=body.user_id,
    )
    payload = decision.model_dump(mode="json")
    if decision.limited:
        content = {
            "error": "Rate limit exceeded",
            "message": f"Too many requests. Try again in {decision.retry_after} seconds.",
            **payload,
        }
        return JSONResponse(status_code=429, content=content, headers=_headers(decision))
    return JSONResponse(status_code=200, content={"success": True, **payload}, headers=_headers(decision))
