"""Pydantic models for rate-limit checks."""

from pydantic import BaseModel, ConfigDict, Field


class RateLimitCheckRequest(BaseModel):
    """Body accepted by POST /rate-limit/check."""

    model_config = ConfigDict(populate_by_name=True)

    endpoint: str = Field(..., min_length=1, max_length=255)
    user_id: str | None = Field(None, alias="userId", max_length=200)


class RateLimitDecision(BaseModel):
    """Outcome of a single sliding-window check."""

    limited: bool
    current_requests: int = Field(..., ge=0)
    max_requests: int = Field(..., gt=0)
    remaining: int = Field(..., ge=0)
    window_seconds: int = Field(..., gt=0)
    retry_after: int = Field(..., ge=0)
    reset_at: int = Field(..., ge=0)
