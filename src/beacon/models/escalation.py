"""Pydantic models for escalation rules and history."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from beacon.models.enums import EscalationOutcome, NotificationPriority


class EscalationStep(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: str = Field(..., min_length=1, max_length=50)
    after_hours: float = Field(0, ge=0)
    user_id: str | None = None


class EscalationRuleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    active: bool = True
    entity_type: str = Field(..., min_length=1, max_length=100)
    trigger_event: str = Field(..., min_length=1, max_length=100)
    delay_hours: float = Field(0, ge=0)
    escalation_chain: list[EscalationStep] = Field(..., min_length=1)
    conditions: dict | None = None
    base_priority: NotificationPriority = NotificationPriority.NORMAL


class EscalationRuleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    active: bool | None = None
    delay_hours: float | None = Field(None, ge=0)
    escalation_chain: list[EscalationStep] | None = Field(None, min_length=1)
    conditions: dict | None = None
    base_priority: NotificationPriority | None = None


class EscalationRule(EscalationRuleCreate):
    model_config = ConfigDict(from_attributes=True)

    rule_id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EscalationHistory(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    history_id: str
    notification_id: str
    escalated_notification_id: str | None = None
    rule_id: str | None = None
    from_user_id: str | None = None
    to_user_id: str | None = None
    escalation_level: int
    outcome: EscalationOutcome
    reason: str
    created_at: datetime | None = None


class EscalationRunResult(BaseModel):
    evaluated: int = 0
    escalated: int = 0
    failed: int = 0
