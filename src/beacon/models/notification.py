"""Pydantic models for notifications, digests and priority scoring."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from beacon.models.enums import (
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)


class NotificationAction(BaseModel):
    model_config = ConfigDict(extra="forbid")

    label: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=50)
    url: str | None = None
    variant: str | None = Field(None, pattern=r"^(default|primary|destructive)$")


class DigestItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: NotificationType
    title: str
    count: int | None = Field(None, ge=1)
    deep_link: str | None = None


class NotificationCreate(BaseModel):
    """Parameters for creating a single notification."""

    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1, max_length=200)
    title: str = Field(..., min_length=1, max_length=500)
    message: str = Field(..., min_length=1)
    type: NotificationType
    metadata: dict[str, Any] = Field(default_factory=dict)
    deadline: datetime | None = None
    actions: list[NotificationAction] = Field(default_factory=list)
    deep_link: str | None = None
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    recipient_role: str | None = None
    expires_at: datetime | None = None
    rule_id: str | None = None


class BatchSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    combine_similar: bool = False
    max_delay_minutes: int | None = Field(None, ge=0)


class BatchNotificationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    notifications: list[NotificationCreate] = Field(..., min_length=1)
    batch_settings: BatchSettings = Field(default_factory=BatchSettings)


class NotificationCreated(BaseModel):
    notification_id: str
    user_id: str
    priority: NotificationPriority
    priority_score: int
    channels: list[NotificationChannel]
    is_digest: bool = False


class Notification(BaseModel):
    """Full notification record as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    notification_id: str
    user_id: str
    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority
    priority_score: int = Field(..., ge=0, le=100)
    metadata: dict[str, Any] | None = Field(None, validation_alias="extra_data")
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    actions: list[NotificationAction] | None = None
    deep_link: str | None = None
    channels: list[NotificationChannel]
    status: NotificationStatus
    scheduled_for: datetime | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    acted_at: datetime | None = None
    expires_at: datetime | None = None
    batch_id: str | None = None
    is_digest: bool = False
    digest_items: list[DigestItem] | None = None
    is_escalated: bool = False
    escalated_from: str | None = None
    escalation_level: int = 0
    root_id: str | None = None
    rule_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NotificationStats(BaseModel):
    total: int
    unread: int
    by_priority: dict[NotificationPriority, int]
    by_type: dict[NotificationType, int]
    recent_24h: int = 0
    fatigue_score: int = Field(0, ge=0, le=100)
    batching: dict = Field(default_factory=dict)


class PriorityScoreFactors(BaseModel):
    """Weighted inputs to the priority score; total is derived, never supplied."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_type_score: int = 0
    deadline_modifier: int = 0
    role_modifier: int = 0
    critical_flag: int = 0
    legal_compliance: int = 0


class PriorityScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = Field(..., ge=0, le=100)
    priority: NotificationPriority
    factors: PriorityScoreFactors
