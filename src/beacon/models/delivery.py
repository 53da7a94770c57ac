"""Pydantic models for the delivery queue."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from beacon.models.enums import NotificationChannel, QueueItemStatus


class NotificationQueueItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    queue_item_id: str
    notification_id: str
    channel: NotificationChannel
    status: QueueItemStatus
    attempts: int
    max_attempts: int
    error_message: str | None = None
    scheduled_for: datetime
    processed_at: datetime | None = None


class DeliveryRunResult(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    retried: int = 0


class DigestRunResult(BaseModel):
    users: int = 0
    sent: int = 0
    failed: int = 0
    notifications: int = 0
