"""Pydantic models for per-user notification preferences."""

from pydantic import BaseModel, ConfigDict, Field

from beacon.models.enums import (
    DigestFrequency,
    NotificationChannel,
    NotificationPriority,
    NotificationType,
)

_HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"

_ALL = [
    NotificationChannel.IN_APP,
    NotificationChannel.EMAIL,
    NotificationChannel.SMS,
    NotificationChannel.PUSH,
]


def default_type_channels() -> dict[NotificationType, list[NotificationChannel]]:
    return {
        NotificationType.DEADLINE: [NotificationChannel.IN_APP, NotificationChannel.EMAIL],
        NotificationType.APPROVAL: [
            NotificationChannel.IN_APP,
            NotificationChannel.EMAIL,
            NotificationChannel.PUSH,
        ],
        NotificationType.UPDATE: [NotificationChannel.IN_APP],
        NotificationType.REMINDER: [NotificationChannel.IN_APP, NotificationChannel.EMAIL],
        NotificationType.ESCALATION: list(_ALL),
    }


def default_priority_channels() -> dict[NotificationPriority, list[NotificationChannel]]:
    return {
        NotificationPriority.CRITICAL: list(_ALL),
        NotificationPriority.URGENT: list(_ALL),
        NotificationPriority.HIGH: [
            NotificationChannel.IN_APP,
            NotificationChannel.EMAIL,
            NotificationChannel.PUSH,
        ],
        NotificationPriority.NORMAL: [NotificationChannel.IN_APP, NotificationChannel.EMAIL],
        NotificationPriority.LOW: [NotificationChannel.IN_APP],
    }


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(..., min_length=1, max_length=200)
    digest_frequency: DigestFrequency = DigestFrequency.INSTANT
    quiet_hours_start: str = Field("20:00", pattern=_HHMM)
    quiet_hours_end: str = Field("08:00", pattern=_HHMM)
    weekend_mode: bool = False
    vacation_mode: bool = False
    vacation_delegate: str | None = None
    type_channels: dict[NotificationType, list[NotificationChannel]] = Field(
        default_factory=default_type_channels
    )
    priority_channels: dict[NotificationPriority, list[NotificationChannel]] = Field(
        default_factory=default_priority_channels
    )


class NotificationPreferencesUpdate(BaseModel):
    """Upsert body; omitted fields keep their stored (or default) value."""

    model_config = ConfigDict(extra="forbid")

    digest_frequency: DigestFrequency | None = None
    quiet_hours_start: str | None = Field(None, pattern=_HHMM)
    quiet_hours_end: str | None = Field(None, pattern=_HHMM)
    weekend_mode: bool | None = None
    vacation_mode: bool | None = None
    vacation_delegate: str | None = None
    type_channels: dict[NotificationType, list[NotificationChannel]] | None = None
    priority_channels: dict[NotificationPriority, list[NotificationChannel]] | None = None
