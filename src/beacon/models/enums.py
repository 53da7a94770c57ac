"""String enums for notification and rate-limit domain values."""

from enum import StrEnum


class NotificationChannel(StrEnum):
    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class NotificationPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"


class NotificationType(StrEnum):
    DEADLINE = "deadline"
    APPROVAL = "approval"
    UPDATE = "update"
    REMINDER = "reminder"
    ESCALATION = "escalation"
    DIGEST = "digest"


class NotificationStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    ACTED = "acted"
    FAILED = "failed"


class DigestFrequency(StrEnum):
    INSTANT = "instant"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"


class QueueItemStatus(StrEnum):
    QUEUED = "queued"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"


class EscalationOutcome(StrEnum):
    ESCALATED = "escalated"
    FAILED = "failed"


class RateLimitBackend(StrEnum):
    DATABASE = "database"
    REDIS = "redis"


# Pipeline order; "failed" sits outside the pipeline and is terminal.
STATUS_PIPELINE: tuple[NotificationStatus, ...] = (
    NotificationStatus.PENDING,
    NotificationStatus.SENT,
    NotificationStatus.DELIVERED,
    NotificationStatus.READ,
    NotificationStatus.ACTED,
)

TERMINAL_STATUSES = frozenset({NotificationStatus.ACTED, NotificationStatus.FAILED})

AWAITING_ACTION_STATUSES = frozenset({
    NotificationStatus.PENDING,
    NotificationStatus.SENT,
    NotificationStatus.DELIVERED,
    NotificationStatus.READ,
})

# Highest band first
PRIORITY_ORDER: tuple[NotificationPriority, ...] = (
    NotificationPriority.CRITICAL,
    NotificationPriority.URGENT,
    NotificationPriority.HIGH,
    NotificationPriority.NORMAL,
    NotificationPriority.LOW,
)
