"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from beacon.db.models.rate_limit import RateLimitRequestRow
from beacon.db.models.notification import NotificationRow
from beacon.db.models.preferences import NotificationPreferencesRow
from beacon.db.models.escalation import EscalationHistoryRow, EscalationRuleRow
from beacon.db.models.delivery import NotificationQueueRow
from beacon.db.models.directory import DirectoryUserRow

__all__ = [
    "RateLimitRequestRow",
    "NotificationRow",
    "NotificationPreferencesRow",
    "EscalationRuleRow",
    "EscalationHistoryRow",
    "NotificationQueueRow",
    "DirectoryUserRow",
]
