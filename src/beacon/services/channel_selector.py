"""Route a notification to delivery channels based on recipient preferences."""

from datetime import datetime
from zoneinfo import ZoneInfo

from beacon.models.enums import NotificationChannel, NotificationPriority, NotificationType
from beacon.models.preferences import NotificationPreferences
from beacon.services.clock import as_utc

_CHANNEL_ORDER = (
    NotificationChannel.IN_APP,
    NotificationChannel.EMAIL,
    NotificationChannel.SMS,
    NotificationChannel.PUSH,
)
IN_APP_ONLY = [NotificationChannel.IN_APP]


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def _local(now: datetime, tz: str) -> datetime:
    return as_utc(now).astimezone(ZoneInfo(tz))


def is_quiet_hours(prefs: NotificationPreferences, now: datetime, tz: str = "UTC") -> bool:
    """True when ``now`` falls in the quiet window; the window may span midnight."""
    start = _minutes(prefs.quiet_hours_start)
    end = _minutes(prefs.quiet_hours_end)
    if start == end:
        return False
    local = _local(now, tz)
    current = local.hour * 60 + local.minute
    if start < end:
        return start <= current < end
    return current >= start or current < end


def is_weekend(now: datetime, tz: str = "UTC") -> bool:
    return _local(now, tz).weekday() >= 5


def _normalise(channels: list[NotificationChannel] | None) -> list[NotificationChannel]:
    wanted = {NotificationChannel(c) for c in channels or []}
    resolved = [c for c in _CHANNEL_ORDER if c in wanted]
    return resolved or list(IN_APP_ONLY)


def select_channels(
    notification_type: NotificationType,
    priority: NotificationPriority,
    prefs: NotificationPreferences,
    now: datetime,
    tz: str = "UTC",
) -> list[NotificationChannel]:
    """Pick the channels for one notification.

    Critical notifications always use the critical routing table. Quiet
    hours and weekend mode hold everything else to in-app. Urgent and high
    priorities use their priority table, the rest route by type. An empty
    table degrades to in-app only.
    """
    notification_type = NotificationType(notification_type)
    priority = NotificationPriority(priority)

    if priority == NotificationPriority.CRITICAL:
        return _normalise(prefs.priority_channels.get(priority))

    if is_quiet_hours(prefs, now, tz):
        return list(IN_APP_ONLY)

    if prefs.weekend_mode and is_weekend(now, tz):
        return list(IN_APP_ONLY)

    if priority in (NotificationPriority.URGENT, NotificationPriority.HIGH):
        return _normalise(prefs.priority_channels.get(priority))

    if notification_type in prefs.type_channels:
        return _normalise(prefs.type_channels[notification_type])

    return _normalise(prefs.priority_channels.get(priority))
