"""Digest batching and the layout of digest emails."""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from beacon.models.enums import (
    DigestFrequency,
    NotificationPriority,
    NotificationType,
)
from beacon.models.notification import DigestItem, NotificationCreate
from beacon.services.priority_scorer import group_by_priority

DIGEST_SEND_HOUR = 9

TYPE_DISPLAY_NAMES: dict[NotificationType, str] = {
    NotificationType.DEADLINE: "deadlines",
    NotificationType.APPROVAL: "approval requests",
    NotificationType.UPDATE: "updates",
    NotificationType.REMINDER: "reminders",
    NotificationType.ESCALATION: "escalations",
    NotificationType.DIGEST: "digests",
}

SECTION_TITLES: dict[NotificationPriority, str] = {
    NotificationPriority.CRITICAL: "Action required",
    NotificationPriority.URGENT: "Urgent",
    NotificationPriority.HIGH: "Important",
    NotificationPriority.NORMAL: "Updates",
    NotificationPriority.LOW: "For your information",
}


@dataclass
class NotificationGroup:
    user_id: str
    type: NotificationType
    notifications: list[NotificationCreate] = field(default_factory=list)


def group_similar(notifications: list[NotificationCreate]) -> list[NotificationGroup]:
    """Group by (user_id, type), preserving first-seen order."""
    groups: OrderedDict[tuple[str, NotificationType], NotificationGroup] = OrderedDict()
    for params in notifications:
        key = (params.user_id, params.type)
        if key not in groups:
            groups[key] = NotificationGroup(user_id=params.user_id, type=params.type)
        groups[key].notifications.append(params)
    return list(groups.values())


def digest_title(group: NotificationGroup) -> str:
    return f"{len(group.notifications)} new {TYPE_DISPLAY_NAMES.get(group.type, group.type.value)}"


def digest_message(group: NotificationGroup) -> str:
    return "\n".join(f"• {n.title}" for n in group.notifications)


def digest_items(group: NotificationGroup) -> list[DigestItem]:
    return [
        DigestItem(type=n.type, title=n.title, count=1, deep_link=n.deep_link)
        for n in group.notifications
    ]


def batch_type(priority: NotificationPriority | str) -> DigestFrequency:
    priority = NotificationPriority(priority)
    if priority == NotificationPriority.CRITICAL:
        return DigestFrequency.INSTANT
    if priority in (NotificationPriority.URGENT, NotificationPriority.HIGH):
        return DigestFrequency.HOURLY
    if priority == NotificationPriority.LOW:
        return DigestFrequency.WEEKLY
    return DigestFrequency.DAILY


def scheduled_send(frequency: DigestFrequency | str, now: datetime) -> datetime:
    frequency = DigestFrequency(frequency)
    if frequency == DigestFrequency.HOURLY:
        return now + timedelta(hours=1)
    if frequency == DigestFrequency.DAILY:
        tomorrow = now + timedelta(days=1)
        return tomorrow.replace(hour=DIGEST_SEND_HOUR, minute=0, second=0, microsecond=0)
    if frequency == DigestFrequency.WEEKLY:
        days_ahead = (7 - now.weekday()) % 7 or 7
        monday = now + timedelta(days=days_ahead)
        return monday.replace(hour=DIGEST_SEND_HOUR, minute=0, second=0, microsecond=0)
    return now


def should_batch(priority: NotificationPriority | str, frequency: DigestFrequency | str) -> bool:
    if NotificationPriority(priority) == NotificationPriority.CRITICAL:
        return False
    return DigestFrequency(frequency) != DigestFrequency.INSTANT


def digest_sections(notifications: list) -> list[dict]:
    """Non-empty priority sections, most urgent first."""
    sections = []
    for priority, items in group_by_priority(notifications).items():
        if items:
            sections.append({"priority": priority.value, "title": SECTION_TITLES[priority], "items": items})
    return sections
