"""Digest batching tests.

Covers: grouping by recipient and type, digest titles, batch types per
priority, scheduled send times, priority sections.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

from beacon.models.enums import DigestFrequency, NotificationPriority, NotificationType
from beacon.models.notification import NotificationCreate
from beacon.services import digest

WEDNESDAY = datetime(2025, 3, 12, 15, 20, tzinfo=timezone.utc)


def _params(user_id, type_, title):
    return NotificationCreate(user_id=user_id, title=title, message=title, type=type_)


def test_group_similar_preserves_first_seen_order():
    groups = digest.group_similar([
        _params("u1", NotificationType.UPDATE, "a"),
        _params("u2", NotificationType.UPDATE, "b"),
        _params("u1", NotificationType.UPDATE, "c"),
        _params("u1", NotificationType.REMINDER, "d"),
    ])
    assert [(g.user_id, g.type, [n.title for n in g.notifications]) for g in groups] == [
        ("u1", NotificationType.UPDATE, ["a", "c"]),
        ("u2", NotificationType.UPDATE, ["b"]),
        ("u1", NotificationType.REMINDER, ["d"]),
    ]


def test_digest_title_message_and_items():
    group = digest.group_similar([
        _params("u1", NotificationType.APPROVAL, "Leave request Ann"),
        _params("u1", NotificationType.APPROVAL, "Leave request Bob"),
    ])[0]
    assert digest.digest_title(group) == "2 new approval requests"
    assert digest.digest_message(group) == "• Leave request Ann\n• Leave request Bob"
    assert [i.title for i in digest.digest_items(group)] == ["Leave request Ann", "Leave request Bob"]


def test_batch_type_per_priority():
    assert digest.batch_type(NotificationPriority.CRITICAL) == DigestFrequency.INSTANT
    assert digest.batch_type(NotificationPriority.URGENT) == DigestFrequency.HOURLY
    assert digest.batch_type(NotificationPriority.HIGH) == DigestFrequency.HOURLY
    assert digest.batch_type(NotificationPriority.NORMAL) == DigestFrequency.DAILY
    assert digest.batch_type(NotificationPriority.LOW) == DigestFrequency.WEEKLY


def test_scheduled_send():
    assert digest.scheduled_send(DigestFrequency.INSTANT, WEDNESDAY) == WEDNESDAY
    assert digest.scheduled_send(DigestFrequency.HOURLY, WEDNESDAY) == datetime(2025, 3, 12, 16, 20, tzinfo=timezone.utc)
    assert digest.scheduled_send(DigestFrequency.DAILY, WEDNESDAY) == datetime(2025, 3, 13, 9, 0, tzinfo=timezone.utc)
    assert digest.scheduled_send(DigestFrequency.WEEKLY, WEDNESDAY) == datetime(2025, 3, 17, 9, 0, tzinfo=timezone.utc)


def test_weekly_from_monday_goes_to_next_monday():
    monday = datetime(2025, 3, 17, 8, 0, tzinfo=timezone.utc)
    assert digest.scheduled_send(DigestFrequency.WEEKLY, monday) == datetime(2025, 3, 24, 9, 0, tzinfo=timezone.utc)


def test_should_batch_never_holds_critical():
    assert digest.should_batch(NotificationPriority.CRITICAL, DigestFrequency.DAILY) is False
    assert digest.should_batch(NotificationPriority.NORMAL, DigestFrequency.INSTANT) is False
    assert digest.should_batch(NotificationPriority.NORMAL, DigestFrequency.DAILY) is True


def test_digest_sections_most_urgent_first_and_skip_empty():
    items = [
        SimpleNamespace(priority="low", title="x"),
        SimpleNamespace(priority="critical", title="y"),
        SimpleNamespace(priority="low", title="z"),
    ]
    sections = digest.digest_sections(items)
    assert [s["priority"] for s in sections] == ["critical", "low"]
    assert [i.title for i in sections[1]["items"]] == ["x", "z"]
