"""Delivery queue tests.

Covers: sending due items, notification status advance on first success,
retry with attempt counting, per-channel failure at max_attempts, whole
notification failure, HTTP senders against a mock transport, email
rendering, sender exceptions and per-user digest emails.
"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from beacon.db.models.directory import DirectoryUserRow
from beacon.db.models.notification import NotificationRow
from beacon.models.enums import NotificationChannel, NotificationType
from beacon.models.notification import NotificationCreate
from beacon.models.preferences import NotificationPreferencesUpdate
from beacon.repositories.delivery_repo import NotificationQueueRepository
from beacon.repositories.directory_repo import DirectoryUserRepository
from beacon.services.delivery import (
    DeliveryService,
    InAppSender,
    PushGatewaySender,
    ResendEmailSender,
    SmsGatewaySender,
)
from beacon.services.digest import digest_sections
from beacon.services.email_renderer import render_digest_summary, render_email

T0 = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def delivery(db_session, fake_senders, notification_service):
    return DeliveryService(db_session, fake_senders, notification_service)


async def _create(notification_service, **overrides):
    values = {
        "user_id": "u1",
        "title": "Approve leave request",
        "message": "Ann requested three days off.",
        "type": NotificationType.APPROVAL,
    }
    values.update(overrides)
    return await notification_service.create(NotificationCreate(**values), now=T0)


async def _items(db_session, notification_id):
    items = await NotificationQueueRepository(db_session).list_for_notification(notification_id)
    return {i.channel: i for i in items}


@pytest.mark.asyncio
async def test_due_items_sent_and_notification_advances(delivery, notification_service, fake_senders, db_session):
    row = await _create(notification_service)
    result = await delivery.process_queue(T0, limit=10)

    assert (result.processed, result.sent, result.failed, result.retried) == (3, 3, 0, 0)
    items = await _items(db_session, row.notification_id)
    assert {c: i.status for c, i in items.items()} == {"email": "sent", "sms": "sent", "push": "sent"}
    assert fake_senders[NotificationChannel.EMAIL].sent == [row.notification_id]

    refreshed = await notification_service.get(row.notification_id)
    assert refreshed.status == "sent"
    assert refreshed.sent_at is not None


@pytest.mark.asyncio
async def test_deferred_items_wait_for_schedule(delivery, notification_service):
    await notification_service.update_preferences("u1", NotificationPreferencesUpdate(digest_frequency="hourly"))
    await _create(notification_service, type=NotificationType.REMINDER)

    assert (await delivery.process_queue(T0)).processed == 0
    assert (await delivery.process_queue(T0 + timedelta(hours=1))).processed == 1


@pytest.mark.asyncio
async def test_failed_channel_retried_then_marked_failed(delivery, notification_service, fake_senders, db_session):
    fake_senders[NotificationChannel.SMS].failures = 10
    row = await _create(notification_service)

    first = await delivery.process_queue(T0)
    assert (first.sent, first.retried) == (2, 1)
    sms = (await _items(db_session, row.notification_id))["sms"]
    assert (sms.status, sms.attempts, sms.error_message) == ("queued", 1, "provider down")

    # Not due again until the backoff has passed
    assert (await delivery.process_queue(T0 + timedelta(minutes=1))).processed == 0

    await delivery.process_queue(T0 + timedelta(hours=1))
    final = await delivery.process_queue(T0 + timedelta(hours=2))
    assert final.failed == 1
    sms = (await _items(db_session, row.notification_id))["sms"]
    assert (sms.status, sms.attempts) == ("failed", 3)

    # Partial delivery: other channels went out, notification stays sent
    assert (await notification_service.get(row.notification_id)).status == "sent"


@pytest.mark.asyncio
async def test_notification_fails_when_every_channel_fails(delivery, notification_service, fake_senders):
    await notification_service.update_preferences(
        "u1", NotificationPreferencesUpdate(priority_channels={"urgent": ["email"]})
    )
    fake_senders[NotificationChannel.EMAIL].failures = 10
    row = await _create(notification_service)
    assert row.channels == ["email"]

    for hours in (0, 1, 2):
        await delivery.process_queue(T0 + timedelta(hours=hours))
    assert (await notification_service.get(row.notification_id)).status == "failed"


@pytest.mark.asyncio
async def test_items_of_closed_notifications_are_dropped(delivery, notification_service, fake_senders):
    row = await _create(notification_service)
    await notification_service.mark_acted(row.notification_id, now=T0)
    result = await delivery.process_queue(T0)
    assert result.failed == 3
    assert fake_senders[NotificationChannel.EMAIL].sent == []


def _notification(**overrides) -> NotificationRow:
    values = dict(
        notification_id="ntf_1",
        user_id="u1",
        title="Approve <leave>",
        message="First paragraph.\n\nSecond paragraph.",
        type="approval",
        priority="urgent",
        priority_score=75,
        channels=["email"],
        status="pending",
        is_digest=False,
        escalation_level=0,
        actions=[{"label": "Approve", "action": "approve", "url": "https://app.example/approve"}],
        deep_link="https://app.example/leave/1",
    )
    values.update(overrides)
    return NotificationRow(**values)


def _recipient(**overrides) -> DirectoryUserRow:
    values = dict(
        user_id="u1",
        display_name="Ann",
        email="ann@example.com",
        phone="+31600000000",
        role="medewerker",
        push_endpoint="https://push.example/sub/1",
        active=True,
    )
    values.update(overrides)
    return DirectoryUserRow(**values)


def test_render_email_escapes_and_includes_actions():
    subject, html = render_email(_notification(), _recipient())
    assert subject == "[URGENT] Approve <leave>"
    assert "Approve &lt;leave&gt;" in html
    assert "Hello Ann" in html
    assert "<p>Second paragraph.</p>" in html
    assert 'href="https://app.example/approve"' in html


def test_render_digest_email_lists_items():
    row = _notification(
        is_digest=True,
        priority="normal",
        title="2 new updates",
        digest_items=[{"type": "update", "title": "One"}, {"type": "update", "title": "Two", "deep_link": "/two"}],
    )
    subject, html = render_email(row, None)
    assert subject == "2 new updates"
    assert "One" in html
    assert 'href="/two"' in html


@pytest.mark.asyncio
async def test_resend_sender_posts_rendered_email():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "re_123"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        sender = ResendEmailSender("re_key", "Beacon <noreply@example.com>", "https://api.resend.test/emails", client)
        result = await sender.send(_notification(), _recipient())

    assert result.ok is True
    assert result.provider_id == "re_123"
    assert captured["auth"] == "Bearer re_key"
    assert captured["body"]["to"] == ["ann@example.com"]
    assert captured["body"]["subject"] == "[URGENT] Approve <leave>"


@pytest.mark.asyncio
async def test_http_senders_report_provider_errors():
    transport = httpx.MockTransport(lambda request: httpx.Response(502))
    async with httpx.AsyncClient(transport=transport) as client:
        sms = await SmsGatewaySender("https://sms.test/send", "tok", client).send(_notification(), _recipient())
        push = await PushGatewaySender("https://push.test/send", client).send(_notification(), _recipient())
    assert (sms.ok, sms.error) == (False, "HTTP 502")
    assert (push.ok, push.error) == (False, "HTTP 502")


@pytest.mark.asyncio
async def test_unconfigured_or_unreachable_providers_fail_softly():
    assert (await ResendEmailSender("", "x", "https://api").send(_notification(), _recipient())).ok is False
    assert (await SmsGatewaySender("").send(_notification(), _recipient())).ok is False

    def refuse(request):
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as client:
        result = await PushGatewaySender("https://push.test", client).send(_notification(), _recipient())
    assert result.ok is False
    assert "ConnectError" in result.error

    missing_phone = await SmsGatewaySender("https://sms.test", client=None).send(_notification(), _recipient(phone=None))
    assert missing_phone.ok is False


@pytest.mark.asyncio
async def test_in_app_sender_is_noop():
    assert (await InAppSender().send(_notification(), None)).ok is True


@pytest.mark.asyncio
async def test_directory_contact_details_used(delivery, notification_service, db_session):
    await DirectoryUserRepository(db_session).upsert("u1", role="medewerker", email="ann@example.com")
    await db_session.commit()
    row = await _create(notification_service)
    assert (await delivery.process_queue(T0)).sent == 3
    assert row.user_id == "u1"


@pytest.mark.asyncio
async def test_non_object_json_bodies_carry_no_provider_id():
    responses = iter([
        httpx.Response(200, json=[{"id": "p1"}]),
        httpx.Response(200, content=b"not json", headers={"content-type": "application/json"}),
    ])
    transport = httpx.MockTransport(lambda request: next(responses))
    async with httpx.AsyncClient(transport=transport) as client:
        sender = PushGatewaySender("https://push.test/send", client)
        listed = await sender.send(_notification(), _recipient())
        garbled = await sender.send(_notification(), _recipient())
    assert (listed.ok, listed.provider_id) == (True, None)
    assert (garbled.ok, garbled.provider_id) == (True, None)


class _ExplodingSender:
    channel = NotificationChannel.SMS

    async def send(self, notification, recipient):
        raise RuntimeError("gateway client bug")


@pytest.mark.asyncio
async def test_sender_exception_counts_as_failed_attempt(delivery, notification_service, fake_senders, db_session):
    fake_senders[NotificationChannel.SMS] = _ExplodingSender()
    row = await _create(notification_service)

    result = await delivery.process_queue(T0)
    assert (result.processed, result.sent, result.retried) == (3, 2, 1)
    sms = (await _items(db_session, row.notification_id))["sms"]
    assert (sms.status, sms.attempts) == ("queued", 1)
    assert "RuntimeError" in sms.error_message


async def _digest_reader(notification_service, db_session, frequency="hourly"):
    await DirectoryUserRepository(db_session).upsert(
        "u1", role="medewerker", email="ann@example.com", display_name="Ann"
    )
    await db_session.commit()
    await notification_service.update_preferences("u1", NotificationPreferencesUpdate(digest_frequency=frequency))


@pytest.mark.asyncio
async def test_digest_folds_due_email_items_into_one_send(delivery, notification_service, fake_senders, db_session):
    await _digest_reader(notification_service, db_session)
    first = await _create(notification_service, type=NotificationType.REMINDER, title="Submit timesheet")
    second = await _create(notification_service, type=NotificationType.REMINDER, title="Book training")

    assert (await delivery.send_digests(T0)).users == 0

    later = T0 + timedelta(hours=1)
    result = await delivery.send_digests(later)
    assert (result.users, result.sent, result.failed, result.notifications) == (1, 1, 0, 2)
    email = fake_senders[NotificationChannel.EMAIL]
    assert email.sent == []
    [(user_id, subject, html)] = email.digests
    assert user_id == "u1"
    assert subject == "Your notification digest: 2 new"
    assert "Submit timesheet" in html and "Book training" in html

    for row in (first, second):
        assert (await _items(db_session, row.notification_id))["email"].status == "sent"
        assert (await notification_service.get(row.notification_id)).status == "sent"
    assert (await delivery.process_queue(later)).processed == 0


@pytest.mark.asyncio
async def test_failed_digest_leaves_items_for_regular_delivery(delivery, notification_service, fake_senders, db_session):
    await _digest_reader(notification_service, db_session)
    await _create(notification_service, type=NotificationType.REMINDER)
    await _create(notification_service, type=NotificationType.REMINDER)
    fake_senders[NotificationChannel.EMAIL].failures = 1

    later = T0 + timedelta(hours=1)
    result = await delivery.send_digests(later)
    assert (result.users, result.sent, result.failed) == (1, 0, 1)
    assert (await delivery.process_queue(later)).sent == 2


@pytest.mark.asyncio
async def test_single_item_and_instant_readers_skip_digest(delivery, notification_service, fake_senders, db_session):
    await _digest_reader(notification_service, db_session)
    await _create(notification_service, type=NotificationType.REMINDER)
    await _create(notification_service, user_id="u2", type=NotificationType.REMINDER)
    await _create(notification_service, user_id="u2", type=NotificationType.REMINDER)

    result = await delivery.send_digests(T0 + timedelta(hours=1))
    assert result.users == 0
    assert fake_senders[NotificationChannel.EMAIL].digests == []


def test_render_digest_summary_sections_by_priority():
    rows = [
        _notification(notification_id="n1", priority="low", priority_score=10, title="Newsletter"),
        _notification(notification_id="n2", priority="urgent", priority_score=80, title="Sign <contract>"),
    ]
    subject, html = render_digest_summary(digest_sections(rows), _recipient())
    assert subject == "Your notification digest: 2 new"
    assert html.index("Urgent (1)") < html.index("For your information (1)")
    assert "Sign &lt;contract&gt;" in html
    assert "Hello Ann" in html
