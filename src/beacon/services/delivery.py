"""Per-channel delivery of queued notifications.

Each non-in-app channel of a notification gets its own queue item. A
failed send is retried on later runs until ``max_attempts``; then only
that channel is marked failed. The notification itself fails only when
every channel it was routed to has failed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.config import Settings
from beacon.db.models.delivery import NotificationQueueRow
from beacon.db.models.directory import DirectoryUserRow
from beacon.db.models.notification import NotificationRow
from beacon.errors.exceptions import PersistenceError
from beacon.models.delivery import DeliveryRunResult, DigestRunResult
from beacon.models.enums import (
    DigestFrequency,
    NotificationChannel,
    NotificationStatus,
    QueueItemStatus,
    TERMINAL_STATUSES,
)
from beacon.repositories.delivery_repo import NotificationQueueRepository
from beacon.repositories.directory_repo import DirectoryUserRepository
from beacon.repositories.notification_repo import NotificationRepository
from beacon.services import digest, priority_scorer
from beacon.services.email_renderer import render_digest_summary, render_email
from beacon.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

RETRY_BACKOFF = timedelta(minutes=5)
SMS_MAX_LENGTH = 160


@dataclass
class SendResult:
    ok: bool
    error: str | None = None
    provider_id: str | None = None


class ChannelSender(Protocol):
    channel: NotificationChannel

    async def send(self, notification: NotificationRow, recipient: DirectoryUserRow | None) -> SendResult: ...


class InAppSender:
    """In-app notifications are the stored row itself; nothing to send."""

    channel = NotificationChannel.IN_APP

    async def send(self, notification, recipient) -> SendResult:
        return SendResult(ok=True)


def _provider_id(resp: httpx.Response) -> str | None:
    """Message id from a JSON object body; anything else carries no id."""
    if not resp.headers.get("content-type", "").startswith("application/json"):
        return None
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("id") is not None:
        return str(body["id"])
    return None


class _HttpSender:
    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._client = client
        self._timeout = timeout

    async def _post(self, url: str, payload: dict, headers: dict | None = None) -> SendResult:
        try:
            if self._client is not None:
                resp = await self._client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            return SendResult(ok=False, error=f"{type(exc).__name__}: {exc}")
        if resp.status_code >= 300:
            return SendResult(ok=False, error=f"HTTP {resp.status_code}")
        return SendResult(ok=True, provider_id=_provider_id(resp))


class ResendEmailSender(_HttpSender):
    """Email through the Resend HTTP API."""

    channel = NotificationChannel.EMAIL

    def __init__(self, api_key: str, sender: str, api_url: str, client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url

    async def send(self, notification, recipient) -> SendResult:
        if recipient is None or not recipient.email:
            return SendResult(ok=False, error=f"No email address for {notification.user_id}")
        subject, html = render_email(notification, recipient)
        return await self.send_html(recipient, subject, html)

    async def send_html(self, recipient: DirectoryUserRow | None, subject: str, html: str) -> SendResult:
        if not self.api_key:
            return SendResult(ok=False, error="Email provider not configured")
        if recipient is None or not recipient.email:
            return SendResult(ok=False, error="No email address for recipient")
        return await self._post(
            self.api_url,
            {"from": self.sender, "to": [recipient.email], "subject": subject, "html": html},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )


class SmsGatewaySender(_HttpSender):
    channel = NotificationChannel.SMS

    def __init__(self, gateway_url: str, token: str = "", client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.gateway_url = gateway_url
        self.token = token

    async def send(self, notification, recipient) -> SendResult:
        if not self.gateway_url:
            return SendResult(ok=False, error="SMS gateway not configured")
        if recipient is None or not recipient.phone:
            return SendResult(ok=False, error=f"No phone number for {notification.user_id}")
        body = f"{notification.title}: {notification.message}"[:SMS_MAX_LENGTH]
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else None
        return await self._post(self.gateway_url, {"to": recipient.phone, "body": body}, headers=headers)


class PushGatewaySender(_HttpSender):
    channel = NotificationChannel.PUSH

    def __init__(self, gateway_url: str, client: httpx.AsyncClient | None = None):
        super().__init__(client)
        self.gateway_url = gateway_url

    async def send(self, notification, recipient) -> SendResult:
        if not self.gateway_url:
            return SendResult(ok=False, error="Push gateway not configured")
        if recipient is None or not recipient.push_endpoint:
            return SendResult(ok=False, error=f"No push subscription for {notification.user_id}")
        return await self._post(
            self.gateway_url,
            {
                "endpoint": recipient.push_endpoint,
                "title": notification.title,
                "body": notification.message,
                "url": notification.deep_link,
                "priority": notification.priority,
            },
        )


def build_senders(settings: Settings, client: httpx.AsyncClient | None = None) -> dict[NotificationChannel, ChannelSender]:
    return {
        NotificationChannel.IN_APP: InAppSender(),
        NotificationChannel.EMAIL: ResendEmailSender(
            settings.resend_api_key, settings.email_from, settings.resend_api_url, client
        ),
        NotificationChannel.SMS: SmsGatewaySender(settings.sms_gateway_url, settings.sms_gateway_token, client),
        NotificationChannel.PUSH: PushGatewaySender(settings.push_gateway_url, client),
    }


class DeliveryService:
    def __init__(
        self,
        session: AsyncSession,
        senders: dict[NotificationChannel, ChannelSender],
        notifications: NotificationService,
    ):
        self.session = session
        self.senders = senders
        self.notifications = notifications
        self.queue = NotificationQueueRepository(session)
        self.rows = NotificationRepository(session)
        self.directory = DirectoryUserRepository(session)

    async def process_queue(self, now: datetime, limit: int = 100) -> DeliveryRunResult:
        """Send every queued item that is due, committing after each one."""
        result = DeliveryRunResult()
        try:
            items = await self.queue.list_due(now, limit)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read delivery queue") from exc

        for item in items:
            result.processed += 1
            status = await self._deliver(item, now)
            if status == QueueItemStatus.SENT:
                result.sent += 1
            elif status == QueueItemStatus.FAILED:
                result.failed += 1
            else:
                result.retried += 1
            try:
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self.session.rollback()
                raise PersistenceError("Failed to record delivery outcome") from exc

        logger.info(
            "Delivery run: processed=%d sent=%d failed=%d retried=%d",
            result.processed, result.sent, result.failed, result.retried,
        )
        return result

    async def send_digests(self, now: datetime, limit: int = 500) -> DigestRunResult:
        """Fold the due email items of each digest reader into one summary email.

        Runs before ``process_queue``. Users on instant delivery, users with a
        single due item and instant-priority notifications are left to the
        per-item run, as are the items of a digest whose send failed.
        """
        result = DigestRunResult()
        sender = self.senders.get(NotificationChannel.EMAIL)
        if sender is None or not hasattr(sender, "send_html"):
            logger.warning("No digest-capable email sender configured; skipping digests")
            return result

        try:
            items = await self.queue.list_due_for_channel(NotificationChannel.EMAIL.value, now, limit)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read delivery queue") from exc

        per_user: dict[str, list[tuple[NotificationQueueRow, NotificationRow]]] = {}
        for item in items:
            notification = await self.rows.get(item.notification_id)
            if notification is None or notification.is_digest or notification.status in TERMINAL_STATUSES:
                continue
            if digest.batch_type(notification.priority) == DigestFrequency.INSTANT:
                continue
            per_user.setdefault(notification.user_id, []).append((item, notification))

        for user_id, entries in per_user.items():
            prefs = await self.notifications.get_preferences(user_id)
            if prefs.digest_frequency == DigestFrequency.INSTANT or len(entries) < 2:
                continue
            result.users += 1
            recipient = await self.directory.get(user_id)
            ordered = priority_scorer.sort_by_priority(n for _, n in entries)
            subject, html = render_digest_summary(digest.digest_sections(ordered), recipient)
            try:
                outcome = await sender.send_html(recipient, subject, html)
            except Exception as exc:
                logger.exception("Digest sender raised for %s", user_id)
                outcome = SendResult(ok=False, error=f"{type(exc).__name__}: {exc}")
            if not outcome.ok:
                result.failed += 1
                logger.warning("Digest for %s not sent: %s", user_id, outcome.error)
                continue

            for item, notification in entries:
                await self.queue.update(
                    item, status=QueueItemStatus.SENT.value, attempts=item.attempts + 1, processed_at=now
                )
                if notification.status == NotificationStatus.PENDING:
                    await self.notifications.transition(
                        notification.notification_id, NotificationStatus.SENT, now, commit=False
                    )
            try:
                await self.session.commit()
            except SQLAlchemyError as exc:
                await self.session.rollback()
                raise PersistenceError("Failed to record digest delivery") from exc
            result.sent += 1
            result.notifications += len(entries)
            logger.info("Digest of %d notifications sent to %s", len(entries), user_id)

        logger.info(
            "Digest run: users=%d sent=%d failed=%d notifications=%d",
            result.users, result.sent, result.failed, result.notifications,
        )
        return result

    async def _deliver(self, item: NotificationQueueRow, now: datetime) -> QueueItemStatus:
        notification = await self.rows.get(item.notification_id)
        if notification is None or notification.status in TERMINAL_STATUSES:
            await self.queue.update(
                item,
                status=QueueItemStatus.FAILED.value,
                error_message="Notification missing or closed",
                processed_at=now,
            )
            return QueueItemStatus.FAILED

        sender = self.senders.get(NotificationChannel(item.channel))
        if sender is None:
            outcome = SendResult(ok=False, error=f"No sender for channel {item.channel}")
        else:
            recipient = await self.directory.get(notification.user_id)
            try:
                outcome = await sender.send(notification, recipient)
            except Exception as exc:
                logger.exception("Sender for %s raised", item.channel)
                outcome = SendResult(ok=False, error=f"{type(exc).__name__}: {exc}")

        attempts = item.attempts + 1
        if outcome.ok:
            await self.queue.update(item, status=QueueItemStatus.SENT.value, attempts=attempts, processed_at=now)
            if notification.status == NotificationStatus.PENDING:
                await self.notifications.transition(
                    notification.notification_id, NotificationStatus.SENT, now, commit=False
                )
            logger.info("Delivered %s via %s", notification.notification_id, item.channel)
            return QueueItemStatus.SENT

        logger.warning(
            "Delivery of %s via %s failed (attempt %d/%d): %s",
            notification.notification_id, item.channel, attempts, item.max_attempts, outcome.error,
        )
        if attempts < item.max_attempts:
            await self.queue.update(
                item,
                attempts=attempts,
                error_message=outcome.error,
                scheduled_for=now + RETRY_BACKOFF * attempts,
            )
            return QueueItemStatus.QUEUED

        await self.queue.update(
            item,
            status=QueueItemStatus.FAILED.value,
            attempts=attempts,
            error_message=outcome.error,
            processed_at=now,
        )
        await self._fail_if_undeliverable(notification, now)
        return QueueItemStatus.FAILED

    async def _fail_if_undeliverable(self, notification: NotificationRow, now: datetime) -> None:
        if NotificationChannel.IN_APP in notification.channels:
            return
        items = await self.queue.list_for_notification(notification.notification_id)
        if items and all(i.status == QueueItemStatus.FAILED for i in items):
            await self.notifications.transition(
                notification.notification_id, NotificationStatus.FAILED, now, commit=False
            )
