"""Notification creation, routing, status lifecycle and per-user preferences."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.models.notification import NotificationRow
from beacon.errors.exceptions import ConflictError, NotFoundError, PersistenceError
from beacon.models.enums import (
    STATUS_PIPELINE,
    TERMINAL_STATUSES,
    DigestFrequency,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from beacon.models.notification import (
    BatchNotificationRequest,
    NotificationCreate,
    NotificationCreated,
    NotificationStats,
    PriorityScore,
)
from beacon.models.preferences import NotificationPreferences, NotificationPreferencesUpdate
from beacon.repositories.delivery_repo import NotificationQueueRepository
from beacon.repositories.directory_repo import DirectoryUserRepository
from beacon.repositories.notification_repo import NotificationRepository
from beacon.repositories.preferences_repo import NotificationPreferencesRepository
from beacon.services import digest, priority_scorer
from beacon.services.channel_selector import select_channels
from beacon.services.clock import utcnow
from beacon.services.id_generator import (
    BATCH_PREFIX,
    NOTIFICATION_PREFIX,
    QUEUE_ITEM_PREFIX,
    generate_id,
)

logger = logging.getLogger(__name__)

FATIGUE_WINDOW_HOURS = 24


@dataclass(frozen=True)
class EscalationLink:
    """Lineage fields stamped on a notification created by an escalation step."""

    escalated_from: str
    root_id: str
    rule_id: str | None
    escalation_level: int


def check_transition(current: NotificationStatus | str, target: NotificationStatus | str) -> bool:
    """Validate a status change.

    Returns False when the notification is already in ``target`` (no-op).
    Raises ConflictError for backwards moves or anything after a terminal
    status. Forward skips along the pipeline are allowed, and ``failed`` is
    reachable from every non-terminal status.
    """
    current = NotificationStatus(current)
    target = NotificationStatus(target)
    if current == target:
        return False
    if current in TERMINAL_STATUSES:
        raise ConflictError(
            f"Notification is already {current.value}",
            details={"current": current.value, "requested": target.value},
        )
    if target == NotificationStatus.FAILED:
        return True
    if STATUS_PIPELINE.index(target) < STATUS_PIPELINE.index(current):
        raise ConflictError(
            f"Cannot move notification from {current.value} back to {target.value}",
            details={"current": current.value, "requested": target.value},
        )
    return True


class NotificationService:
    """Creates notifications and drives their status lifecycle.

    Repositories only flush; this service owns the commit. ``commit=False``
    lets a caller (the escalation engine) fold a creation into a larger
    unit of work.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        max_attempts: int = 3,
        tz: str = "UTC",
        now_fn: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.max_attempts = max_attempts
        self.tz = tz
        self.now_fn = now_fn
        self.notifications = NotificationRepository(session)
        self.preferences = NotificationPreferencesRepository(session)
        self.queue = NotificationQueueRepository(session)
        self.directory = DirectoryUserRepository(session)

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Notification commit failed: %s", exc)
            raise PersistenceError("Failed to persist notification") from exc

    # --- preferences ---

    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        row = await self.preferences.get(user_id)
        if row is None:
            return NotificationPreferences(user_id=user_id)
        return NotificationPreferences.model_validate(row)

    async def update_preferences(
        self, user_id: str, update: NotificationPreferencesUpdate
    ) -> NotificationPreferences:
        merged = (await self.get_preferences(user_id)).model_copy(
            update=update.model_dump(exclude_unset=True)
        )
        prefs = NotificationPreferences.model_validate(merged.model_dump())
        values = prefs.model_dump(mode="json", exclude={"user_id"})
        try:
            await self.preferences.upsert(user_id, **values)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("Failed to store preferences") from exc
        await self._commit()
        return prefs

    async def effective_recipient(self, user_id: str) -> tuple[str, NotificationPreferences]:
        """Follow a vacation delegate one hop; delegates are not chained."""
        prefs = await self.get_preferences(user_id)
        if prefs.vacation_mode and prefs.vacation_delegate:
            logger.info("Routing notification for %s to delegate %s", user_id, prefs.vacation_delegate)
            return prefs.vacation_delegate, await self.get_preferences(prefs.vacation_delegate)
        return user_id, prefs

    async def _recipient_role(self, user_id: str, explicit: str | None) -> str | None:
        if explicit:
            return explicit
        entry = await self.directory.get(user_id)
        return entry.role if entry else None

    # --- creation ---

    async def score(self, params: NotificationCreate, now: datetime) -> PriorityScore:
        role = await self._recipient_role(params.user_id, params.recipient_role)
        factors = priority_scorer.factors_for(
            params.type,
            now=now,
            deadline=params.deadline,
            role=role,
            metadata=params.metadata,
        )
        return priority_scorer.score(factors)

    async def create(
        self,
        params: NotificationCreate,
        *,
        now: datetime | None = None,
        escalation: EscalationLink | None = None,
        batch_id: str | None = None,
        digest_items: list | None = None,
        forced_score: PriorityScore | None = None,
        commit: bool = True,
    ) -> NotificationRow:
        now = now or self.now_fn()
        recipient, prefs = await self.effective_recipient(params.user_id)
        scored = forced_score or await self.score(params, now)
        priority = scored.priority
        channels = select_channels(params.type, priority, prefs, now, self.tz)

        scheduled_for = now
        if digest.should_batch(priority, prefs.digest_frequency):
            scheduled_for = digest.scheduled_send(prefs.digest_frequency, now)

        notification_id = generate_id(NOTIFICATION_PREFIX)
        metadata = dict(params.metadata)
        if params.deadline is not None:
            metadata.setdefault("deadline", params.deadline.isoformat())
        if recipient != params.user_id:
            metadata.setdefault("delegated_from", params.user_id)

        try:
            row = await self.notifications.create(
                notification_id=notification_id,
                user_id=recipient,
                title=params.title,
                message=params.message,
                type=params.type.value,
                priority=priority.value,
                priority_score=scored.total,
                extra_data=metadata,
                related_entity_type=params.related_entity_type,
                related_entity_id=params.related_entity_id,
                actions=[a.model_dump(mode="json", exclude_none=True) for a in params.actions],
                deep_link=params.deep_link,
                channels=[c.value for c in channels],
                status=NotificationStatus.PENDING.value,
                scheduled_for=scheduled_for,
                expires_at=params.expires_at,
                batch_id=batch_id,
                is_digest=digest_items is not None,
                digest_items=digest_items,
                is_escalated=escalation is not None,
                escalated_from=escalation.escalated_from if escalation else None,
                escalation_level=escalation.escalation_level if escalation else 0,
                root_id=escalation.root_id if escalation else notification_id,
                rule_id=escalation.rule_id if escalation else params.rule_id,
                created_at=now,
                updated_at=now,
            )
            for channel in channels:
                if channel == NotificationChannel.IN_APP:
                    continue
                await self.queue.create(
                    queue_item_id=generate_id(QUEUE_ITEM_PREFIX),
                    notification_id=notification_id,
                    channel=channel.value,
                    status="queued",
                    attempts=0,
                    max_attempts=self.max_attempts,
                    scheduled_for=scheduled_for,
                )
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Failed to create notification for %s: %s", recipient, exc)
            raise PersistenceError("Failed to persist notification") from exc

        if commit:
            await self._commit()

        logger.info(
            "Created notification %s for %s (priority=%s score=%d channels=%s)",
            notification_id, recipient, priority.value, scored.total,
            ",".join(c.value for c in channels),
        )
        return row

    async def create_batch(
        self, request: BatchNotificationRequest, now: datetime | None = None
    ) -> list[NotificationCreated]:
        """Create every notification in one commit.

        With ``combine_similar`` each (user, type) group of two or more
        becomes a single digest notification.
        """
        now = now or self.now_fn()
        batch_id = generate_id(BATCH_PREFIX)
        rows: list[NotificationRow] = []

        if not request.batch_settings.combine_similar:
            for params in request.notifications:
                rows.append(await self.create(params, now=now, batch_id=batch_id, commit=False))
        else:
            for group in digest.group_similar(request.notifications):
                if len(group.notifications) == 1:
                    rows.append(
                        await self.create(group.notifications[0], now=now, batch_id=batch_id, commit=False)
                    )
                    continue
                rows.append(await self._create_digest(group, now, batch_id))

        await self._commit()
        return [to_created(row) for row in rows]

    async def _create_digest(self, group: digest.NotificationGroup, now: datetime, batch_id: str) -> NotificationRow:
        # A digest ranks as high as its most urgent item
        scores = [await self.score(n, now) for n in group.notifications]
        top = max(scores, key=lambda s: s.total)
        params = NotificationCreate(
            user_id=group.user_id,
            title=digest.digest_title(group),
            message=digest.digest_message(group),
            type=NotificationType.DIGEST,
            metadata={"item_count": len(group.notifications), "item_type": group.type.value},
        )
        items = [item.model_dump(mode="json", exclude_none=True) for item in digest.digest_items(group)]
        return await self.create(
            params,
            now=now,
            batch_id=batch_id,
            digest_items=items,
            forced_score=top,
            commit=False,
        )

    # --- reads ---

    async def get(self, notification_id: str) -> NotificationRow:
        row = await self.notifications.get(notification_id)
        if row is None:
            raise NotFoundError("Notification", notification_id)
        return row

    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> list[NotificationRow]:
        return await self.notifications.list_for_user(user_id, unread_only=unread_only, limit=limit)

    async def stats(self, user_id: str, now: datetime | None = None) -> NotificationStats:
        """Counts per priority and type, plus how saturated the user is right now."""
        now = now or self.now_fn()
        by_priority = await self.notifications.count_grouped(user_id, "priority")
        by_type = await self.notifications.count_grouped(user_id, "type")
        recent = await self.notifications.count_created_since(user_id, now - timedelta(hours=FATIGUE_WINDOW_HOURS))
        fatigue = priority_scorer.fatigue_score(recent, FATIGUE_WINDOW_HOURS)
        return NotificationStats(
            total=sum(by_type.values()),
            unread=await self.notifications.count_unread(user_id),
            by_priority={p: by_priority.get(p.value, 0) for p in NotificationPriority},
            by_type={t: by_type.get(t.value, 0) for t in NotificationType},
            recent_24h=recent,
            fatigue_score=fatigue,
            batching=priority_scorer.recommend_batching(fatigue),
        )

    # --- status lifecycle ---

    async def transition(
        self,
        notification_id: str,
        target: NotificationStatus,
        now: datetime | None = None,
        commit: bool = True,
    ) -> NotificationRow:
        now = now or self.now_fn()
        row = await self.get(notification_id)
        if not check_transition(row.status, target):
            return row

        values: dict = {"status": target.value, "updated_at": now}
        if target == NotificationStatus.SENT:
            values["sent_at"] = now
        elif target == NotificationStatus.DELIVERED:
            values["delivered_at"] = now
        elif target == NotificationStatus.READ:
            values["read_at"] = row.read_at or now
        elif target == NotificationStatus.ACTED:
            values["read_at"] = row.read_at or now
            values["acted_at"] = now
        await self.notifications.update(row, **values)
        if commit:
            await self._commit()
        logger.info("Notification %s -> %s", notification_id, target.value)
        return row

    async def mark_read(self, notification_id: str, now: datetime | None = None) -> NotificationRow:
        return await self.transition(notification_id, NotificationStatus.READ, now)

    async def mark_acted(self, notification_id: str, now: datetime | None = None) -> NotificationRow:
        return await self.transition(notification_id, NotificationStatus.ACTED, now)

    async def mark_failed(self, notification_id: str, now: datetime | None = None) -> NotificationRow:
        return await self.transition(notification_id, NotificationStatus.FAILED, now)

    async def mark_all_read(self, user_id: str, now: datetime | None = None) -> int:
        updated = await self.notifications.mark_all_read(user_id, now or self.now_fn())
        await self._commit()
        return updated


def to_created(row: NotificationRow) -> NotificationCreated:
    return NotificationCreated(
        notification_id=row.notification_id,
        user_id=row.user_id,
        priority=row.priority,
        priority_score=row.priority_score,
        channels=row.channels,
        is_digest=row.is_digest,
    )
