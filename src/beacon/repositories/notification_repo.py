"""Notification repository."""

from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.models.notification import NotificationRow
from beacon.models.enums import AWAITING_ACTION_STATUSES
from beacon.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[NotificationRow]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, NotificationRow)

    async def get(self, notification_id: str) -> NotificationRow | None:
        return await self.get_by_id("notification_id", notification_id)

    async def list_for_user(
        self, user_id: str, unread_only: bool = False, limit: int = 50
    ) -> list[NotificationRow]:
        stmt = select(NotificationRow).where(NotificationRow.user_id == user_id)
        if unread_only:
            stmt = stmt.where(NotificationRow.read_at.is_(None))
        stmt = stmt.order_by(
            NotificationRow.priority_score.desc(),
            NotificationRow.created_at.desc(),
        ).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_lineage(self, root_id: str) -> list[NotificationRow]:
        """Root plus every escalated descendant, ordered by escalation level."""
        stmt = (
            select(NotificationRow)
            .where(
                or_(
                    NotificationRow.notification_id == root_id,
                    NotificationRow.root_id == root_id,
                )
            )
            .order_by(NotificationRow.escalation_level.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_escalation_roots(self, rule_ids: list[str]) -> list[NotificationRow]:
        """Non-escalated notifications governed by one of the rules and still awaiting action."""
        if not rule_ids:
            return []
        stmt = (
            select(NotificationRow)
            .where(
                NotificationRow.rule_id.in_(rule_ids),
                NotificationRow.is_escalated == False,  # noqa: E712
                NotificationRow.status.in_([s.value for s in AWAITING_ACTION_STATUSES]),
            )
            .order_by(NotificationRow.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_unread(self, user_id: str) -> int:
        stmt = select(func.count(NotificationRow.notification_id)).where(
            NotificationRow.user_id == user_id,
            NotificationRow.read_at.is_(None),
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def count_created_since(self, user_id: str, since: datetime) -> int:
        stmt = select(func.count(NotificationRow.notification_id)).where(
            NotificationRow.user_id == user_id,
            NotificationRow.created_at >= since,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def count_grouped(self, user_id: str, column: str) -> dict[str, int]:
        col = getattr(NotificationRow, column)
        stmt = (
            select(col, func.count(NotificationRow.notification_id))
            .where(NotificationRow.user_id == user_id)
            .group_by(col)
        )
        result = await self.session.execute(stmt)
        return {key: int(count) for key, count in result.all()}

    async def mark_all_read(self, user_id: str, read_at: datetime) -> int:
        """Stamp read_at on unread rows; status only advances from pre-read states."""
        stmt = (
            update(NotificationRow)
            .where(
                NotificationRow.user_id == user_id,
                NotificationRow.read_at.is_(None),
                NotificationRow.status.in_(["pending", "sent", "delivered"]),
            )
            .values(read_at=read_at, status="read")
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
