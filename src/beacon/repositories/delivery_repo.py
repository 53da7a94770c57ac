"""Delivery queue repository."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.models.delivery import NotificationQueueRow
from beacon.repositories.base import BaseRepository


class NotificationQueueRepository(BaseRepository[NotificationQueueRow]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, NotificationQueueRow)

    async def list_due(self, now: datetime, limit: int = 100) -> list[NotificationQueueRow]:
        stmt = (
            select(NotificationQueueRow)
            .where(
                NotificationQueueRow.status == "queued",
                NotificationQueueRow.scheduled_for <= now,
            )
            .order_by(NotificationQueueRow.scheduled_for.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_notification(self, notification_id: str) -> list[NotificationQueueRow]:
        return await self.list_by_field("notification_id", notification_id)

    async def list_due_for_channel(
        self, channel: str, now: datetime, limit: int = 500
    ) -> list[NotificationQueueRow]:
        stmt = (
            select(NotificationQueueRow)
            .where(
                NotificationQueueRow.channel == channel,
                NotificationQueueRow.status == "queued",
                NotificationQueueRow.scheduled_for <= now,
            )
            .order_by(NotificationQueueRow.scheduled_for.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
