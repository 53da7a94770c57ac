"""Notification preferences repository."""

from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.models.preferences import NotificationPreferencesRow
from beacon.repositories.base import BaseRepository


class NotificationPreferencesRepository(BaseRepository[NotificationPreferencesRow]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, NotificationPreferencesRow)

    async def get(self, user_id: str) -> NotificationPreferencesRow | None:
        return await self.get_by_id("user_id", user_id)

    async def upsert(self, user_id: str, **values) -> NotificationPreferencesRow:
        row = await self.get(user_id)
        if row is None:
            return await self.create(user_id=user_id, **values)
        return await self.update(row, **values)
