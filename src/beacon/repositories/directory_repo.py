"""Directory user repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.models.directory import DirectoryUserRow
from beacon.repositories.base import BaseRepository


class DirectoryUserRepository(BaseRepository[DirectoryUserRow]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, DirectoryUserRow)

    async def get(self, user_id: str) -> DirectoryUserRow | None:
        return await self.get_by_id("user_id", user_id)

    async def first_active_with_role(self, role: str) -> DirectoryUserRow | None:
        stmt = (
            select(DirectoryUserRow)
            .where(DirectoryUserRow.role == role, DirectoryUserRow.active == True)  # noqa: E712
            .order_by(DirectoryUserRow.user_id.asc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, user_id: str, **values) -> DirectoryUserRow:
        row = await self.get(user_id)
        if row is None:
            return await self.create(user_id=user_id, **values)
        return await self.update(row, **values)
