"""Rate-limit request log repository."""

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.models.rate_limit import RateLimitRequestRow
from beacon.repositories.base import BaseRepository


class RateLimitRequestRepository(BaseRepository[RateLimitRequestRow]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, RateLimitRequestRow)

    async def count_since(self, client_id: str, endpoint: str, since: int) -> tuple[int, int | None]:
        """Return (count, oldest timestamp) of requests at or after ``since``."""
        stmt = select(
            func.count(RateLimitRequestRow.id),
            func.min(RateLimitRequestRow.timestamp),
        ).where(
            RateLimitRequestRow.client_id == client_id,
            RateLimitRequestRow.endpoint == endpoint,
            RateLimitRequestRow.timestamp >= since,
        )
        result = await self.session.execute(stmt)
        count, oldest = result.one()
        return int(count or 0), oldest

    async def record(
        self,
        client_id: str,
        endpoint: str,
        timestamp: int,
        ip_address: str | None = None,
        user_id: str | None = None,
    ) -> RateLimitRequestRow:
        return await self.create(
            client_id=client_id,
            endpoint=endpoint,
            timestamp=timestamp,
            ip_address=ip_address,
            user_id=user_id,
        )

    async def prune_before(self, cutoff: int) -> int:
        """Delete rows older than ``cutoff``. Returns the number removed."""
        stmt = delete(RateLimitRequestRow).where(RateLimitRequestRow.timestamp < cutoff)
        result = await self.session.execute(stmt)
        return result.rowcount or 0
