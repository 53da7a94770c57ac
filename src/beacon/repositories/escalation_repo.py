"""Escalation rule and history repositories."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from beacon.db.models.escalation import EscalationHistoryRow, EscalationRuleRow
from beacon.repositories.base import BaseRepository


class EscalationRuleRepository(BaseRepository[EscalationRuleRow]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, EscalationRuleRow)

    async def get(self, rule_id: str) -> EscalationRuleRow | None:
        return await self.get_by_id("rule_id", rule_id)

    async def list_active(self) -> list[EscalationRuleRow]:
        return await self.list_by_field("active", True)

    async def list_all(self) -> list[EscalationRuleRow]:
        result = await self.session.execute(
            select(EscalationRuleRow).order_by(EscalationRuleRow.created_at.asc())
        )
        return list(result.scalars().all())


class EscalationHistoryRepository(BaseRepository[EscalationHistoryRow]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, EscalationHistoryRow)

    async def list_for_notification(self, notification_id: str) -> list[EscalationHistoryRow]:
        stmt = (
            select(EscalationHistoryRow)
            .where(EscalationHistoryRow.notification_id == notification_id)
            .order_by(EscalationHistoryRow.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def latest_for_notification(self, notification_id: str) -> EscalationHistoryRow | None:
        stmt = (
            select(EscalationHistoryRow)
            .where(EscalationHistoryRow.notification_id == notification_id)
            .order_by(EscalationHistoryRow.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_notifications(self, notification_ids: list[str]) -> list[EscalationHistoryRow]:
        stmt = (
            select(EscalationHistoryRow)
            .where(EscalationHistoryRow.notification_id.in_(notification_ids))
            .order_by(EscalationHistoryRow.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
