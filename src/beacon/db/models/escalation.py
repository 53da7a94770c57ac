"""Escalation rule and escalation history tables."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from beacon.db.base import Base, TimestampMixin


class EscalationRuleRow(Base, TimestampMixin):
    __tablename__ = "escalation_rules"

    rule_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    trigger_event: Mapped[str] = mapped_column(String(100), nullable=False)
    delay_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    # [{"role": "manager", "after_hours": 0, "user_id": null}, ...]
    escalation_chain: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    conditions: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    base_priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")


class EscalationHistoryRow(Base):
    __tablename__ = "escalation_history"

    history_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    notification_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    escalated_notification_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    rule_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    from_user_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    to_user_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
