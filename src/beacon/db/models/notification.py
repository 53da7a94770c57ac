"""Notification storage table."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from beacon.db.base import Base, TimestampMixin


class NotificationRow(Base, TimestampMixin):
    __tablename__ = "notifications"

    notification_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    priority_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    extra_data: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    related_entity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    actions: Mapped[list | None] = mapped_column(JSON, nullable=True)
    deep_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    channels: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)

    scheduled_for: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    acted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    batch_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    is_digest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    digest_items: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Escalation lineage; escalated_from is a weak reference (no FK)
    is_escalated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    escalated_from: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    escalation_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    root_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    rule_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
