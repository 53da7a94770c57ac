"""Per-user notification preferences table."""

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from beacon.db.base import Base, TimestampMixin


class NotificationPreferencesRow(Base, TimestampMixin):
    __tablename__ = "notification_preferences"

    user_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    digest_frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="instant")
    quiet_hours_start: Mapped[str] = mapped_column(String(5), nullable=False, default="20:00")
    quiet_hours_end: Mapped[str] = mapped_column(String(5), nullable=False, default="08:00")
    weekend_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vacation_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vacation_delegate: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # {"deadline": ["in_app", "email"], ...}
    type_channels: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # {"critical": ["in_app", "email", "sms", "push"], ...}
    priority_channels: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
