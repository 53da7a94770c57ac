"""Minimal user directory used to resolve escalation targets and contact details."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from beacon.db.base import Base, TimestampMixin


class DirectoryUserRow(Base, TimestampMixin):
    __tablename__ = "directory_users"

    user_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    manager_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    push_endpoint: Mapped[str | None] = mapped_column(String(500), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
