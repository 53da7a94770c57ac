"""Append-only request log backing the sliding-window rate limiter."""

from sqlalchemy import BigInteger, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from beacon.db.base import Base


class RateLimitRequestRow(Base):
    __tablename__ = "rate_limit_requests"
    __table_args__ = (
        Index("ix_rate_limit_requests_client_endpoint_ts", "client_id", "endpoint", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
