"""Database models for referral tracking."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ReferralUser(Base):
    """A community member who can refer purchases.

    Created implicitly the first time a user is referenced. ``rewarded`` only
    ever moves from False to True through the webhook pipeline.
    """

    __tablename__ = "referral_users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    referral_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rewarded: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "referral_count": self.referral_count,
            "rewarded": self.rewarded,
        }

    def __repr__(self) -> str:
        return (
            f"<ReferralUser(user_id={self.user_id}, "
            f"referral_count={self.referral_count}, rewarded={self.rewarded})>"
        )


class ReferralCode(Base):
    """Opaque referral code bound to exactly one user."""

    __tablename__ = "referral_codes"

    code: Mapped[str] = mapped_column(String(48), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("referral_users.user_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ReferralCode(code={self.code}, user_id={self.user_id})>"


class ProcessedWebhookEvent(Base):
    """Tracks processed webhook events for idempotency.

    Stored in the database to survive restarts and to work across processes.
    Rows are never updated or deleted.
    """

    __tablename__ = "processed_webhook_events"

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    source: Mapped[str] = mapped_column(String(50), nullable=False)  # e.g. "whop"
    processed_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ProcessedWebhookEvent(id={self.event_id}, type={self.event_type})>"
