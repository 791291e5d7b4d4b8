"""Commission record model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from bazaar.accounts.models import EntityType
from bazaar.storage.models import Base, new_id, utcnow


class CommissionStatus(str, Enum):
    """Commission record status."""
    EARNED = "earned"


class RewardUnit(str, Enum):
    """Unit of the reward amount."""
    POINTS = "points"
    CURRENCY = "currency"


class ReferralCommission(Base):
    """Record of one attribution event.

    The unique constraint on referred_id is the idempotency gate: an entity
    can be attributed to a referrer at most once. rewarded_at is the only
    field written after insert; it is set in the same transaction that
    credits the referrer.
    """
    __tablename__ = "referral_commissions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    referrer_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    referrer_type: Mapped[EntityType] = mapped_column(SQLEnum(EntityType), nullable=False)
    referred_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    referred_type: Mapped[EntityType | None] = mapped_column(SQLEnum(EntityType), nullable=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    reward_unit: Mapped[RewardUnit] = mapped_column(SQLEnum(RewardUnit), nullable=False)
    referral_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    status: Mapped[CommissionStatus] = mapped_column(
        SQLEnum(CommissionStatus), default=CommissionStatus.EARNED, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    rewarded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    def __repr__(self):
        return f"<ReferralCommission(referrer={self.referrer_id}, referred={self.referred_id}, amount={self.amount})>"
