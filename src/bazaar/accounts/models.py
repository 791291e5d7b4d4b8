"""Account and business profile models.

Every table here is a referral holder: it owns a referral code, a reward
accumulator and the list of entities it referred.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum as SQLEnum, Float, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from bazaar.storage.models import Base, PointsMixin, ReferralHolderMixin, new_id, utcnow


class EntityType(str, Enum):
    """Entity variants that can refer or be referred."""
    USER = "user"
    COMPANY = "company"
    WHOLESALER = "wholesaler"
    SERVICE_PROVIDER = "serviceProvider"
    SALESPERSON = "salesperson"


class AccountStatus(str, Enum):
    """Account lifecycle status."""
    PENDING = "pending"      # Awaiting manager approval
    ACTIVE = "active"
    SUSPENDED = "suspended"


class UserAccount(ReferralHolderMixin, PointsMixin, Base):
    """Login account.

    Plain users hold their own referral code. For business signups the code
    lives on the linked profile row instead.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)

    # Identity
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    user_type: Mapped[EntityType] = mapped_column(SQLEnum(EntityType), nullable=False)

    # Personal details (plain users only)
    date_of_birth: Mapped[str | None] = mapped_column(String(20), nullable=True)
    gender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    interested_deals: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    location: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Status
    status: Mapped[AccountStatus] = mapped_column(SQLEnum(AccountStatus), default=AccountStatus.PENDING)
    phone_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<UserAccount(id={self.id}, email={self.email}, type={self.user_type})>"


class _BusinessProfile(ReferralHolderMixin, PointsMixin):
    """Columns shared by company and wholesaler profiles."""

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    sub_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    address: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    phones: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    emails: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class Company(_BusinessProfile, Base):
    """Company profile linked to a login account."""
    __tablename__ = "companies"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)

    def __repr__(self):
        return f"<Company(id={self.id}, name={self.business_name})>"


class Wholesaler(_BusinessProfile, Base):
    """Wholesaler profile linked to a login account."""
    __tablename__ = "wholesalers"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)

    def __repr__(self):
        return f"<Wholesaler(id={self.id}, name={self.business_name})>"


class ServiceProvider(ReferralHolderMixin, PointsMixin, Base):
    """Service provider profile linked to a login account."""
    __tablename__ = "service_providers"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    service_type: Mapped[str] = mapped_column(String(100), nullable=False)
    years_experience: Mapped[int | None] = mapped_column(nullable=True)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<ServiceProvider(id={self.id}, service={self.service_type})>"


class Salesperson(ReferralHolderMixin, Base):
    """Salesperson; earns a currency balance instead of points."""
    __tablename__ = "salespersons"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sales_manager_id: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    referral_balance: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    status: Mapped[AccountStatus] = mapped_column(SQLEnum(AccountStatus), default=AccountStatus.ACTIVE)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Salesperson(id={self.id}, email={self.email})>"


# Storage table for each referral-holding entity type
HOLDER_MODELS: dict[EntityType, type] = {
    EntityType.USER: UserAccount,
    EntityType.COMPANY: Company,
    EntityType.WHOLESALER: Wholesaler,
    EntityType.SERVICE_PROVIDER: ServiceProvider,
    EntityType.SALESPERSON: Salesperson,
}

# Profile table for business signups, keyed by the account's user_type
PROFILE_MODELS: dict[EntityType, type] = {
    EntityType.COMPANY: Company,
    EntityType.WHOLESALER: Wholesaler,
    EntityType.SERVICE_PROVIDER: ServiceProvider,
}
