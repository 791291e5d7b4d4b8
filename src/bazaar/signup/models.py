"""Pending signup model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from bazaar.storage.models import Base, new_id, utcnow


class PendingSignup(Base):
    """Signup waiting for phone verification.

    Deleted on successful verification or by the expiry sweep; a resend
    replaces it with a new row.
    """
    __tablename__ = "pending_signups"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    otp: Mapped[str] = mapped_column(String(10), nullable=False)
    signup_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<PendingSignup(phone={self.phone}, expires_at={self.expires_at})>"
