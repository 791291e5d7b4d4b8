"""Declarative base and columns shared by every referral-holding table."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def new_id() -> str:
    """Opaque unique ID (32 hex chars)."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite round-trips unchanged."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ReferralHolderMixin:
    """Referral code and referral list carried by every entity collection.

    The code namespace is global across all holder tables; uniqueness across
    tables is checked by the code generator, within a table by the index.
    """

    referral_code: Mapped[str | None] = mapped_column(
        String(16), unique=True, nullable=True, index=True
    )
    referrals: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)


class PointsMixin:
    """Point accumulator used by users and business profiles."""

    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
