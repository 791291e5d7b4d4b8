"""One-time password handling for phone-verified signups."""

import secrets
import string
from datetime import datetime, timedelta

from sqlalchemy import delete, select

from bazaar.errors import (
    InvalidOtpError,
    NotFoundError,
    OtpDeliveryError,
    OtpExpiredError,
    TooManyOtpAttemptsError,
)
from bazaar.logging_config import get_logger
from bazaar.settings import settings
from bazaar.signup.models import PendingSignup
from bazaar.signup.schemas import SignupProfile
from bazaar.sms.service import SmsService
from bazaar.storage.db import Database, db
from bazaar.storage.models import utcnow

logger = get_logger(__name__)

OTP_LENGTH = 6


def generate_otp(length: int = OTP_LENGTH) -> str:
    """Generate a numeric OTP."""
    return "".join(secrets.choice(string.digits) for _ in range(length))


class OtpService:
    """Stores pending signups and checks the codes sent to them."""

    def __init__(
        self,
        database: Database | None = None,
        sms: SmsService | None = None,
        ttl_minutes: int | None = None,
        max_attempts: int | None = None,
    ):
        """Initialize OTP service.

        Args:
            database: Database to use (defaults to the global instance)
            sms: SMS sender for OTP delivery
            ttl_minutes: OTP lifetime
            max_attempts: Wrong guesses allowed per pending signup
        """
        self.db = database or db
        self.sms = sms or SmsService()
        self.ttl = timedelta(minutes=ttl_minutes or settings.otp_ttl_minutes)
        self.max_attempts = max_attempts or settings.otp_max_attempts
        self.logger = get_logger(__name__)

    def create_pending(
        self,
        phone: str,
        profile: SignupProfile,
        password_hash: str,
    ) -> PendingSignup:
        """Store a signup awaiting verification, replacing any earlier one for the phone."""
        pending = PendingSignup(
            phone=phone,
            otp=generate_otp(),
            signup_data=profile.model_dump(mode="json"),
            password_hash=password_hash,
            expires_at=utcnow() + self.ttl,
            verified=False,
            attempts=0,
        )

        with self.db.session() as session:
            session.execute(delete(PendingSignup).where(PendingSignup.phone == phone))
            session.add(pending)

        self.logger.info("pending_signup_created", phone=phone, expires_at=pending.expires_at.isoformat())
        return pending

    def dispatch(self, pending: PendingSignup) -> bool:
        """Send the OTP for a pending signup.

        Returns:
            True if sent; delivery failures are logged and reported as False
        """
        try:
            self.sms.send_otp(pending.phone, pending.otp)
        except OtpDeliveryError as e:
            self.logger.warning("otp_delivery_failed", phone=pending.phone, error=e.message)
            return False
        return True

    def get_pending(self, phone: str) -> PendingSignup | None:
        """Latest pending signup for a phone."""
        with self.db.session() as session:
            return session.scalar(
                select(PendingSignup)
                .where(PendingSignup.phone == phone)
                .order_by(PendingSignup.created_at.desc())
                .limit(1)
            )

    def verify(self, phone: str, otp: str, now: datetime | None = None) -> PendingSignup:
        """Check an OTP against the pending signup for a phone.

        Returns:
            The verified pending signup

        Raises:
            NotFoundError: If no signup is pending for the phone
            TooManyOtpAttemptsError: If the attempt limit was reached
            OtpExpiredError: If the OTP is past its expiry
            InvalidOtpError: If the OTP does not match
        """
        now = now or utcnow()
        otp = (otp or "").strip()
        attempts_left = None

        with self.db.session() as session:
            pending = session.scalar(
                select(PendingSignup)
                .where(PendingSignup.phone == phone)
                .order_by(PendingSignup.created_at.desc())
                .limit(1)
            )
            if pending is None:
                raise NotFoundError("No pending verification found for this phone number")

            if pending.attempts >= self.max_attempts:
                raise TooManyOtpAttemptsError()

            if now > pending.expires_at:
                self.logger.info("otp_expired", phone=phone)
                raise OtpExpiredError()

            if secrets.compare_digest(pending.otp, otp):
                pending.verified = True
            else:
                pending.attempts += 1
                attempts_left = self.max_attempts - pending.attempts

        # Raised after the session commits so the attempt counter is kept
        if attempts_left is not None:
            self.logger.warning("otp_invalid", phone=phone, attempts_left=attempts_left)
            raise InvalidOtpError(attempts_left)

        self.logger.info("otp_verified", phone=phone)
        return pending

    def resend(self, phone: str) -> PendingSignup:
        """Replace the pending signup for a phone with a fresh OTP and expiry.

        Raises:
            NotFoundError: If no signup is pending for the phone
        """
        with self.db.session() as session:
            pending = session.scalar(
                select(PendingSignup)
                .where(PendingSignup.phone == phone)
                .order_by(PendingSignup.created_at.desc())
                .limit(1)
            )
            if pending is None:
                raise NotFoundError("No pending verification found for this phone number")

            replacement = PendingSignup(
                phone=phone,
                otp=generate_otp(),
                signup_data=dict(pending.signup_data),
                password_hash=pending.password_hash,
                expires_at=utcnow() + self.ttl,
                verified=False,
                attempts=0,
            )
            session.execute(delete(PendingSignup).where(PendingSignup.phone == phone))
            session.add(replacement)

        self.logger.info("otp_reissued", phone=phone, expires_at=replacement.expires_at.isoformat())
        return replacement

    def delete(self, pending_id: str) -> None:
        """Remove a pending signup once it has been completed."""
        with self.db.session() as session:
            session.execute(delete(PendingSignup).where(PendingSignup.id == pending_id))

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete every pending signup past its expiry.

        Returns:
            Number of rows deleted
        """
        now = now or utcnow()
        with self.db.session() as session:
            result = session.execute(delete(PendingSignup).where(PendingSignup.expires_at < now))
            deleted = result.rowcount or 0

        if deleted:
            self.logger.info("expired_otps_swept", deleted=deleted)
        return deleted
