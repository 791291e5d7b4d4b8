"""Error taxonomy shared by the signup and referral services.

Services raise these; the HTTP layer maps each family to a status code.
"""


class BazaarError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BazaarError):
    """Malformed input or a missing mandatory field."""

    status_code = 400


class NotFoundError(BazaarError):
    """Referenced record does not exist."""

    status_code = 404


class ConflictError(BazaarError):
    """Uniqueness violation or exhausted code generation retries."""

    status_code = 409


class ReferralCodeTakenError(ConflictError):
    """A generated referral code was claimed by someone else before insert."""


class TransientStorageError(BazaarError):
    """Database operation failed (timeout, connection loss)."""

    status_code = 503


class SelfReferralError(ValidationError):
    """An entity tried to use its own referral code."""

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__("Cannot use your own referral code")


class InvalidOtpError(ValidationError):
    """OTP does not match the pending signup."""

    def __init__(self, attempts_left: int):
        self.attempts_left = attempts_left
        super().__init__("Invalid OTP")


class OtpExpiredError(ValidationError):
    """OTP is past its expiry timestamp; a resend is required."""

    def __init__(self):
        super().__init__("OTP expired")


class TooManyOtpAttemptsError(ValidationError):
    """Too many wrong OTP guesses for a pending signup."""

    status_code = 429

    def __init__(self):
        super().__init__("Too many OTP attempts. Request a new code.")


class OtpDeliveryError(BazaarError):
    """SMS gateway refused or failed to deliver the OTP."""

    status_code = 502
