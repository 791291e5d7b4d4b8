"""OTP storage and verification tests."""

import asyncio
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import update

from bazaar.errors import (
    InvalidOtpError,
    NotFoundError,
    OtpDeliveryError,
    OtpExpiredError,
    TooManyOtpAttemptsError,
)
from bazaar.jobs.scheduler import sweep_expired_otps
from bazaar.signup.models import PendingSignup
from bazaar.signup.otp import generate_otp
from bazaar.sms.service import SmsService
from bazaar.storage.db import db
from bazaar.storage.models import utcnow

PHONE = "+447400123456"


@pytest.fixture()
def pending(otp_service, make_request):
    profile = make_request(phone=PHONE).profile()
    return otp_service.create_pending(PHONE, profile, "hashed")


def test_generate_otp_is_six_digits():
    otp = generate_otp()
    assert len(otp) == 6
    assert otp.isdigit()


def test_correct_otp_verifies(otp_service, pending):
    verified = otp_service.verify(PHONE, pending.otp)

    assert verified.id == pending.id
    assert verified.verified is True
    assert verified.signup_data["email"] == pending.signup_data["email"]


def test_wrong_otp_keeps_signup_pending(otp_service, pending):
    wrong = "000000" if pending.otp != "000000" else "111111"

    with pytest.raises(InvalidOtpError) as exc:
        otp_service.verify(PHONE, wrong)

    assert exc.value.attempts_left == otp_service.max_attempts - 1
    stored = otp_service.get_pending(PHONE)
    assert stored.attempts == 1
    assert stored.verified is False

    # The right code still works afterwards
    assert otp_service.verify(PHONE, pending.otp).verified is True


def test_attempt_limit(otp_service, pending):
    wrong = "000000" if pending.otp != "000000" else "111111"
    for _ in range(otp_service.max_attempts):
        with pytest.raises(InvalidOtpError):
            otp_service.verify(PHONE, wrong)

    with pytest.raises(TooManyOtpAttemptsError):
        otp_service.verify(PHONE, pending.otp)


def test_expired_otp_rejected(otp_service, pending):
    later = pending.expires_at + timedelta(seconds=1)

    with pytest.raises(OtpExpiredError):
        otp_service.verify(PHONE, pending.otp, now=later)


def test_unknown_phone(otp_service):
    with pytest.raises(NotFoundError):
        otp_service.verify(PHONE, "123456")


def test_resend_replaces_pending(otp_service, pending):
    wrong = "000000" if pending.otp != "000000" else "111111"
    with pytest.raises(InvalidOtpError):
        otp_service.verify(PHONE, wrong)

    fresh = otp_service.resend(PHONE)

    assert fresh.id != pending.id
    assert fresh.attempts == 0
    assert fresh.signup_data == pending.signup_data
    assert fresh.password_hash == pending.password_hash
    assert fresh.expires_at >= pending.expires_at
    assert otp_service.get_pending(PHONE).id == fresh.id


def test_resend_without_pending(otp_service):
    with pytest.raises(NotFoundError):
        otp_service.resend(PHONE)


def test_new_signup_supersedes_previous(otp_service, make_request, pending):
    again = otp_service.create_pending(PHONE, make_request(phone=PHONE).profile(), "hashed2")

    assert otp_service.get_pending(PHONE).id == again.id


def test_sweep_removes_only_expired(otp_service, pending):
    assert otp_service.sweep_expired() == 0
    assert otp_service.sweep_expired(now=utcnow() + timedelta(hours=1)) == 1
    assert otp_service.get_pending(PHONE) is None


def test_dispatch_reports_delivery_failure(otp_service, sms, pending):
    assert otp_service.dispatch(pending) is True
    assert sms.sent[-1] == (PHONE, pending.otp)

    sms.fail = True
    assert otp_service.dispatch(pending) is False


# ==================== SMS GATEWAY ====================


def _gateway(status_code: int, body) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["destination"] == PHONE
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


def _sms(transport) -> SmsService:
    return SmsService(
        api_url="https://sms.example.com/send",
        username="user",
        password="pass",
        transport=transport,
    )


def test_sms_success():
    _sms(_gateway(200, {"status": "success", "data": {"message_id": "m1"}})).send_otp(PHONE, "123456")


def test_sms_plain_text_success():
    _sms(_gateway(200, "OK")).send_otp(PHONE, "123456")


def test_sms_rejected_by_gateway():
    with pytest.raises(OtpDeliveryError):
        _sms(_gateway(200, {"status": "error", "message": "bad sender"})).send_otp(PHONE, "123456")


def test_sms_http_error():
    with pytest.raises(OtpDeliveryError):
        _sms(_gateway(500, {"status": "error"})).send_otp(PHONE, "123456")


def test_sms_disabled_without_credentials():
    service = SmsService(username="", password="")
    assert service.enabled is False
    service.send_otp(PHONE, "123456")


def test_scheduled_sweep_job(pending):
    with db.session() as session:
        session.execute(
            update(PendingSignup)
            .where(PendingSignup.id == pending.id)
            .values(expires_at=utcnow() - timedelta(minutes=1))
        )

    assert asyncio.run(sweep_expired_otps()) == 1
