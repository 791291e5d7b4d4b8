"""Shared pytest fixtures."""

import os
import tempfile
from pathlib import Path

# Point settings at a throwaway database before bazaar is imported
_DB_DIR = Path(tempfile.mkdtemp(prefix="bazaar-tests-"))
os.environ["BAZAAR_DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'bazaar.sqlite'}"
os.environ["BAZAAR_ENV"] = "test"
os.environ["BAZAAR_JWT_SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"
os.environ.pop("BAZAAR_SMS_USERNAME", None)
os.environ.pop("BAZAAR_SMS_PASSWORD", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from bazaar.errors import OtpDeliveryError  # noqa: E402
from bazaar.referral.service import ReferralService  # noqa: E402
from bazaar.signup.orchestrator import SignupOrchestrator  # noqa: E402
from bazaar.signup.otp import OtpService  # noqa: E402
from bazaar.signup.schemas import SignupRequest  # noqa: E402
from bazaar.storage.db import db  # noqa: E402


class RecordingSms:
    """SMS sender that records messages instead of sending them."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    def send_otp(self, phone: str, otp: str) -> None:
        if self.fail:
            raise OtpDeliveryError("gateway unavailable")
        self.sent.append((phone, otp))

    def last_otp(self, phone: str) -> str:
        return [otp for sent_to, otp in self.sent if sent_to == phone][-1]


@pytest.fixture(autouse=True)
def _fresh_tables():
    """Recreate every table so each test starts from an empty database."""
    db.drop_tables()
    db.create_tables()
    yield


@pytest.fixture()
def sms() -> RecordingSms:
    return RecordingSms()


@pytest.fixture()
def otp_service(sms: RecordingSms) -> OtpService:
    return OtpService(db, sms=sms)


@pytest.fixture()
def referrals() -> ReferralService:
    return ReferralService(db)


@pytest.fixture()
def orchestrator(otp_service: OtpService, referrals: ReferralService) -> SignupOrchestrator:
    return SignupOrchestrator(db, otp_service=otp_service, referral_service=referrals)


@pytest.fixture()
def user_payload():
    """Factory for a valid plain-user signup body (camelCase, as clients send it)."""

    counter = {"n": 0}

    def _make(**overrides) -> dict:
        counter["n"] += 1
        payload = {
            "email": f"user{counter['n']}@example.com",
            "password": "Str0ngPass!",
            "fullName": f"Test User {counter['n']}",
            "userType": "user",
            "dateOfBirth": "1990-01-01",
            "gender": "female",
            "interestedDeals": ["electronics"],
            "location": {
                "country": "Lebanon",
                "governorate": "Beirut",
                "district": "Beirut",
                "city": "Achrafieh",
            },
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture()
def make_request(user_payload):
    """Factory for a validated SignupRequest."""

    def _make(**overrides) -> SignupRequest:
        return SignupRequest.model_validate(user_payload(**overrides))

    return _make


@pytest.fixture()
def client(orchestrator: SignupOrchestrator):
    """TestClient with the signup orchestrator wired to the recording SMS sender."""
    from bazaar.api.main import app
    from bazaar.api.v1.auth import get_orchestrator

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()
