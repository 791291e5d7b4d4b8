"""Attribution ledger tests."""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select

from bazaar.accounts.models import EntityType, Salesperson, UserAccount
from bazaar.errors import NotFoundError, SelfReferralError, TransientStorageError
from bazaar.referral.ledger import AttributionLedger
from bazaar.referral.models import ReferralCommission, RewardUnit
from bazaar.storage.db import db


@pytest.fixture()
def ledger() -> AttributionLedger:
    return AttributionLedger(db)


def _user(email: str, code: str | None = None) -> UserAccount:
    account = UserAccount(
        email=email,
        full_name=email.split("@")[0],
        password_hash="x",
        user_type=EntityType.USER,
        referral_code=code,
    )
    with db.session() as session:
        session.add(account)
    return account


def _salesperson() -> Salesperson:
    salesperson = Salesperson(full_name="Sam Seller", email="sam@example.com", referral_code="SALES123")
    with db.session() as session:
        session.add(salesperson)
    return salesperson


def _reload(model, entity_id):
    with db.session() as session:
        return session.get(model, entity_id)


def _commission_count() -> int:
    with db.session() as session:
        return session.scalar(select(func.count(ReferralCommission.id)))


def test_user_referrer_earns_points(ledger):
    referrer = _user("referrer@example.com", "REFERRER")
    referred = _user("new@example.com")

    record = ledger.attribute(referrer.id, EntityType.USER, referred.id, EntityType.USER, "REFERRER")

    assert record is not None
    assert record.amount == 5
    assert record.reward_unit == RewardUnit.POINTS
    stored = _reload(UserAccount, referrer.id)
    assert stored.points == 5
    assert stored.referrals == [referred.id]


def test_salesperson_referrer_earns_balance(ledger):
    salesperson = _salesperson()
    referred = _user("new@example.com")

    record = ledger.attribute(salesperson.id, EntityType.SALESPERSON, referred.id, EntityType.USER)

    assert record.reward_unit == RewardUnit.CURRENCY
    stored = _reload(Salesperson, salesperson.id)
    assert stored.referral_balance == pytest.approx(1.0)
    assert stored.referrals == [referred.id]


def test_second_attribution_is_a_noop(ledger):
    referrer = _user("referrer@example.com", "REFERRER")
    other = _user("other@example.com", "OTHERREF")
    referred = _user("new@example.com")

    assert ledger.attribute(referrer.id, EntityType.USER, referred.id) is not None
    assert ledger.attribute(referrer.id, EntityType.USER, referred.id) is None
    assert ledger.attribute(other.id, EntityType.USER, referred.id) is None

    assert _reload(UserAccount, referrer.id).points == 5
    assert _reload(UserAccount, other.id).points == 0
    assert _commission_count() == 1


def test_self_referral_changes_nothing(ledger):
    user = _user("me@example.com", "MYOWNCDE")

    with pytest.raises(SelfReferralError):
        ledger.attribute(user.id, EntityType.USER, user.id)

    stored = _reload(UserAccount, user.id)
    assert stored.points == 0
    assert stored.referrals == []
    assert _commission_count() == 0


def test_failed_reward_is_reconciled(ledger, monkeypatch):
    referrer = _user("referrer@example.com", "REFERRER")
    referred = _user("new@example.com")

    def broken(*args, **kwargs):
        raise TransientStorageError("Database operation failed")

    with monkeypatch.context() as patch:
        patch.setattr(ledger, "_apply_reward", broken)
        with pytest.raises(TransientStorageError):
            ledger.attribute(referrer.id, EntityType.USER, referred.id)

    # Record written, reward missing
    assert _commission_count() == 1
    assert _reload(UserAccount, referrer.id).points == 0

    assert ledger.reconcile() == 1
    stored = _reload(UserAccount, referrer.id)
    assert stored.points == 5
    assert stored.referrals == [referred.id]

    # Second pass finds nothing to repair
    assert ledger.reconcile() == 0
    assert _reload(UserAccount, referrer.id).points == 5


def test_commission_history_and_summary(ledger):
    referrer = _user("referrer@example.com", "REFERRER")
    first = _user("a@example.com")
    second = _user("b@example.com")

    ledger.attribute(referrer.id, EntityType.USER, first.id, EntityType.USER)
    ledger.attribute(referrer.id, EntityType.USER, second.id, EntityType.USER)

    records = ledger.list_commissions(referrer.id)
    assert {r.referred_id for r in records} == {first.id, second.id}
    assert ledger.get_commission_for(first.id).referrer_id == referrer.id
    assert ledger.summary(referrer.id) == {"count": 2, "total_amount": 10.0}


def test_reward_marks_record(ledger):
    referrer = _user("referrer@example.com", "REFERRER")
    referred = _user("new@example.com")

    record = ledger.attribute(referrer.id, EntityType.USER, referred.id)

    assert _reload(ReferralCommission, record.id).rewarded_at is not None
    assert ledger.reconcile() == 0


def test_missing_referrer_leaves_record_unrewarded(ledger):
    referred = _user("new@example.com")

    with pytest.raises(NotFoundError):
        ledger.attribute("0" * 32, EntityType.USER, referred.id)

    # The claim rolled back with the failed reward
    with db.session() as session:
        record = session.scalar(select(ReferralCommission))
    assert record.rewarded_at is None
    assert ledger.reconcile() == 0


# ==================== CONCURRENCY ====================


def test_concurrent_referrals_to_one_referrer(ledger):
    referrer = _user("referrer@example.com", "REFERRER")
    referred = [_user(f"new{i}@example.com") for i in range(8)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        records = list(
            pool.map(lambda r: ledger.attribute(referrer.id, EntityType.USER, r.id), referred)
        )

    assert all(record is not None for record in records)
    stored = _reload(UserAccount, referrer.id)
    assert stored.points == 40
    assert sorted(stored.referrals) == sorted(r.id for r in referred)

    # Every record is marked rewarded, so there is nothing to repair
    assert ledger.reconcile() == 0
    assert _reload(UserAccount, referrer.id).points == 40


def test_concurrent_duplicate_attribution(ledger):
    referrer = _user("referrer@example.com", "REFERRER")
    referred = _user("new@example.com")

    with ThreadPoolExecutor(max_workers=8) as pool:
        records = list(
            pool.map(lambda _: ledger.attribute(referrer.id, EntityType.USER, referred.id), range(8))
        )

    assert len([record for record in records if record is not None]) == 1
    assert _commission_count() == 1
    stored = _reload(UserAccount, referrer.id)
    assert stored.points == 5
    assert stored.referrals == [referred.id]
