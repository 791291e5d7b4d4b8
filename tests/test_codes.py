"""Referral code generation tests."""

import pytest

from bazaar.accounts.models import EntityType, UserAccount
from bazaar.errors import ConflictError
from bazaar.referral.codes import (
    FULL_ALPHABET,
    READABLE_ALPHABET,
    ReferralCodeGenerator,
    normalize_code,
    random_code,
)
from bazaar.storage.db import db


def _store_user(code: str, email: str = "holder@example.com") -> UserAccount:
    account = UserAccount(
        email=email,
        full_name="Holder",
        password_hash="x",
        user_type=EntityType.USER,
        referral_code=code,
    )
    with db.session() as session:
        session.add(account)
    return account


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_random_code_length_and_alphabet(entity_type):
    code = random_code(entity_type)
    alphabet = FULL_ALPHABET if entity_type == EntityType.SALESPERSON else READABLE_ALPHABET

    assert len(code) == 8
    assert set(code) <= set(alphabet)


def test_readable_alphabet_has_no_ambiguous_characters():
    for char in "01OIL":
        assert char not in READABLE_ALPHABET


def test_normalize_code():
    assert normalize_code("  abc123xy ") == "ABC123XY"
    assert normalize_code(None) == ""


def test_generated_codes_are_unique():
    generator = ReferralCodeGenerator(db)
    codes = set()
    for i in range(50):
        code = generator.generate(EntityType.USER)
        assert code not in codes
        _store_user(code, email=f"u{i}@example.com")
        codes.add(code)

    assert len(codes) == 50


def test_collision_is_retried():
    _store_user("TAKEN234")
    candidates = iter(["TAKEN234", "TAKEN234", "FRESH234"])
    generator = ReferralCodeGenerator(db, candidate_factory=lambda _type: next(candidates))

    assert generator.generate(EntityType.COMPANY) == "FRESH234"


def test_collision_checked_across_every_entity_type():
    _store_user("SHARED23")
    generator = ReferralCodeGenerator(db)

    # A code held by a user is taken for every other type too
    assert generator.code_exists("SHARED23")
    assert not generator.code_exists("NOTHERE2")


def test_exhausted_attempts_raise_conflict():
    _store_user("TAKEN234")
    calls = []

    def always_taken(entity_type):
        calls.append(entity_type)
        return "TAKEN234"

    generator = ReferralCodeGenerator(db, max_attempts=10, candidate_factory=always_taken)

    with pytest.raises(ConflictError):
        generator.generate(EntityType.USER)
    assert len(calls) == 10
