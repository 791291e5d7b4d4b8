"""Admin CLI tests."""

from sqlalchemy import select
from typer.testing import CliRunner

from bazaar.accounts.models import EntityType, Salesperson, UserAccount
from bazaar.cli import app
from bazaar.referral.ledger import AttributionLedger
from bazaar.storage.db import db

runner = CliRunner()


def _salesperson() -> Salesperson:
    result = runner.invoke(app, ["salesperson-create", "--name", "Sam Seller", "--email", "Sam@Example.com"])
    assert result.exit_code == 0, result.output
    with db.session() as session:
        return session.scalars(select(Salesperson)).one()


def test_init():
    result = runner.invoke(app, ["init"])

    assert result.exit_code == 0
    assert "Database initialized" in result.output


def test_salesperson_create():
    salesperson = _salesperson()

    assert salesperson.email == "sam@example.com"
    assert len(salesperson.referral_code) == 8


def test_resolve():
    salesperson = _salesperson()

    result = runner.invoke(app, ["resolve", salesperson.referral_code.lower()])

    assert result.exit_code == 0
    assert "salesperson" in result.output
    assert salesperson.id in result.output


def test_resolve_unknown_code():
    result = runner.invoke(app, ["resolve", "NOPE2345"])

    assert result.exit_code == 1
    assert "Invalid referral code" in result.output


def test_resolve_restricted_to_other_types():
    salesperson = _salesperson()

    result = runner.invoke(app, ["resolve", salesperson.referral_code, "--types", "user,company"])

    assert result.exit_code == 1


def test_referral_code_for_salesperson():
    salesperson = _salesperson()

    result = runner.invoke(app, ["referral-code", EntityType.SALESPERSON.value, salesperson.id])

    assert result.exit_code == 0
    assert salesperson.referral_code in result.output


def test_reconcile_and_sweep_on_empty_database():
    assert runner.invoke(app, ["reconcile"]).exit_code == 0
    assert runner.invoke(app, ["sweep-otps"]).exit_code == 0


def test_commissions_empty():
    result = runner.invoke(app, ["commissions", "missing"])

    assert result.exit_code == 0
    assert "No commissions found" in result.output


def test_commissions_for_salesperson():
    salesperson = _salesperson()
    referred = UserAccount(
        email="new@example.com",
        full_name="New",
        password_hash="x",
        user_type=EntityType.USER,
    )
    with db.session() as session:
        session.add(referred)
    AttributionLedger(db).attribute(salesperson.id, EntityType.SALESPERSON, referred.id, EntityType.USER)

    result = runner.invoke(app, ["commissions", salesperson.id])

    assert result.exit_code == 0
    assert "1 referrals, 1 earned" in result.output
