"""Tests for the diamondtier command-line interface."""

from typer.testing import CliRunner

from diamondtier.affiliates.models import AffiliateCommission, CommissionStatus
from diamondtier.applications.service import application_service
from diamondtier.auth.local import auth_service
from diamondtier.cli import app
from diamondtier.storage.db import db

runner = CliRunner()


def test_seed_tiers():
    result = runner.invoke(app, ["seed-tiers"])

    assert result.exit_code == 0
    assert "platinum" in result.output


def test_create_admin_from_env():
    result = runner.invoke(
        app,
        ["create-admin", "--email", "ops@diamondtiercapital.com", "--super"],
        env={"ADMIN_PASSWORD": "Adm1n!Password"},
    )

    assert result.exit_code == 0
    admin = auth_service.authenticate_admin("ops@diamondtiercapital.com", "Adm1n!Password")
    assert admin.is_super_admin


def test_create_admin_duplicate(admin):
    result = runner.invoke(
        app,
        ["create-admin", "--email", "admin@diamondtiercapital.com"],
        env={"ADMIN_PASSWORD": "Adm1n!Password"},
    )
    assert result.exit_code == 1


def test_payout(jane, form):
    for _ in range(2):
        application_service.submit_application(form, "ABC123")
    with db.session() as session:
        ids = [c.id for c in session.query(AffiliateCommission).all()]

    result = runner.invoke(app, ["payout", ids[0]])

    assert result.exit_code == 0
    with db.session() as session:
        statuses = {c.id: c.status for c in session.query(AffiliateCommission).all()}
    assert statuses[ids[0]] == CommissionStatus.PAID.value
    assert statuses[ids[1]] == CommissionStatus.PENDING.value


def test_fix_tracking_reports_failures(form):
    application_service.submit_application(form, "NOPE99")

    result = runner.invoke(app, ["fix-tracking"])

    assert result.exit_code == 1
    assert "Invalid referral code" in result.output


def test_retries_empty():
    result = runner.invoke(app, ["retries"])

    assert result.exit_code == 0
    assert "No retry records found" in result.output
