"""Pytest configuration and shared fixtures for all tests."""

import os
import tempfile
from pathlib import Path

# Settings are read at import time, so the environment must be ready first
_db_dir = tempfile.mkdtemp(prefix="diamondtier-tests-")
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_db_dir) / 'test.db'}"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-0123456789"
os.environ["ADMIN_BOOTSTRAP_TOKEN"] = "test-bootstrap-token"
os.environ["SITE_URL"] = "https://test.diamondtiercapital.com"
os.environ.pop("SENDGRID_API_KEY", None)

import pytest
from fastapi.testclient import TestClient

from diamondtier.affiliates.models import AffiliateTierName
from diamondtier.affiliates.service import affiliate_service
from diamondtier.api.main import app
from diamondtier.applications.service import ApplicationFormData
from diamondtier.auth.local import KIND_ADMIN, auth_service
from diamondtier.auth.lockout import admin_lockout, affiliate_lockout
from diamondtier.auth.models import AdminRole
from diamondtier.storage.db import db

ADMIN_PASSWORD = "Adm1n!Password"


@pytest.fixture(autouse=True)
def fresh_database():
    """Recreate the schema and default tiers for every test."""
    db.drop_tables()
    db.create_tables()
    affiliate_service.seed_default_tiers()
    admin_lockout.reset()
    affiliate_lockout.reset()
    yield


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin():
    return auth_service.create_admin(
        "admin@diamondtiercapital.com",
        ADMIN_PASSWORD,
        name="Back Office",
        role=AdminRole.SUPER_ADMIN.value,
    )


@pytest.fixture
def admin_headers(admin):
    token = auth_service.create_session_token(admin.id, KIND_ADMIN, role=admin.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def jane():
    """Active gold-tier affiliate owning code ABC123."""
    return affiliate_service.create_affiliate(
        first_name="Jane",
        last_name="Doe",
        email="jane@example.com",
        tier=AffiliateTierName.GOLD.value,
        referral_code="ABC123",
    )


@pytest.fixture
def form() -> ApplicationFormData:
    return ApplicationFormData(
        full_name="Sam Carter",
        email="Sam@CarterLogistics.com",
        phone="(212) 736-5000",
        business_name="Carter Logistics LLC",
        business_type="LLC",
        industry="Transportation",
        years_in_business="3-5 years",
        funding_amount="$50,000-$100,000",
        funding_purpose="Equipment",
        timeframe="Within 30 days",
        terms_agreed=True,
    )


@pytest.fixture
def application_payload() -> dict:
    """Funnel submission as the browser sends it (camelCase)."""
    return {
        "fullName": "Sam Carter",
        "email": "sam@carterlogistics.com",
        "phone": "(212) 736-5000",
        "businessName": "Carter Logistics LLC",
        "businessType": "LLC",
        "industry": "Transportation",
        "yearsInBusiness": "3-5 years",
        "fundingAmount": "$50,000-$100,000",
        "fundingPurpose": "Equipment",
        "timeframe": "Within 30 days",
        "termsAgreed": True,
    }
