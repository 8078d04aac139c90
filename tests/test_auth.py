"""Tests for admin and affiliate authentication."""

import time
from datetime import timedelta

import pytest

from diamondtier.affiliates.models import AffiliateRelationship, AffiliateStatus
from diamondtier.affiliates.service import affiliate_service
from diamondtier.auth.local import KIND_ADMIN, KIND_AFFILIATE, auth_service
from diamondtier.auth.lockout import AccountLocked, LoginLockout
from diamondtier.settings import settings
from diamondtier.storage.db import db

ADMIN_PASSWORD = "Adm1n!Password"
NEW_PASSWORD = "N3w!Passw0rd"


def _register(client, email="rita@example.com", **extra):
    return client.post(
        "/api/affiliate-program/register",
        json={
            "firstName": "Rita",
            "lastName": "Moreno",
            "email": email,
            "password": NEW_PASSWORD,
            **extra,
        },
    )


class TestAdminLogin:
    def test_success_sets_session(self, client, admin):
        response = client.post(
            "/api/admin-login",
            json={"email": "Admin@DiamondTierCapital.com", "password": ADMIN_PASSWORD},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["user"]["role"] == "super_admin"
        assert client.cookies.get(settings.session_cookie_name) == body["accessToken"]

        session = client.get("/api/auth/session").json()
        assert session["authenticated"] is True
        assert session["kind"] == KIND_ADMIN

    def test_wrong_password(self, client, admin):
        response = client.post(
            "/api/admin-login",
            json={"email": "admin@diamondtiercapital.com", "password": "wrong"},
        )
        assert response.status_code == 401

    def test_lockout_after_repeated_failures(self, client, admin):
        for _ in range(5):
            client.post("/api/admin-login", json={"email": "admin@diamondtiercapital.com", "password": "wrong"})

        response = client.post(
            "/api/admin-login",
            json={"email": "admin@diamondtiercapital.com", "password": ADMIN_PASSWORD},
        )
        assert response.status_code == 429

    def test_deactivated_admin_loses_access(self, client, admin, admin_headers):
        auth_service.set_admin_active(admin.id, False)

        response = client.get("/api/admin/dashboard", headers=admin_headers)
        assert response.status_code == 401

    def test_expired_token_rejected(self, client, admin):
        token = auth_service.create_session_token(
            admin.id, KIND_ADMIN, role=admin.role, expires_delta=timedelta(seconds=-1)
        )

        response = client.get("/api/admin/dashboard", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_affiliate_token_is_not_admin(self, client, jane):
        token = auth_service.create_session_token(jane.id, KIND_AFFILIATE)

        response = client.get("/api/admin/dashboard", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestSession:
    def test_anonymous(self, client):
        assert client.get("/api/auth/session").json() == {"authenticated": False}

    def test_store_token_then_logout(self, client, admin):
        token = auth_service.create_session_token(admin.id, KIND_ADMIN, role=admin.role)

        stored = client.post("/api/auth/session", json={"token": token})
        assert stored.status_code == 200
        assert client.get("/api/auth/session").json()["user"]["email"] == "admin@diamondtiercapital.com"

        client.post("/api/auth/logout")
        assert client.get("/api/auth/session").json()["authenticated"] is False

    def test_store_invalid_token(self, client):
        response = client.post("/api/auth/session", json={"token": "garbage"})
        assert response.status_code == 401


class TestCreateAdmin:
    def test_bootstrap_first_admin(self, client):
        response = client.post(
            "/api/create-admin",
            json={
                "email": "owner@diamondtiercapital.com",
                "password": ADMIN_PASSWORD,
                "bootstrapToken": "test-bootstrap-token",
            },
        )

        assert response.status_code == 201
        assert response.json()["user"]["role"] == "super_admin"

    def test_bootstrap_wrong_token(self, client):
        response = client.post(
            "/api/create-admin",
            json={"email": "owner@diamondtiercapital.com", "password": ADMIN_PASSWORD, "bootstrapToken": "nope"},
        )
        assert response.status_code == 403
        assert auth_service.count_admins() == 0

    def test_bootstrap_token_ignored_once_admin_exists(self, client, admin):
        response = client.post(
            "/api/create-admin",
            json={"email": "second@diamondtiercapital.com", "password": ADMIN_PASSWORD, "bootstrapToken": "test-bootstrap-token"},
        )
        assert response.status_code == 403

    def test_super_admin_creates_admin(self, client, admin_headers):
        response = client.post(
            "/api/create-admin",
            json={"email": "second@diamondtiercapital.com", "password": ADMIN_PASSWORD},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["user"]["role"] == "admin"

    def test_weak_password(self, client):
        response = client.post(
            "/api/create-admin",
            json={"email": "owner@diamondtiercapital.com", "password": "password", "bootstrapToken": "test-bootstrap-token"},
        )
        assert response.status_code == 422

    def test_plain_admin_cannot_manage_users(self, client, admin):
        plain = auth_service.create_admin("ops@diamondtiercapital.com", ADMIN_PASSWORD)
        token = auth_service.create_session_token(plain.id, KIND_ADMIN, role=plain.role)

        response = client.get("/api/admin/users", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403


class TestPasswordReset:
    def test_forgot_password_never_reveals_accounts(self, client):
        response = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_reset_admin_password(self, client, admin):
        token = auth_service.generate_reset_token("admin@diamondtiercapital.com")

        response = client.post("/api/auth/reset-password", json={"token": token, "newPassword": NEW_PASSWORD})

        assert response.status_code == 200
        assert auth_service.authenticate_admin("admin@diamondtiercapital.com", NEW_PASSWORD) is not None
        assert auth_service.authenticate_admin("admin@diamondtiercapital.com", ADMIN_PASSWORD) is None

    def test_session_token_is_not_a_reset_token(self, client, admin):
        token = auth_service.create_session_token(admin.id, KIND_ADMIN)

        response = client.post("/api/auth/reset-password", json={"token": token, "newPassword": NEW_PASSWORD})
        assert response.status_code == 400


class TestAffiliatePortal:
    def test_register_is_pending(self, client):
        response = _register(client)

        assert response.status_code == 201
        affiliate = response.json()["affiliate"]
        assert affiliate["status"] == AffiliateStatus.PENDING.value
        assert affiliate["referral_code"].startswith("RIMO")

    def test_register_under_referring_affiliate(self, client, jane):
        client.get("/?ref=ABC123")

        _register(client)

        recruit = affiliate_service.get_by_email("rita@example.com")
        with db.session() as session:
            link = session.query(AffiliateRelationship).one()
            assert link.parent_affiliate_id == jane.id
            assert link.child_affiliate_id == recruit.id

    def test_pending_affiliate_cannot_use_portal(self, client):
        _register(client)

        login = client.post(
            "/api/affiliate-program/login", json={"email": "rita@example.com", "password": NEW_PASSWORD}
        )
        assert login.status_code == 200
        assert client.get("/api/affiliate-program/stats").status_code == 403

    def test_active_affiliate_sees_stats(self, client):
        affiliate_id = _register(client).json()["affiliate"]["id"]
        affiliate_service.update_affiliate(affiliate_id, status=AffiliateStatus.ACTIVE.value)

        client.post("/api/affiliate-program/login", json={"email": "rita@example.com", "password": NEW_PASSWORD})
        response = client.get("/api/affiliate-program/stats")

        assert response.status_code == 200
        assert response.json()["totalClicks"] == 0

    def test_inactive_affiliate_cannot_log_in(self, client):
        affiliate_id = _register(client).json()["affiliate"]["id"]
        affiliate_service.deactivate_affiliate(affiliate_id)

        response = client.post(
            "/api/affiliate-program/login", json={"email": "rita@example.com", "password": NEW_PASSWORD}
        )
        assert response.status_code == 401

    def test_portal_requires_session(self, client):
        assert client.get("/api/affiliate-program/me").status_code == 401


class TestLoginLockout:
    def test_locks_after_threshold(self):
        lockout = LoginLockout("admin", threshold=3)
        keys = lockout.keys("Admin@Example.com", "10.0.0.1")

        lockout.record_failure(*keys)
        lockout.record_failure(*keys)
        lockout.check(*keys)
        lockout.record_failure(*keys)

        with pytest.raises(AccountLocked) as exc:
            lockout.check(*keys)
        assert 0 < exc.value.retry_after <= 900

    def test_old_failures_expire(self):
        lockout = LoginLockout("admin", threshold=1, window_seconds=60)
        keys = lockout.keys("a@example.com", "10.0.0.1")
        lockout._failures[keys[0]].append(time.time() - 120)

        lockout.check(*keys)

    def test_check_does_not_keep_clean_keys(self):
        lockout = LoginLockout("admin", window_seconds=60)
        stale = lockout.keys("old@example.com", "10.0.0.2")
        lockout._failures[stale[0]].append(time.time() - 120)

        lockout.check(*lockout.keys("new@example.com", "10.0.0.1"))
        lockout.check(*stale)

        assert lockout._failures == {}

    def test_clear(self):
        lockout = LoginLockout("admin", threshold=1)
        keys = lockout.keys("a@example.com", "10.0.0.1")
        lockout.record_failure(*keys)

        lockout.clear(*keys)

        lockout.check(*keys)

    def test_portals_are_counted_separately(self, client, admin):
        for _ in range(5):
            client.post("/api/admin-login", json={"email": "admin@diamondtiercapital.com", "password": "wrong"})

        response = client.post(
            "/api/affiliate-program/login", json={"email": "admin@diamondtiercapital.com", "password": "wrong"}
        )
        assert response.status_code == 401

    def test_locked_response_has_retry_after(self, client, admin):
        for _ in range(5):
            client.post("/api/admin-login", json={"email": "admin@diamondtiercapital.com", "password": "wrong"})

        response = client.post("/api/admin-login", json={"email": "admin@diamondtiercapital.com", "password": "wrong"})

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0
