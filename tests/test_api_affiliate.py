"""HTTP tests for affiliate tracking, intake and admin tooling."""

from diamondtier.affiliates.models import AffiliateClick, AffiliateCommission, CommissionStatus
from diamondtier.settings import settings
from diamondtier.storage.db import db
from diamondtier.storage.models import Application


class TestTrackEndpoint:
    def test_valid_code_records_click(self, client, jane):
        response = client.post("/api/affiliate/track", json={"referralCode": "ABC123"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        with db.session() as session:
            click = session.query(AffiliateClick).one()
            assert click.referral_code == "ABC123"
            assert click.referrer_url == "direct"

    def test_snake_case_body_accepted(self, client, jane):
        response = client.post(
            "/api/affiliate/track",
            json={"referral_code": "ABC123", "referrer_url": "https://partner.example/blog"},
        )

        assert response.status_code == 200
        with db.session() as session:
            assert session.query(AffiliateClick).one().referrer_url == "https://partner.example/blog"

    def test_referer_header_used_when_body_has_no_referrer(self, client, jane):
        response = client.post(
            "/api/affiliate/track",
            json={"referralCode": "ABC123"},
            headers={"Referer": "https://news.example/post"},
        )

        assert response.status_code == 200
        with db.session() as session:
            assert session.query(AffiliateClick).one().referrer_url == "https://news.example/post"

    def test_unknown_code(self, client, jane):
        response = client.post("/api/affiliate/track", json={"referralCode": "NOPE99"})
        assert response.status_code == 404

    def test_missing_code(self, client):
        response = client.post("/api/affiliate/track", json={})
        assert response.status_code == 400


class TestReferralVisitToCommission:
    def test_visit_then_submit(self, client, jane, application_payload):
        visit = client.get("/?ref=ABC123")

        assert visit.status_code == 200
        assert client.cookies.get(settings.referral_cookie_name) == "ABC123"

        submitted = client.post("/api/applications", json=application_payload)

        assert submitted.status_code == 201
        body = submitted.json()
        assert body["attributed"] is True
        with db.session() as session:
            assert session.query(AffiliateClick).filter(AffiliateClick.referral_code == "ABC123").count() == 1
            application = session.get(Application, body["applicationId"])
            assert application.affiliate_id == jane.id
            commission = session.query(AffiliateCommission).one()
            assert commission.affiliate_id == jane.id
            assert commission.status == CommissionStatus.PENDING.value

    def test_unknown_visit_code_does_not_break_page(self, client):
        response = client.get("/?ref=NOPE99")

        assert response.status_code == 200
        with db.session() as session:
            assert session.query(AffiliateClick).count() == 0

    def test_body_code_wins_over_cookie(self, client, jane, application_payload):
        client.get("/?ref=ABC123")

        response = client.post("/api/applications", json={**application_payload, "referralCode": "NOPE99"})

        assert response.status_code == 201
        assert response.json()["attributed"] is False

    def test_blank_body_code_falls_back_to_cookie(self, client, jane, application_payload):
        client.get("/?ref=ABC123")

        response = client.post("/api/applications", json={**application_payload, "referralCode": "   "})

        assert response.status_code == 201
        assert response.json()["attributed"] is True
        with db.session() as session:
            assert session.get(Application, response.json()["applicationId"]).affiliate_id == jane.id

    def test_blank_code_is_not_reported_as_attributed(self, client, application_payload):
        response = client.post("/api/applications", json={**application_payload, "referralCode": "   "})

        assert response.status_code == 201
        assert response.json()["attributed"] is False
        with db.session() as session:
            assert session.get(Application, response.json()["applicationId"]).affiliate_id is None

    def test_terms_required(self, client, application_payload):
        response = client.post("/api/applications", json={**application_payload, "termsAgreed": False})
        assert response.status_code == 400

    def test_invalid_email(self, client, application_payload):
        response = client.post("/api/applications", json={**application_payload, "email": "not-an-email"})
        assert response.status_code == 422


class TestAdminTooling:
    def test_requires_admin(self, client):
        assert client.post("/api/affiliate/fix-tracking").status_code == 401
        assert client.post("/api/admin/affiliate/payout", json={"commissionIds": ["x"]}).status_code == 401

    def test_retry_tracking(self, client, admin_headers, application_payload):
        submitted = client.post(
            "/api/applications", json={**application_payload, "referralCode": "LATE01"}
        ).json()
        client.post(
            "/api/admin/affiliates",
            json={"firstName": "Ana", "lastName": "Lima", "email": "ana@example.com", "referralCode": "LATE01"},
            headers=admin_headers,
        )

        response = client.post(
            "/api/affiliate/retry-tracking",
            json={"applicationId": submitted["applicationId"], "referralCode": "LATE01"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        retries = client.get("/api/admin/tracking-retries?status=completed", headers=admin_headers).json()
        assert len(retries["retries"]) == 1

    def test_retry_tracking_failure_surfaces_error(self, client, admin_headers, application_payload):
        submitted = client.post(
            "/api/applications", json={**application_payload, "referralCode": "NOPE99"}
        ).json()

        response = client.post(
            "/api/affiliate/retry-tracking",
            json={"applicationId": submitted["applicationId"], "referralCode": "NOPE99"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid referral code"

    def test_retry_tracking_missing_fields(self, client, admin_headers):
        response = client.post("/api/affiliate/retry-tracking", json={}, headers=admin_headers)
        assert response.status_code == 400

    def test_fix_tracking(self, client, admin_headers, jane):
        response = client.post("/api/affiliate/fix-tracking", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": 0, "fixed": 0, "failed": 0, "errors": []}

    def test_tracking_test(self, client, admin_headers, jane):
        response = client.post("/api/affiliate/test", json={"referralCode": "ABC123"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_debug_requires_code_or_app(self, client, admin_headers, jane):
        assert client.get("/api/affiliate/debug", headers=admin_headers).status_code == 400

        by_code = client.get("/api/affiliate/debug?code=ABC123", headers=admin_headers)
        assert by_code.json()["valid"] is True

        by_app = client.get("/api/affiliate/debug?app=missing", headers=admin_headers)
        assert by_app.json()["hasAffiliate"] is False

    def test_debug_tracking(self, client, admin_headers, jane, application_payload):
        submitted = client.post("/api/applications", json=application_payload).json()

        response = client.post(
            "/api/affiliate/debug-tracking",
            json={"applicationId": submitted["applicationId"], "referralCode": "ABC123"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        diagnostics = response.json()["diagnostics"]
        assert diagnostics["affiliate"]["id"] == jane.id
        assert diagnostics["trackingResult"]["success"] is True

    def test_payout_three_of_four(self, client, admin_headers, jane, application_payload):
        for _ in range(4):
            client.post("/api/applications", json={**application_payload, "referralCode": "ABC123"})
        commissions = client.get("/api/admin/commissions", headers=admin_headers).json()["commissions"]
        ids = [c["id"] for c in commissions]

        response = client.post(
            "/api/admin/affiliate/payout", json={"commissionIds": ids[:3]}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "updated": 3}
        after = {c["id"]: c for c in client.get("/api/admin/commissions", headers=admin_headers).json()["commissions"]}
        assert all(after[i]["status"] == "paid" and after[i]["payout_date"] for i in ids[:3])
        assert after[ids[3]]["status"] == "pending"
        assert after[ids[3]]["payout_date"] is None

    def test_payout_requires_ids(self, client, admin_headers):
        response = client.post("/api/admin/affiliate/payout", json={"commissionIds": []}, headers=admin_headers)
        assert response.status_code == 400
