"""Tests for application intake and admin review."""

import dataclasses

import pytest

from diamondtier.affiliates.models import AffiliateCommission
from diamondtier.applications.service import (
    ApplicationError,
    ApplicationNotFound,
    application_service,
    normalize_phone,
)
from diamondtier.storage.db import db
from diamondtier.storage.models import ApplicationStatus


class TestSubmit:
    def test_creates_application_with_details(self, form):
        result = application_service.submit_application(form)

        assert result["success"]
        assert result["referenceId"].startswith("APP")
        details = application_service.get_application(result["applicationId"])
        assert details["status"] == ApplicationStatus.PENDING.value
        assert details["applicant_details"]["email"] == "sam@carterlogistics.com"
        assert details["applicant_details"]["phone"] == "+12127365000"
        assert details["business_details"]["business_name"] == "Carter Logistics LLC"
        assert details["funding_requests"]["funding_amount"] == "$50,000-$100,000"
        assert details["additional_information"]["terms_agreed"] is True
        assert details["affiliate_id"] is None

    def test_terms_must_be_accepted(self, form):
        with pytest.raises(ApplicationError):
            application_service.submit_application(dataclasses.replace(form, terms_agreed=False))

    def test_referral_code_attributes(self, jane, form):
        result = application_service.submit_application(form, "ABC123")

        assert result["attributed"]
        details = application_service.get_application(result["applicationId"])
        assert details["affiliate_id"] == jane.id
        with db.session() as session:
            commission = session.query(AffiliateCommission).one()
            assert commission.affiliate_id == jane.id

    def test_unknown_code_still_submits(self, form):
        result = application_service.submit_application(form, "NOPE99")

        assert result["success"]
        assert application_service.get_application(result["applicationId"])["affiliate_id"] is None


class TestAdminReview:
    def test_update_status(self, form):
        application_id = application_service.submit_application(form)["applicationId"]

        updated = application_service.update_status(application_id, ApplicationStatus.APPROVED.value)

        assert updated["status"] == "approved"

    def test_unknown_status(self, form):
        application_id = application_service.submit_application(form)["applicationId"]
        with pytest.raises(ApplicationError):
            application_service.update_status(application_id, "funded")

    def test_missing_application(self):
        with pytest.raises(ApplicationNotFound):
            application_service.get_application("missing")

    def test_archive_hides_from_default_list(self, form):
        kept = application_service.submit_application(form)["applicationId"]
        archived = application_service.submit_application(form)["applicationId"]

        application_service.archive(archived)

        listed = [a["id"] for a in application_service.list_applications()["applications"]]
        assert listed == [kept]
        archived_list = application_service.list_applications(archived=True)["applications"]
        assert [a["id"] for a in archived_list] == [archived]

    def test_search_and_filters(self, jane, form):
        application_service.submit_application(form, "ABC123")
        application_service.submit_application(dataclasses.replace(form, business_name="Bright Bakery"))

        assert application_service.list_applications(search="bakery")["total"] == 1
        assert application_service.list_applications(affiliate_id=jane.id)["total"] == 1
        assert application_service.list_applications(status="approved")["total"] == 0

    def test_update_notes(self, form):
        application_id = application_service.submit_application(form)["applicationId"]

        application_service.update_notes(application_id, "Called, waiting on bank statements")

        assert application_service.get_application(application_id)["notes"] == "Called, waiting on bank statements"

    def test_dashboard_stats(self, jane, form):
        application_service.submit_application(form, "ABC123")
        rejected = application_service.submit_application(form, "NOPE99")["applicationId"]
        application_service.update_status(rejected, ApplicationStatus.REJECTED.value)

        stats = application_service.get_dashboard_stats()

        assert stats["totalApplications"] == 2
        assert stats["byStatus"]["pending"] == 1
        assert stats["byStatus"]["rejected"] == 1
        assert stats["attributedApplications"] == 1
        assert stats["pendingTrackingRetries"] == 1
        assert stats["pendingCommissions"] == 5000.0
        assert stats["paidCommissions"] == 0.0


def test_normalize_phone():
    assert normalize_phone("(212) 736-5000") == "+12127365000"
    assert normalize_phone(" call me ") == "call me"
