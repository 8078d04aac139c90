"""Tests for affiliate management, stats and payouts."""

import re

import pytest

from diamondtier.affiliates.models import (
    AffiliateCommission,
    AffiliatePayout,
    AffiliateRelationship,
    AffiliateStatus,
    CommissionStatus,
)
from diamondtier.affiliates.service import AffiliateError, AffiliateNotFound, affiliate_service
from diamondtier.affiliates.tracking import tracking_service
from diamondtier.applications.service import application_service
from diamondtier.storage.db import db
from diamondtier.storage.models import ApplicationStatus


def _commissions_for(form, count: int) -> list[str]:
    """Submit `count` applications through ABC123 and return their commission IDs."""
    for _ in range(count):
        application_service.submit_application(form, "ABC123")
    with db.session() as session:
        ids = [c.id for c in session.query(AffiliateCommission).all()]
    return ids


class TestAccounts:
    def test_generated_code(self):
        affiliate = affiliate_service.create_affiliate("Maria", "Lopez", "Maria@Example.com")

        assert re.fullmatch(r"MALO[A-Z0-9]{6}", affiliate.referral_code)
        assert affiliate.email == "maria@example.com"
        assert affiliate.status == AffiliateStatus.ACTIVE.value

    def test_duplicate_email(self, jane):
        with pytest.raises(AffiliateError):
            affiliate_service.create_affiliate("Janet", "Doe", "JANE@example.com")

    def test_duplicate_code(self, jane):
        with pytest.raises(AffiliateError):
            affiliate_service.create_affiliate("John", "Doe", "john@example.com", referral_code="ABC123")

    def test_unknown_tier(self):
        with pytest.raises(AffiliateError):
            affiliate_service.create_affiliate("Al", "Bo", "al@example.com", tier="diamond")

    def test_parent_code_creates_relationship(self, jane):
        child = affiliate_service.create_affiliate(
            "Lee", "Park", "lee@example.com", parent_referral_code="ABC123"
        )
        with db.session() as session:
            link = session.query(AffiliateRelationship).one()
            assert link.parent_affiliate_id == jane.id
            assert link.child_affiliate_id == child.id

    def test_update_and_deactivate(self, jane):
        updated = affiliate_service.update_affiliate(jane.id, tier="platinum", last_name="Smith", bogus="x")
        assert updated.tier == "platinum"
        assert updated.name == "Jane Smith"

        deactivated = affiliate_service.deactivate_affiliate(jane.id)
        assert deactivated.status == AffiliateStatus.INACTIVE.value
        # Never deleted
        assert affiliate_service.get_by_referral_code("ABC123") is not None

    def test_update_missing(self):
        with pytest.raises(AffiliateNotFound):
            affiliate_service.update_affiliate("missing", tier="gold")

    def test_list_by_status(self, jane):
        affiliate_service.create_affiliate(
            "Pat", "Kim", "pat@example.com", status=AffiliateStatus.PENDING.value
        )
        pending = affiliate_service.list_affiliates(AffiliateStatus.PENDING.value)
        assert [a.email for a in pending] == ["pat@example.com"]


class TestTiers:
    def test_default_tiers_seeded(self):
        rates = {t.name: t.commission_rate for t in affiliate_service.list_tiers()}
        assert rates == {"bronze": 5.0, "silver": 7.5, "gold": 10.0, "platinum": 12.5}

    def test_seed_is_idempotent(self):
        assert affiliate_service.seed_default_tiers() == 0

    def test_updated_rate_applies_to_new_commissions(self, jane, form):
        affiliate_service.update_tier_rate("gold", 20.0)

        application_service.submit_application(form, "ABC123")

        with db.session() as session:
            assert session.query(AffiliateCommission).one().amount == 10000.0

    def test_rate_out_of_range(self):
        with pytest.raises(AffiliateError):
            affiliate_service.update_tier_rate("gold", 150)

    def test_mlm_settings_reject_duplicate_levels(self):
        with pytest.raises(AffiliateError):
            affiliate_service.replace_mlm_settings([
                {"level": 1, "commission_percentage": 5},
                {"level": 1, "commission_percentage": 2},
            ])


class TestStats:
    def test_stats(self, jane, form):
        tracking_service.record_click("ABC123")
        tracking_service.record_click("ABC123")
        tracking_service.record_click("ABC123")
        tracking_service.record_click("ABC123")
        first = application_service.submit_application(form, "ABC123")["applicationId"]
        application_service.submit_application(form, "ABC123")
        application_service.update_status(first, ApplicationStatus.APPROVED.value)

        stats = affiliate_service.get_affiliate_stats(jane.id)

        assert stats["totalClicks"] == 4
        assert stats["totalApplications"] == 2
        assert stats["approvedApplications"] == 1
        assert stats["pendingApplications"] == 1
        assert stats["totalCommissions"] == 10000.0
        assert stats["pendingCommissions"] == 10000.0
        assert stats["paidCommissions"] == 0.0
        assert stats["conversionRate"] == 50.0

    def test_no_clicks_means_zero_rate(self, jane):
        assert affiliate_service.get_affiliate_stats(jane.id)["conversionRate"] == 0


class TestPayouts:
    def test_pays_only_selected(self, jane, form):
        ids = _commissions_for(form, 4)

        updated = affiliate_service.payout_commissions(ids[:3])

        assert updated == 3
        with db.session() as session:
            by_id = {c.id: c for c in session.query(AffiliateCommission).all()}
        for commission_id in ids[:3]:
            assert by_id[commission_id].status == CommissionStatus.PAID.value
            assert by_id[commission_id].payout_date is not None
        assert by_id[ids[3]].status == CommissionStatus.PENDING.value
        assert by_id[ids[3]].payout_date is None

    def test_already_paid_are_not_counted_again(self, jane, form):
        ids = _commissions_for(form, 2)
        affiliate_service.payout_commissions(ids[:1])

        assert affiliate_service.payout_commissions(ids) == 1

    def test_empty_selection(self):
        with pytest.raises(AffiliateError):
            affiliate_service.payout_commissions([])

    def test_create_payout_for_affiliate(self, jane, form):
        _commissions_for(form, 2)

        payout = affiliate_service.create_payout(jane.id, "ach", {"last4": "6789"})

        assert payout.amount == 10000.0
        assert payout.commission_count == 2
        with db.session() as session:
            assert session.query(AffiliatePayout).count() == 1
            assert all(c.payout_id == payout.id for c in session.query(AffiliateCommission).all())

    def test_create_payout_without_pending(self, jane):
        with pytest.raises(AffiliateError):
            affiliate_service.create_payout(jane.id, "ach")


class TestNotifications:
    def test_mark_read(self, jane, form):
        application_service.submit_application(form, "ABC123")

        assert len(affiliate_service.list_notifications(jane.id, unread_only=True)) == 1
        assert affiliate_service.mark_notifications_read(jane.id) == 1
        assert affiliate_service.list_notifications(jane.id, unread_only=True) == []
