"""Affiliate management: accounts, tiers, stats and payouts."""

from datetime import datetime
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from diamondtier.affiliates.models import (
    Affiliate,
    AffiliateClick,
    AffiliateCommission,
    AffiliateNotification,
    AffiliatePayout,
    AffiliateRelationship,
    AffiliateStatus,
    AffiliateTier,
    AffiliateTierName,
    CommissionStatus,
    MLMSetting,
)
from diamondtier.affiliates.utils import generate_referral_code, normalize_referral_code
from diamondtier.logging_config import get_logger
from diamondtier.settings import settings
from diamondtier.storage.db import db
from diamondtier.storage.models import Application, ApplicationStatus

logger = get_logger(__name__)

DEFAULT_TIERS = {
    AffiliateTierName.BRONZE.value: (5.0, "Entry tier"),
    AffiliateTierName.SILVER.value: (7.5, "Consistent referrers"),
    AffiliateTierName.GOLD.value: (10.0, "High-volume partners"),
    AffiliateTierName.PLATINUM.value: (12.5, "Strategic partners"),
}

_UPDATABLE_FIELDS = {
    "first_name",
    "last_name",
    "name",
    "email",
    "phone",
    "company_name",
    "website",
    "tier",
    "status",
    "payment_method",
    "payment_details",
    "notes",
}


class AffiliateError(Exception):
    """Affiliate operation error."""
    pass


class AffiliateNotFound(AffiliateError):
    pass


def affiliate_to_dict(affiliate: Affiliate) -> dict[str, Any]:
    return {
        "id": affiliate.id,
        "name": affiliate.name,
        "first_name": affiliate.first_name,
        "last_name": affiliate.last_name,
        "email": affiliate.email,
        "phone": affiliate.phone,
        "company_name": affiliate.company_name,
        "website": affiliate.website,
        "referral_code": affiliate.referral_code,
        "referral_link": f"{settings.site_url}/?ref={affiliate.referral_code}",
        "status": affiliate.status,
        "tier": affiliate.tier,
        "payment_method": affiliate.payment_method,
        "created_at": affiliate.created_at.isoformat() if affiliate.created_at else None,
    }


def commission_to_dict(commission: AffiliateCommission) -> dict[str, Any]:
    return {
        "id": commission.id,
        "affiliate_id": commission.affiliate_id,
        "application_id": commission.application_id,
        "amount": commission.amount,
        "rate": commission.rate,
        "level": commission.level,
        "status": commission.status,
        "payout_date": commission.payout_date.isoformat() if commission.payout_date else None,
        "created_at": commission.created_at.isoformat() if commission.created_at else None,
    }


class AffiliateService:
    """Service for managing affiliates and their commissions."""

    def __init__(self):
        self.logger = get_logger(__name__)

    # ==================== ACCOUNTS ====================

    def create_affiliate(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: str | None = None,
        company_name: str | None = None,
        website: str | None = None,
        tier: str = AffiliateTierName.BRONZE.value,
        status: str = AffiliateStatus.ACTIVE.value,
        payment_method: str | None = None,
        payment_details: dict | None = None,
        notes: str | None = None,
        referral_source: str | None = None,
        parent_referral_code: str | None = None,
        referral_code: str | None = None,
        password_hash: str | None = None,
    ) -> Affiliate:
        """Create an affiliate with a unique referral code.

        Args:
            first_name: First name
            last_name: Last name
            email: Contact email (unique)
            tier: Commission tier
            status: Initial status (registrations start as pending)
            parent_referral_code: Code of the recruiting affiliate, if any
            referral_code: Explicit code, generated when omitted

        Returns:
            Created affiliate

        Raises:
            AffiliateError: Duplicate email/code or invalid tier/status
        """
        self._validate_tier(tier)
        self._validate_status(status)
        email = email.lower().strip()

        with db.session() as session:
            if session.query(Affiliate).filter(Affiliate.email == email).first():
                raise AffiliateError("An affiliate with this email already exists")

            if referral_code:
                code = normalize_referral_code(referral_code)
                if session.query(Affiliate).filter(Affiliate.referral_code == code).first():
                    raise AffiliateError("Referral code already in use")
            else:
                code = generate_referral_code(first_name, last_name)
                attempts = 0
                while session.query(Affiliate).filter(Affiliate.referral_code == code).first():
                    attempts += 1
                    if attempts >= 10:
                        raise AffiliateError("Could not generate a unique referral code")
                    code = generate_referral_code(first_name, last_name)

            affiliate = Affiliate(
                first_name=first_name,
                last_name=last_name,
                name=f"{first_name} {last_name}".strip(),
                email=email,
                phone=phone,
                company_name=company_name,
                website=website,
                referral_code=code,
                tier=tier,
                status=status,
                payment_method=payment_method,
                payment_details=payment_details,
                notes=notes,
                referral_source=referral_source,
                password_hash=password_hash,
            )
            session.add(affiliate)
            session.flush()

            if parent_referral_code:
                parent = session.query(Affiliate).filter(
                    Affiliate.referral_code == normalize_referral_code(parent_referral_code)
                ).first()
                if parent:
                    session.add(AffiliateRelationship(
                        parent_affiliate_id=parent.id,
                        child_affiliate_id=affiliate.id,
                        level=1,
                    ))
                    # Inherit the parent's upline one level further away
                    upline = session.query(AffiliateRelationship).filter(
                        AffiliateRelationship.child_affiliate_id == parent.id
                    ).all()
                    for link in upline:
                        session.add(AffiliateRelationship(
                            parent_affiliate_id=link.parent_affiliate_id,
                            child_affiliate_id=affiliate.id,
                            level=link.level + 1,
                        ))
                else:
                    self.logger.warning("parent_affiliate_not_found", code=parent_referral_code)

            try:
                session.commit()
            except IntegrityError:
                raise AffiliateError("An affiliate with this email or code already exists")
            session.refresh(affiliate)

            self.logger.info(
                "affiliate_created",
                affiliate_id=affiliate.id,
                code=code,
                status=status,
            )
            return affiliate

    def get_affiliate(self, affiliate_id: str) -> Affiliate | None:
        with db.session() as session:
            return session.get(Affiliate, affiliate_id)

    def get_by_referral_code(self, code: str) -> Affiliate | None:
        code = normalize_referral_code(code)
        if not code:
            return None
        with db.session() as session:
            return session.query(Affiliate).filter(Affiliate.referral_code == code).first()

    def get_by_email(self, email: str) -> Affiliate | None:
        with db.session() as session:
            return session.query(Affiliate).filter(Affiliate.email == email.lower().strip()).first()

    def list_affiliates(self, status: str | None = None) -> list[Affiliate]:
        with db.session() as session:
            query = session.query(Affiliate)
            if status:
                query = query.filter(Affiliate.status == status)
            return query.order_by(Affiliate.created_at.desc()).all()

    def update_affiliate(self, affiliate_id: str, **changes: Any) -> Affiliate:
        """Update editable affiliate fields.

        Unknown keys and None values are ignored.

        Raises:
            AffiliateNotFound: No such affiliate
            AffiliateError: Invalid tier/status
        """
        updates = {k: v for k, v in changes.items() if k in _UPDATABLE_FIELDS and v is not None}
        if "tier" in updates:
            self._validate_tier(updates["tier"])
        if "status" in updates:
            self._validate_status(updates["status"])
        if "email" in updates:
            updates["email"] = updates["email"].lower().strip()

        with db.session() as session:
            affiliate = session.get(Affiliate, affiliate_id)
            if not affiliate:
                raise AffiliateNotFound(f"Affiliate {affiliate_id} not found")

            for key, value in updates.items():
                setattr(affiliate, key, value)
            if ("first_name" in updates or "last_name" in updates) and "name" not in updates:
                affiliate.name = f"{affiliate.first_name or ''} {affiliate.last_name or ''}".strip()
            affiliate.updated_at = datetime.utcnow()

            try:
                session.commit()
            except IntegrityError:
                raise AffiliateError("An affiliate with this email already exists")
            session.refresh(affiliate)

            self.logger.info("affiliate_updated", affiliate_id=affiliate_id, fields=sorted(updates))
            return affiliate

    def deactivate_affiliate(self, affiliate_id: str) -> Affiliate:
        return self.update_affiliate(affiliate_id, status=AffiliateStatus.INACTIVE.value)

    def set_password_hash(self, affiliate_id: str, password_hash: str) -> None:
        with db.session() as session:
            affiliate = session.get(Affiliate, affiliate_id)
            if not affiliate:
                raise AffiliateNotFound(f"Affiliate {affiliate_id} not found")
            affiliate.password_hash = password_hash
            affiliate.updated_at = datetime.utcnow()

    def _validate_tier(self, tier: str) -> None:
        if tier not in {t.value for t in AffiliateTierName}:
            raise AffiliateError(f"Unknown tier '{tier}'")

    def _validate_status(self, status: str) -> None:
        if status not in {s.value for s in AffiliateStatus}:
            raise AffiliateError(f"Unknown status '{status}'")

    # ==================== TIERS & MLM ====================

    def seed_default_tiers(self) -> int:
        """Insert the default tiers that are missing. Returns number created."""
        created = 0
        with db.session() as session:
            existing = {t.name for t in session.query(AffiliateTier).all()}
            for name, (rate, description) in DEFAULT_TIERS.items():
                if name in existing:
                    continue
                session.add(AffiliateTier(name=name, commission_rate=rate, description=description))
                created += 1

        if created:
            self.logger.info("affiliate_tiers_seeded", created=created)
        return created

    def list_tiers(self) -> list[AffiliateTier]:
        with db.session() as session:
            return session.query(AffiliateTier).order_by(AffiliateTier.commission_rate.desc()).all()

    def update_tier_rate(self, name: str, commission_rate: float) -> AffiliateTier:
        self._validate_tier(name)
        if commission_rate < 0 or commission_rate > 100:
            raise AffiliateError("Commission rate must be between 0 and 100")

        with db.session() as session:
            tier = session.query(AffiliateTier).filter(AffiliateTier.name == name).first()
            if not tier:
                tier = AffiliateTier(name=name, commission_rate=commission_rate)
                session.add(tier)
            else:
                tier.commission_rate = commission_rate
            session.commit()
            session.refresh(tier)

            self.logger.info("affiliate_tier_updated", tier=name, rate=commission_rate)
            return tier

    def get_mlm_settings(self) -> list[MLMSetting]:
        with db.session() as session:
            return session.query(MLMSetting).order_by(MLMSetting.level.asc()).all()

    def replace_mlm_settings(self, levels: list[dict[str, Any]]) -> list[MLMSetting]:
        """Replace all MLM levels.

        Args:
            levels: Items with "level", "commission_percentage" and optional "description"
        """
        seen = set()
        for item in levels:
            if item["level"] < 1:
                raise AffiliateError("MLM levels start at 1")
            if item["level"] in seen:
                raise AffiliateError(f"Duplicate MLM level {item['level']}")
            seen.add(item["level"])

        with db.session() as session:
            session.query(MLMSetting).delete()
            for item in levels:
                session.add(MLMSetting(
                    level=item["level"],
                    commission_percentage=item["commission_percentage"],
                    description=item.get("description"),
                ))

        self.logger.info("mlm_settings_replaced", levels=len(levels))
        return self.get_mlm_settings()

    # ==================== STATS ====================

    def get_affiliate_stats(self, affiliate_id: str) -> dict[str, Any]:
        """Clicks, applications by status and commission totals."""
        with db.session() as session:
            total_clicks = (
                session.query(func.count(AffiliateClick.id))
                .filter(AffiliateClick.affiliate_id == affiliate_id)
                .scalar()
                or 0
            )

            status_rows = (
                session.query(Application.status, func.count(Application.id))
                .filter(Application.affiliate_id == affiliate_id, Application.is_test.is_(False))
                .group_by(Application.status)
                .all()
            )
            by_status = {status: count for status, count in status_rows}
            total_applications = sum(by_status.values())

            commission_rows = (
                session.query(AffiliateCommission.status, func.sum(AffiliateCommission.amount))
                .filter(AffiliateCommission.affiliate_id == affiliate_id)
                .group_by(AffiliateCommission.status)
                .all()
            )
            totals = {status: float(total or 0) for status, total in commission_rows}

        conversion_rate = (total_applications / total_clicks) * 100 if total_clicks > 0 else 0

        return {
            "totalClicks": total_clicks,
            "totalApplications": total_applications,
            "approvedApplications": by_status.get(ApplicationStatus.APPROVED.value, 0),
            "pendingApplications": (
                by_status.get(ApplicationStatus.PENDING.value, 0)
                + by_status.get(ApplicationStatus.IN_REVIEW.value, 0)
            ),
            "rejectedApplications": by_status.get(ApplicationStatus.REJECTED.value, 0),
            "totalCommissions": round(sum(totals.values()), 2),
            "paidCommissions": round(totals.get(CommissionStatus.PAID.value, 0.0), 2),
            "pendingCommissions": round(totals.get(CommissionStatus.PENDING.value, 0.0), 2),
            "conversionRate": round(conversion_rate, 2),
        }

    # ==================== COMMISSIONS & PAYOUTS ====================

    def list_commissions(
        self,
        affiliate_id: str | None = None,
        status: str | None = None,
    ) -> list[AffiliateCommission]:
        with db.session() as session:
            query = session.query(AffiliateCommission)
            if affiliate_id:
                query = query.filter(AffiliateCommission.affiliate_id == affiliate_id)
            if status:
                query = query.filter(AffiliateCommission.status == status)
            return query.order_by(AffiliateCommission.created_at.desc()).all()

    def payout_commissions(self, commission_ids: list[str]) -> int:
        """Mark the given commissions as paid.

        Commissions already paid keep their original payout date.

        Args:
            commission_ids: Commission IDs selected by the admin

        Returns:
            Number of commissions transitioned to paid
        """
        if not commission_ids:
            raise AffiliateError("Commission IDs are required")

        now = datetime.utcnow()
        with db.session() as session:
            updated = (
                session.query(AffiliateCommission)
                .filter(
                    AffiliateCommission.id.in_(commission_ids),
                    AffiliateCommission.status == CommissionStatus.PENDING.value,
                )
                .update(
                    {
                        AffiliateCommission.status: CommissionStatus.PAID.value,
                        AffiliateCommission.payout_date: now,
                        AffiliateCommission.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )

        self.logger.info("commissions_paid", requested=len(commission_ids), updated=updated)
        return updated

    def create_payout(
        self,
        affiliate_id: str,
        payment_method: str,
        payment_details: dict | None = None,
    ) -> AffiliatePayout:
        """Pay every pending commission of one affiliate in a single payout."""
        now = datetime.utcnow()
        with db.session() as session:
            affiliate = session.get(Affiliate, affiliate_id)
            if not affiliate:
                raise AffiliateNotFound(f"Affiliate {affiliate_id} not found")

            pending = (
                session.query(AffiliateCommission)
                .filter(
                    AffiliateCommission.affiliate_id == affiliate_id,
                    AffiliateCommission.status == CommissionStatus.PENDING.value,
                )
                .all()
            )
            if not pending:
                raise AffiliateError("No pending commissions to pay out")

            payout = AffiliatePayout(
                affiliate_id=affiliate_id,
                amount=round(sum(c.amount for c in pending), 2),
                commission_count=len(pending),
                payment_method=payment_method,
                payment_details=payment_details,
            )
            session.add(payout)
            session.flush()

            for commission in pending:
                commission.status = CommissionStatus.PAID.value
                commission.payout_date = now
                commission.payout_id = payout.id

            session.commit()
            session.refresh(payout)

            self.logger.info(
                "affiliate_payout_created",
                affiliate_id=affiliate_id,
                payout_id=payout.id,
                amount=payout.amount,
                commissions=payout.commission_count,
            )
            return payout

    # ==================== NOTIFICATIONS ====================

    def list_notifications(self, affiliate_id: str, unread_only: bool = False) -> list[AffiliateNotification]:
        with db.session() as session:
            query = session.query(AffiliateNotification).filter(
                AffiliateNotification.affiliate_id == affiliate_id
            )
            if unread_only:
                query = query.filter(AffiliateNotification.read.is_(False))
            return query.order_by(AffiliateNotification.created_at.desc()).all()

    def mark_notifications_read(self, affiliate_id: str, notification_ids: list[str] | None = None) -> int:
        with db.session() as session:
            query = session.query(AffiliateNotification).filter(
                AffiliateNotification.affiliate_id == affiliate_id,
                AffiliateNotification.read.is_(False),
            )
            if notification_ids:
                query = query.filter(AffiliateNotification.id.in_(notification_ids))
            return query.update({AffiliateNotification.read: True}, synchronize_session=False)


# Singleton instance
affiliate_service = AffiliateService()
