"""Application intake and admin review."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import phonenumbers
from phonenumbers import NumberParseException
from sqlalchemy import func, or_, select
from sqlalchemy.orm import selectinload

from diamondtier.affiliates.models import AffiliateCommission, AffiliateTrackingRetry, CommissionStatus, RetryStatus
from diamondtier.affiliates.tracking import tracking_service
from diamondtier.affiliates.utils import generate_reference_id
from diamondtier.logging_config import get_logger
from diamondtier.storage.db import db
from diamondtier.storage.models import (
    AdditionalInformation,
    ApplicantDetails,
    Application,
    ApplicationStatus,
    ApplicationTagRelation,
    BusinessDetails,
    FundingRequest,
)

logger = get_logger(__name__)

DEFAULT_PHONE_REGION = "US"


class ApplicationError(Exception):
    """Application operation error."""
    pass


class ApplicationNotFound(ApplicationError):
    pass


@dataclass
class ApplicationFormData:
    """Fields collected by the funding funnel."""

    # Personal information
    full_name: str
    email: str
    phone: str

    # Business details
    business_name: str
    business_type: str
    industry: str
    years_in_business: str

    # Financial needs
    funding_amount: str
    funding_purpose: str
    timeframe: str

    terms_agreed: bool = False
    preferred_contact: str = "Email"
    ein: str | None = None
    annual_revenue: str | None = None
    monthly_profit: str | None = None
    credit_score: str | None = None
    bankruptcy: bool = False
    collateral: str | None = None
    hear_about_us: str | None = None
    additional_info: str | None = None
    marketing_consent: bool = False


def normalize_phone(phone: str, region: str = DEFAULT_PHONE_REGION) -> str:
    """Normalize a phone number to E.164.

    Numbers that do not parse as valid are kept as entered; intake never
    rejects an application over its phone format.
    """
    phone = phone.strip()
    try:
        parsed = phonenumbers.parse(phone, region)
    except NumberParseException as e:
        logger.debug("phone_parse_error", phone=phone, error=str(e))
        return phone

    if not phonenumbers.is_valid_number(parsed):
        logger.debug("phone_invalid", phone=phone, region=region)
        return phone
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def application_to_dict(application: Application, detailed: bool = False) -> dict[str, Any]:
    """Serialize an application; children must already be loaded."""
    data: dict[str, Any] = {
        "id": application.id,
        "reference_id": application.reference_id,
        "status": application.status,
        "credit_check_completed": application.credit_check_completed,
        "notes": application.notes,
        "affiliate_id": application.affiliate_id,
        "affiliate_code": application.affiliate_code,
        "folder_id": application.folder_id,
        "tags": [{"id": t.id, "name": t.name, "color": t.color} for t in application.tags],
        "submitted_at": application.submitted_at.isoformat() if application.submitted_at else None,
        "applicant_name": application.applicant.full_name if application.applicant else None,
        "business_name": application.business.business_name if application.business else None,
        "funding_amount": application.funding.funding_amount if application.funding else None,
    }
    if not detailed:
        return data

    applicant = application.applicant
    business = application.business
    funding = application.funding
    additional = application.additional
    data.update({
        "applicant_details": {
            "full_name": applicant.full_name,
            "email": applicant.email,
            "phone": applicant.phone,
            "preferred_contact": applicant.preferred_contact,
        } if applicant else {},
        "business_details": {
            "business_name": business.business_name,
            "business_type": business.business_type,
            "industry": business.industry,
            "years_in_business": business.years_in_business,
            "ein": business.ein,
            "annual_revenue": business.annual_revenue,
            "monthly_profit": business.monthly_profit,
            "credit_score": business.credit_score,
            "bankruptcy_history": business.bankruptcy_history,
        } if business else {},
        "funding_requests": {
            "funding_amount": funding.funding_amount,
            "funding_purpose": funding.funding_purpose,
            "timeframe": funding.timeframe,
            "collateral": funding.collateral,
        } if funding else {},
        "additional_information": {
            "hear_about_us": additional.hear_about_us,
            "additional_info": additional.additional_info,
            "terms_agreed": additional.terms_agreed,
            "marketing_consent": additional.marketing_consent,
        } if additional else {},
    })
    return data


def _with_children(query):
    return query.options(
        selectinload(Application.applicant),
        selectinload(Application.business),
        selectinload(Application.funding),
        selectinload(Application.additional),
        selectinload(Application.tags),
    )


class ApplicationService:
    """Service for funding applications."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def submit_application(
        self,
        form: ApplicationFormData,
        referral_code: str | None = None,
    ) -> dict[str, Any]:
        """Store a funnel submission, then attribute it to an affiliate.

        Attribution runs after the application is committed and can only
        add a retry record on failure; the submission itself stands.

        Args:
            form: Funnel fields
            referral_code: Code captured when the visitor arrived, if any

        Returns:
            Dict with application id, reference id and attribution outcome

        Raises:
            ApplicationError: Terms not accepted
        """
        if not form.terms_agreed:
            raise ApplicationError("Terms must be accepted to submit an application")

        with db.session() as session:
            reference_id = generate_reference_id("APP")
            while session.query(Application.id).filter(Application.reference_id == reference_id).first():
                reference_id = generate_reference_id("APP")

            application = Application(
                reference_id=reference_id,
                status=ApplicationStatus.PENDING.value,
                credit_check_completed=False,
                notes=form.additional_info or "",
                submitted_at=datetime.utcnow(),
            )
            application.applicant = ApplicantDetails(
                full_name=form.full_name,
                email=form.email.lower(),
                phone=normalize_phone(form.phone),
                preferred_contact=form.preferred_contact or "Email",
            )
            application.business = BusinessDetails(
                business_name=form.business_name,
                business_type=form.business_type,
                industry=form.industry,
                years_in_business=form.years_in_business,
                ein=form.ein,
                annual_revenue=form.annual_revenue,
                monthly_profit=form.monthly_profit,
                credit_score=form.credit_score,
                bankruptcy_history=form.bankruptcy,
            )
            application.funding = FundingRequest(
                funding_amount=form.funding_amount,
                funding_purpose=form.funding_purpose,
                timeframe=form.timeframe,
                collateral=form.collateral,
            )
            application.additional = AdditionalInformation(
                hear_about_us=form.hear_about_us,
                additional_info=form.additional_info,
                terms_agreed=form.terms_agreed,
                marketing_consent=form.marketing_consent,
            )
            session.add(application)
            session.commit()
            application_id = application.id

        self.logger.info("application_submitted", application_id=application_id, reference_id=reference_id)

        attribution = tracking_service.attribute_or_queue(application_id, referral_code, form.funding_amount)

        return {
            "success": True,
            "applicationId": application_id,
            "referenceId": reference_id,
            "attributed": attribution.success and attribution.affiliate_id is not None,
        }

    def get_application(self, application_id: str) -> dict[str, Any]:
        with db.session() as session:
            application = _with_children(session.query(Application)).filter(
                Application.id == application_id
            ).first()
            if not application:
                raise ApplicationNotFound(f"Application {application_id} not found")
            return application_to_dict(application, detailed=True)

    def list_applications(
        self,
        status: str | None = None,
        search: str | None = None,
        affiliate_id: str | None = None,
        folder_id: str | None = None,
        tag_ids: list[str] | None = None,
        archived: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List applications for the admin views.

        Archived applications are listed only when asked for; test
        applications never are. With several tag ids, only applications
        carrying all of them match.
        """
        with db.session() as session:
            query = session.query(Application).filter(Application.is_test.is_(False))

            if archived:
                query = query.filter(Application.status == ApplicationStatus.ARCHIVED.value)
            elif status:
                query = query.filter(Application.status == status)
            else:
                query = query.filter(Application.status != ApplicationStatus.ARCHIVED.value)

            if affiliate_id:
                query = query.filter(Application.affiliate_id == affiliate_id)

            if folder_id:
                query = query.filter(Application.folder_id == folder_id)

            for tag_id in tag_ids or []:
                tagged = select(ApplicationTagRelation.application_id).where(ApplicationTagRelation.tag_id == tag_id)
                query = query.filter(Application.id.in_(tagged))

            if search:
                pattern = f"%{search.strip()}%"
                query = (
                    query.outerjoin(ApplicantDetails)
                    .outerjoin(BusinessDetails)
                    .filter(or_(
                        Application.reference_id.ilike(pattern),
                        ApplicantDetails.full_name.ilike(pattern),
                        ApplicantDetails.email.ilike(pattern),
                        BusinessDetails.business_name.ilike(pattern),
                    ))
                )

            total = query.count()
            rows = (
                _with_children(query)
                .order_by(Application.submitted_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return {
                "total": total,
                "applications": [application_to_dict(a) for a in rows],
            }

    def update_status(self, application_id: str, status: str) -> dict[str, Any]:
        """Move an application to another status (admin action)."""
        if status not in {s.value for s in ApplicationStatus}:
            raise ApplicationError(f"Unknown status '{status}'")

        with db.session() as session:
            application = session.get(Application, application_id)
            if not application:
                raise ApplicationNotFound(f"Application {application_id} not found")

            previous = application.status
            application.status = status
            session.commit()

            self.logger.info(
                "application_status_changed",
                application_id=application_id,
                previous=previous,
                status=status,
            )

        return self.get_application(application_id)

    def archive(self, application_id: str) -> dict[str, Any]:
        return self.update_status(application_id, ApplicationStatus.ARCHIVED.value)

    def update_notes(self, application_id: str, notes: str) -> None:
        with db.session() as session:
            application = session.get(Application, application_id)
            if not application:
                raise ApplicationNotFound(f"Application {application_id} not found")
            application.notes = notes

        self.logger.info("application_notes_updated", application_id=application_id)

    def get_dashboard_stats(self) -> dict[str, Any]:
        """Counts for the admin dashboard."""
        with db.session() as session:
            status_rows = (
                session.query(Application.status, func.count(Application.id))
                .filter(Application.is_test.is_(False))
                .group_by(Application.status)
                .all()
            )
            by_status = {s.value: 0 for s in ApplicationStatus}
            by_status.update({status: count for status, count in status_rows})

            attributed = (
                session.query(func.count(Application.id))
                .filter(Application.affiliate_id.isnot(None), Application.is_test.is_(False))
                .scalar()
                or 0
            )
            pending_retries = (
                session.query(func.count(AffiliateTrackingRetry.id))
                .filter(AffiliateTrackingRetry.status == RetryStatus.PENDING.value)
                .scalar()
                or 0
            )
            commission_rows = (
                session.query(AffiliateCommission.status, func.sum(AffiliateCommission.amount))
                .group_by(AffiliateCommission.status)
                .all()
            )
            commissions = {status: round(float(total or 0), 2) for status, total in commission_rows}

        return {
            "totalApplications": sum(by_status.values()),
            "byStatus": by_status,
            "attributedApplications": attributed,
            "pendingTrackingRetries": pending_retries,
            "pendingCommissions": commissions.get(CommissionStatus.PENDING.value, 0.0),
            "paidCommissions": commissions.get(CommissionStatus.PAID.value, 0.0),
        }


# Singleton instance
application_service = ApplicationService()
