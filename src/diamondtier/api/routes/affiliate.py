"""Affiliate tracking endpoints: click capture and attribution tooling."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import Field

from diamondtier.affiliates.service import AffiliateError, AffiliateNotFound
from diamondtier.affiliates.tracking import tracking_service
from diamondtier.api.rate_limit import client_ip, limiter
from diamondtier.api.schemas import CamelModel
from diamondtier.auth.middleware import require_admin
from diamondtier.auth.models import AdminUser
from diamondtier.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/affiliate", tags=["affiliate"])


# ==================== MODELS ====================


class TrackClickRequest(CamelModel):
    """Click reported by the frontend when a ?ref= link is opened."""
    referral_code: str = Field(default="", max_length=32)
    referrer_url: str | None = Field(default=None, max_length=1000)
    landing_page: str | None = Field(default=None, max_length=1000)


class RetryTrackingRequest(CamelModel):
    application_id: str = ""
    referral_code: str = ""


class TrackingTestRequest(CamelModel):
    referral_code: str = ""


# ==================== ENDPOINTS ====================


@router.post("/track")
@limiter.limit("30/minute")
async def track_click(request: Request, body: TrackClickRequest):
    """Record a referral link click.

    Public endpoint. Unknown codes are rejected with 404. The Referer header
    stands in when the body carries no referrer.
    """
    try:
        click = tracking_service.record_click(
            body.referral_code,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            referrer_url=body.referrer_url or request.headers.get("referer"),
            landing_page=body.landing_page,
        )
    except AffiliateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"success": True, "clickId": click.id}


@router.post("/retry-tracking")
async def retry_tracking(body: RetryTrackingRequest, admin: AdminUser = Depends(require_admin)):
    """Re-run attribution for one application and referral code."""
    try:
        result = tracking_service.retry_tracking(body.application_id, body.referral_code)
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("admin_retry_tracking", admin_id=admin.id, application_id=body.application_id)

    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return result.to_dict()


@router.post("/fix-tracking")
async def fix_tracking(admin: AdminUser = Depends(require_admin)):
    """Re-attribute every application missing its affiliate or commission."""
    logger.info("admin_fix_tracking", admin_id=admin.id)
    return tracking_service.fix_tracking()


@router.post("/test")
async def run_tracking_test(body: TrackingTestRequest, admin: AdminUser = Depends(require_admin)):
    """Run the end-to-end tracking test for a referral code."""
    if not body.referral_code.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Referral code is required")

    logger.info("admin_tracking_test", admin_id=admin.id, code=body.referral_code)
    return tracking_service.run_tracking_test(body.referral_code)


@router.get("/debug")
async def debug(
    code: str | None = Query(default=None),
    app: str | None = Query(default=None),
    admin: AdminUser = Depends(require_admin),
):
    """Look up a referral code (?code=) or an application (?app=)."""
    if code:
        return tracking_service.check_referral(code)
    if app:
        return tracking_service.check_application(app)

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="Provide either a referral code or an application ID",
    )


@router.post("/debug-tracking")
async def debug_tracking(body: RetryTrackingRequest, admin: AdminUser = Depends(require_admin)):
    """Diagnostics for an application/code pair, followed by an attribution attempt."""
    if not body.application_id or not body.referral_code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Application ID and referral code are required",
        )

    try:
        return tracking_service.debug_tracking(body.application_id, body.referral_code)
    except AffiliateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
