"""Affiliate program endpoints: registration, portal login and dashboard."""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import EmailStr, Field, field_validator

from diamondtier.affiliates.models import Affiliate, AffiliateStatus
from diamondtier.affiliates.service import (
    AffiliateError,
    affiliate_service,
    affiliate_to_dict,
    commission_to_dict,
)
from diamondtier.api.rate_limit import limiter
from diamondtier.api.routes.auth import guard_login, set_session_cookie, validate_password_complexity
from diamondtier.api.schemas import CamelModel
from diamondtier.auth.local import KIND_AFFILIATE, auth_service
from diamondtier.auth.lockout import affiliate_lockout
from diamondtier.auth.middleware import require_affiliate
from diamondtier.email.service import email_service
from diamondtier.logging_config import get_logger
from diamondtier.settings import settings

logger = get_logger(__name__)

router = APIRouter(prefix="/affiliate-program", tags=["affiliate-program"])


# ==================== MODELS ====================


class RegisterRequest(CamelModel):
    """Public affiliate registration."""
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    phone: str | None = Field(default=None, max_length=50)
    company_name: str | None = Field(default=None, max_length=255)
    website: str | None = Field(default=None, max_length=500)
    referral_source: str | None = Field(default=None, max_length=255)
    # Recruiting affiliate, for multi-level commissions
    parent_referral_code: str | None = Field(default=None, max_length=32)

    @field_validator("password")
    @classmethod
    def check_password_complexity(cls, v):
        return validate_password_complexity(v)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class MarkReadRequest(CamelModel):
    notification_ids: list[str] | None = None


# ==================== ENDPOINTS ====================


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(request: Request, body: RegisterRequest):
    """Register as an affiliate. New affiliates wait for admin approval."""
    parent_code = body.parent_referral_code or request.cookies.get(settings.referral_cookie_name)

    try:
        affiliate = affiliate_service.create_affiliate(
            first_name=body.first_name,
            last_name=body.last_name,
            email=body.email,
            phone=body.phone,
            company_name=body.company_name,
            website=body.website,
            status=AffiliateStatus.PENDING.value,
            referral_source=body.referral_source,
            parent_referral_code=parent_code,
            password_hash=auth_service.hash_password(body.password),
        )
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await email_service.send_affiliate_registration_email(
        to_email=affiliate.email,
        name=affiliate.first_name,
        referral_code=affiliate.referral_code,
    )

    return {"success": True, "affiliate": affiliate_to_dict(affiliate)}


@router.post("/login")
@limiter.limit("10/minute")
async def login(request: Request, response: Response, body: LoginRequest):
    lockout_keys = guard_login(affiliate_lockout, request, body.email)

    affiliate = auth_service.authenticate_affiliate(body.email, body.password)
    if not affiliate:
        affiliate_lockout.record_failure(*lockout_keys)
        logger.warning("affiliate_login_failed", email=body.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    affiliate_lockout.clear(*lockout_keys)

    token = auth_service.create_session_token(affiliate.id, KIND_AFFILIATE)
    set_session_cookie(response, token)

    return {
        "success": True,
        "accessToken": token,
        "expiresIn": settings.session_expire_hours * 3600,
        "affiliate": affiliate_to_dict(affiliate),
    }


@router.get("/me")
async def me(affiliate: Affiliate = Depends(require_affiliate)):
    return affiliate_to_dict(affiliate)


@router.get("/stats")
async def stats(affiliate: Affiliate = Depends(require_affiliate)):
    """Dashboard numbers for the logged-in affiliate."""
    return affiliate_service.get_affiliate_stats(affiliate.id)


@router.get("/commissions")
async def commissions(affiliate: Affiliate = Depends(require_affiliate)):
    return {"commissions": [commission_to_dict(c) for c in affiliate_service.list_commissions(affiliate.id)]}


@router.get("/notifications")
async def notifications(unread: bool = False, affiliate: Affiliate = Depends(require_affiliate)):
    rows = affiliate_service.list_notifications(affiliate.id, unread_only=unread)
    return {
        "notifications": [
            {
                "id": n.id,
                "type": n.type,
                "read": n.read,
                "application_id": n.application_id,
                "data": n.data,
                "created_at": n.created_at.isoformat() if n.created_at else None,
            }
            for n in rows
        ]
    }


@router.post("/notifications/read")
async def mark_notifications_read(body: MarkReadRequest, affiliate: Affiliate = Depends(require_affiliate)):
    updated = affiliate_service.mark_notifications_read(affiliate.id, body.notification_ids)
    return {"success": True, "updated": updated}
