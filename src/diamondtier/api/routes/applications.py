"""Public funding application endpoint."""

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import EmailStr, Field

from diamondtier.affiliates.utils import normalize_referral_code
from diamondtier.api.rate_limit import limiter
from diamondtier.api.schemas import CamelModel
from diamondtier.applications.service import ApplicationError, ApplicationFormData, application_service
from diamondtier.logging_config import get_logger
from diamondtier.settings import settings

logger = get_logger(__name__)

router = APIRouter(prefix="/applications", tags=["applications"])


# ==================== MODELS ====================


class ApplicationRequest(CamelModel):
    """Funding funnel submission."""
    # Personal information
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=50)
    preferred_contact: str = Field(default="Email", max_length=20)

    # Business details
    business_name: str = Field(..., min_length=1, max_length=255)
    business_type: str = Field(..., min_length=1, max_length=100)
    industry: str = Field(..., min_length=1, max_length=100)
    years_in_business: str = Field(..., min_length=1, max_length=50)
    ein: str | None = Field(default=None, max_length=20)
    annual_revenue: str | None = Field(default=None, max_length=100)
    monthly_profit: str | None = Field(default=None, max_length=100)
    credit_score: str | None = Field(default=None, max_length=50)
    bankruptcy: bool = False

    # Financial needs
    funding_amount: str = Field(..., min_length=1, max_length=100)
    funding_purpose: str = Field(..., min_length=1, max_length=255)
    timeframe: str = Field(..., min_length=1, max_length=100)
    collateral: str | None = Field(default=None, max_length=255)

    # Additional information
    hear_about_us: str | None = Field(default=None, max_length=255)
    additional_info: str | None = Field(default=None, max_length=5000)
    terms_agreed: bool = False
    marketing_consent: bool = False

    # Referral code captured on the client; the referral cookie is used otherwise
    referral_code: str | None = Field(default=None, max_length=32)


# ==================== ENDPOINTS ====================


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def submit_application(request: Request, body: ApplicationRequest):
    """Submit a funding application.

    The submission succeeds even when affiliate attribution fails; failed
    attributions are queued for an admin to retry.
    """
    form = ApplicationFormData(**body.model_dump(exclude={"referral_code"}))
    # A blank body code must not hide the cookie
    referral_code = normalize_referral_code(body.referral_code) or request.cookies.get(settings.referral_cookie_name)

    try:
        return application_service.submit_application(form, referral_code)
    except ApplicationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
