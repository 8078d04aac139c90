"""Capture ?ref= codes from page visits."""

import time

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from diamondtier.affiliates.service import AffiliateError
from diamondtier.affiliates.tracking import tracking_service
from diamondtier.affiliates.utils import normalize_referral_code
from diamondtier.api.rate_limit import client_ip
from diamondtier.logging_config import get_logger
from diamondtier.settings import settings

logger = get_logger(__name__)

REF_PARAM = "ref"


class ReferralCaptureMiddleware(BaseHTTPMiddleware):
    """Remember the referral code of a visit and record the click.

    Any page GET carrying ?ref=CODE stores the code and the capture time in
    cookies, which the application submission reads later. The click is
    recorded best effort: failures are logged and the page is served anyway.
    API calls are skipped; the frontend reports those clicks itself.
    """

    async def dispatch(self, request: Request, call_next):
        code = None
        if request.method == "GET" and not request.url.path.startswith("/api"):
            code = normalize_referral_code(request.query_params.get(REF_PARAM))

        if code:
            await self._record_click(request, code)

        response = await call_next(request)

        if code:
            max_age = settings.referral_cookie_days * 24 * 3600
            response.set_cookie(
                settings.referral_cookie_name,
                code,
                max_age=max_age,
                httponly=True,
                samesite="lax",
                secure=settings.env == "production",
            )
            response.set_cookie(
                f"{settings.referral_cookie_name}_timestamp",
                str(int(time.time() * 1000)),
                max_age=max_age,
                httponly=True,
                samesite="lax",
                secure=settings.env == "production",
            )
        return response

    async def _record_click(self, request: Request, code: str) -> None:
        try:
            await run_in_threadpool(
                tracking_service.record_click,
                code,
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
                referrer_url=request.headers.get("referer"),
                landing_page=request.url.path,
            )
        except AffiliateError as e:
            logger.warning("referral_capture_failed", code=code, error=str(e))
        except Exception as e:
            logger.error("referral_capture_error", code=code, error=str(e))
