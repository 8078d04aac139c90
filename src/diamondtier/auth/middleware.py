"""Authentication dependencies for FastAPI."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from diamondtier.affiliates.models import Affiliate
from diamondtier.auth.local import KIND_ADMIN, KIND_AFFILIATE, auth_service
from diamondtier.auth.models import AdminUser
from diamondtier.logging_config import get_logger
from diamondtier.settings import settings

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


def _session_payload(request: Request, credentials: HTTPAuthorizationCredentials | None) -> dict | None:
    """Decode the session from the Bearer header, falling back to the cookie."""
    token = credentials.credentials if credentials else request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    return auth_service.verify_session_token(token)


async def get_current_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AdminUser | None:
    """Get the admin behind the session token, if any.

    The token is re-checked against the database on every request so
    deactivated admins lose access immediately.
    """
    payload = _session_payload(request, credentials)
    if not payload or payload.get("kind") != KIND_ADMIN:
        return None

    admin = auth_service.get_admin(payload["sub"])
    if admin:
        request.state.admin = admin
    return admin


async def get_current_affiliate(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Affiliate | None:
    payload = _session_payload(request, credentials)
    if not payload or payload.get("kind") != KIND_AFFILIATE:
        return None

    affiliate = auth_service.get_affiliate(payload["sub"])
    if affiliate:
        request.state.affiliate = affiliate
    return affiliate


def require_admin(admin: AdminUser | None = Depends(get_current_admin)) -> AdminUser:
    """Require an admin session - raises 401 if not authenticated.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if not admin:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return admin


def require_super_admin(admin: AdminUser = Depends(require_admin)) -> AdminUser:
    if not admin.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return admin


def require_affiliate(affiliate: Affiliate | None = Depends(get_current_affiliate)) -> Affiliate:
    """Require an affiliate portal session."""
    if not affiliate:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not affiliate.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Affiliate account is not active",
        )
    return affiliate
