"""Authentication endpoints for the admin back office."""

import re
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import EmailStr, Field, field_validator

from diamondtier.affiliates.service import affiliate_to_dict
from diamondtier.api.rate_limit import client_ip, limiter
from diamondtier.api.schemas import CamelModel
from diamondtier.auth.local import KIND_ADMIN, KIND_AFFILIATE, AuthError, auth_service
from diamondtier.auth.lockout import AccountLocked, LoginLockout, admin_lockout
from diamondtier.auth.middleware import get_current_admin, get_current_affiliate
from diamondtier.auth.models import AdminRole, AdminUser
from diamondtier.email.service import email_service
from diamondtier.logging_config import get_logger
from diamondtier.settings import settings

logger = get_logger(__name__)

router = APIRouter(tags=["auth"])

# (pattern, what the password is missing)
_PASSWORD_RULES = (
    (r"[A-Z]", "an uppercase letter"),
    (r"[a-z]", "a lowercase letter"),
    (r"[0-9]", "a digit"),
    (r"[^A-Za-z0-9\s]", "a special character"),
)


def validate_password_complexity(password: str) -> str:
    """Shared password policy for admin and affiliate accounts."""
    if not 8 <= len(password) <= 100:
        raise ValueError("Password must be between 8 and 100 characters")
    missing = [label for pattern, label in _PASSWORD_RULES if not re.search(pattern, password)]
    if missing:
        raise ValueError(f"Password must contain {', '.join(missing)}")
    return password


def guard_login(lockout: LoginLockout, request: Request, email: str) -> tuple[str, str]:
    """Refuse locked-out logins with 429; returns the keys to record against."""
    keys = lockout.keys(email, client_ip(request))
    try:
        lockout.check(*keys)
    except AccountLocked as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(e),
            headers={"Retry-After": str(e.retry_after)},
        )
    return keys


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_expire_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.env == "production",
    )


# ==================== MODELS ====================


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class SessionTokenRequest(CamelModel):
    token: str


class CreateAdminRequest(CamelModel):
    """Admin creation; the bootstrap token is only honoured while no admin exists."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    name: str | None = Field(default=None, max_length=100)
    bootstrap_token: str | None = None

    @field_validator("password")
    @classmethod
    def check_password_complexity(cls, v):
        return validate_password_complexity(v)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr
    portal: str = Field(default=KIND_ADMIN, pattern="^(admin|affiliate)$")


class ResetPasswordConfirm(CamelModel):
    token: str
    new_password: str = Field(..., min_length=8, max_length=100)

    @field_validator("new_password")
    @classmethod
    def check_password_complexity(cls, v):
        return validate_password_complexity(v)


def _admin_summary(admin: AdminUser) -> dict:
    return {"id": admin.id, "email": admin.email, "name": admin.name, "role": admin.role}


# ==================== ENDPOINTS ====================


@router.post("/admin-login")
@limiter.limit("10/minute")
async def admin_login(request: Request, response: Response, body: LoginRequest):
    """Log in to the back office; the session is returned and set as a cookie."""
    lockout_keys = guard_login(admin_lockout, request, body.email)

    admin = auth_service.authenticate_admin(body.email, body.password)
    if not admin:
        admin_lockout.record_failure(*lockout_keys)
        logger.warning("admin_login_failed", email=body.email, ip=client_ip(request))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    admin_lockout.clear(*lockout_keys)

    token = auth_service.create_session_token(admin.id, KIND_ADMIN, role=admin.role)
    set_session_cookie(response, token)

    logger.info("admin_logged_in", admin_id=admin.id)
    return {
        "success": True,
        "accessToken": token,
        "expiresIn": settings.session_expire_hours * 3600,
        "user": _admin_summary(admin),
    }


@router.get("/auth/session")
async def get_session(
    admin: AdminUser | None = Depends(get_current_admin),
    affiliate=Depends(get_current_affiliate),
):
    """Who is logged in, verified server-side."""
    if admin:
        return {"authenticated": True, "kind": KIND_ADMIN, "user": _admin_summary(admin)}
    if affiliate:
        return {"authenticated": True, "kind": KIND_AFFILIATE, "user": affiliate_to_dict(affiliate)}
    return {"authenticated": False}


@router.post("/auth/session")
async def set_session(response: Response, body: SessionTokenRequest):
    """Store a previously issued session token as the session cookie."""
    payload = auth_service.verify_session_token(body.token)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    set_session_cookie(response, body.token)
    return {"success": True, "kind": payload.get("kind")}


@router.post("/auth/logout")
async def logout(response: Response):
    response.delete_cookie(settings.session_cookie_name)
    return {"success": True}


@router.post("/create-admin", status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def create_admin(
    request: Request,
    body: CreateAdminRequest,
    current: AdminUser | None = Depends(get_current_admin),
):
    """Create an admin account.

    Requires a super admin session, or the bootstrap token while no admin
    exists yet. The first admin becomes a super admin.
    """
    first_admin = auth_service.count_admins() == 0

    if first_admin:
        expected = settings.admin_bootstrap_token
        if not expected or not body.bootstrap_token or not secrets.compare_digest(body.bootstrap_token, expected):
            logger.warning("admin_bootstrap_rejected", email=body.email)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid bootstrap token")
    elif not current or not current.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super admin access required")

    role = AdminRole.SUPER_ADMIN.value if first_admin else AdminRole.ADMIN.value
    try:
        admin = auth_service.create_admin(body.email, body.password, body.name, role)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"success": True, "user": _admin_summary(admin)}


@router.post("/auth/forgot-password")
@limiter.limit("5/minute")
async def forgot_password(request: Request, body: ForgotPasswordRequest):
    """Email a password reset link.

    Always returns success so the endpoint cannot be used to enumerate accounts.
    """
    token = auth_service.generate_reset_token(body.email, kind=body.portal)
    if token:
        await email_service.send_password_reset_email(
            to_email=body.email,
            name=None,
            reset_token=token,
            portal=body.portal,
        )
        logger.info("password_reset_requested", portal=body.portal)

    return {"success": True, "message": "If the account exists, a reset link has been sent"}


@router.post("/auth/reset-password")
@limiter.limit("5/minute")
async def reset_password(request: Request, body: ResetPasswordConfirm):
    if not auth_service.reset_password(body.token, body.new_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")
    return {"success": True}
