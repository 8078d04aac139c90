"""Authentication for the admin back office and the affiliate portal."""

from diamondtier.auth.models import AdminRole, AdminUser
from diamondtier.auth.local import AuthError, AuthService, auth_service
from diamondtier.auth.lockout import AccountLocked, LoginLockout, admin_lockout, affiliate_lockout
from diamondtier.auth.middleware import (
    get_current_admin,
    get_current_affiliate,
    require_admin,
    require_affiliate,
    require_super_admin,
)

__all__ = [
    "AdminRole",
    "AdminUser",
    "AuthError",
    "AuthService",
    "auth_service",
    "AccountLocked",
    "LoginLockout",
    "admin_lockout",
    "affiliate_lockout",
    "get_current_admin",
    "get_current_affiliate",
    "require_admin",
    "require_affiliate",
    "require_super_admin",
]
