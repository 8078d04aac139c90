"""Local authentication service (email/password) for admins and affiliates."""

from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from diamondtier.affiliates.models import Affiliate, AffiliateStatus
from diamondtier.auth.models import AdminRole, AdminUser
from diamondtier.logging_config import get_logger
from diamondtier.settings import settings
from diamondtier.storage.db import db

logger = get_logger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# JWT settings
JWT_ALGORITHM = "HS256"
RESET_TOKEN_HOURS = 1

KIND_ADMIN = "admin"
KIND_AFFILIATE = "affiliate"


class AuthError(Exception):
    """Authentication operation error."""
    pass


class AuthService:
    """Authentication service for admin users and affiliate portal logins."""

    def __init__(self):
        self.logger = get_logger(__name__)

    # ==================== PASSWORD ====================

    def _truncate_password(self, password: str) -> str:
        """Truncate password to 72 bytes (bcrypt limit)."""
        return password.encode("utf-8")[:72].decode("utf-8", errors="ignore")

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(self._truncate_password(password))

    def verify_password(self, password: str, hashed: str) -> bool:
        return pwd_context.verify(self._truncate_password(password), hashed)

    # ==================== ADMINS ====================

    def count_admins(self) -> int:
        with db.session() as session:
            return session.query(AdminUser).count()

    def create_admin(
        self,
        email: str,
        password: str,
        name: str | None = None,
        role: str = AdminRole.ADMIN.value,
    ) -> AdminUser:
        """Create a back-office account.

        Raises:
            AuthError: Email already registered or unknown role
        """
        if role not in {r.value for r in AdminRole}:
            raise AuthError(f"Unknown role '{role}'")

        with db.session() as session:
            existing = session.query(AdminUser).filter(AdminUser.email == email.lower()).first()
            if existing:
                raise AuthError("Email already registered")

            admin = AdminUser(
                email=email.lower(),
                name=name,
                password_hash=self.hash_password(password),
                role=role,
            )
            session.add(admin)
            session.commit()
            session.refresh(admin)

            self.logger.info("admin_created", admin_id=admin.id, role=role)
            return admin

    def list_admins(self) -> list[AdminUser]:
        with db.session() as session:
            return session.query(AdminUser).order_by(AdminUser.created_at).all()

    def set_admin_active(self, admin_id: str, is_active: bool) -> AdminUser:
        with db.session() as session:
            admin = session.get(AdminUser, admin_id)
            if not admin:
                raise AuthError("Admin not found")
            admin.is_active = is_active
            session.commit()
            session.refresh(admin)

            self.logger.info("admin_active_changed", admin_id=admin_id, is_active=is_active)
            return admin

    def get_admin(self, admin_id: str) -> AdminUser | None:
        with db.session() as session:
            return session.query(AdminUser).filter(
                AdminUser.id == admin_id,
                AdminUser.is_active.is_(True),
            ).first()

    def authenticate_admin(self, email: str, password: str) -> AdminUser | None:
        """Check admin credentials.

        Returns:
            Admin if valid, None otherwise
        """
        with db.session() as session:
            admin = session.query(AdminUser).filter(
                AdminUser.email == email.lower(),
                AdminUser.is_active.is_(True),
            ).first()

            if not admin or not self.verify_password(password, admin.password_hash):
                return None

            admin.last_login_at = datetime.utcnow()
            session.commit()
            session.refresh(admin)

            self.logger.info("admin_authenticated", admin_id=admin.id)
            return admin

    # ==================== AFFILIATES ====================

    def get_affiliate(self, affiliate_id: str) -> Affiliate | None:
        with db.session() as session:
            return session.get(Affiliate, affiliate_id)

    def authenticate_affiliate(self, email: str, password: str) -> Affiliate | None:
        """Check affiliate portal credentials.

        Pending affiliates may log in to see their status; inactive ones may not.
        """
        with db.session() as session:
            affiliate = session.query(Affiliate).filter(
                Affiliate.email == email.lower(),
                Affiliate.status != AffiliateStatus.INACTIVE.value,
            ).first()

            if not affiliate or not affiliate.password_hash:
                return None

            if not self.verify_password(password, affiliate.password_hash):
                return None

            affiliate.last_login_at = datetime.utcnow()
            session.commit()
            session.refresh(affiliate)

            self.logger.info("affiliate_authenticated", affiliate_id=affiliate.id)
            return affiliate

    # ==================== SESSION TOKENS ====================

    def create_session_token(
        self,
        subject_id: str,
        kind: str,
        role: str | None = None,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create a signed session token.

        Args:
            subject_id: Admin or affiliate ID
            kind: "admin" or "affiliate"
            role: Admin role, omitted for affiliates
            expires_delta: Optional lifetime override

        Returns:
            JWT token string
        """
        if expires_delta is None:
            expires_delta = timedelta(hours=settings.session_expire_hours)

        now = datetime.utcnow()
        payload = {
            "sub": subject_id,
            "kind": kind,
            "type": "session",
            "exp": now + expires_delta,
            "iat": now,
        }
        if role:
            payload["role"] = role

        return jwt.encode(payload, settings.jwt_secret_key, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """Verify and decode a JWT.

        Returns:
            Token payload or None if invalid or expired
        """
        try:
            return jwt.decode(token, settings.jwt_secret_key, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            self.logger.debug("token_verification_failed", error=str(e))
            return None

    def verify_session_token(self, token: str) -> dict[str, Any] | None:
        payload = self.verify_token(token)
        if not payload or payload.get("type") != "session" or not payload.get("sub"):
            return None
        return payload

    # ==================== PASSWORD RESET ====================

    def generate_reset_token(self, email: str, kind: str = KIND_ADMIN) -> str | None:
        """Generate a password reset token.

        Returns:
            Reset token or None if no account matches
        """
        with db.session() as session:
            if kind == KIND_AFFILIATE:
                account = session.query(Affiliate).filter(Affiliate.email == email.lower()).first()
            else:
                account = session.query(AdminUser).filter(
                    AdminUser.email == email.lower(),
                    AdminUser.is_active.is_(True),
                ).first()

            if not account:
                return None
            account_id = account.id

        payload = {
            "sub": account_id,
            "kind": kind,
            "type": "password_reset",
            "exp": datetime.utcnow() + timedelta(hours=RESET_TOKEN_HOURS),
        }
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=JWT_ALGORITHM)

    def reset_password(self, token: str, new_password: str) -> bool:
        """Reset a password with a reset token.

        Returns:
            True if reset successfully
        """
        payload = self.verify_token(token)
        if not payload or payload.get("type") != "password_reset":
            return False

        account_id = payload.get("sub")
        if not account_id:
            return False

        model = Affiliate if payload.get("kind") == KIND_AFFILIATE else AdminUser
        with db.session() as session:
            account = session.get(model, account_id)
            if not account:
                return False

            account.password_hash = self.hash_password(new_password)
            account.updated_at = datetime.utcnow()
            session.commit()

        self.logger.info("password_reset", account_id=account_id, kind=payload.get("kind"))
        return True


# Singleton instance
auth_service = AuthService()
