"""Admin account model."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, String

from diamondtier.storage.models import Base, new_uuid


class AdminRole(str, Enum):
    """Back-office roles."""
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"  # Can manage other admin accounts


class AdminUser(Base):
    """Back-office user. Affiliates log in with their own record instead."""
    __tablename__ = "admin_users"

    id = Column(String(36), primary_key=True, default=new_uuid)

    # Identity
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)

    # Auth
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), default=AdminRole.ADMIN.value, nullable=False)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<AdminUser(email={self.email}, role={self.role})>"

    @property
    def is_super_admin(self) -> bool:
        return self.role == AdminRole.SUPER_ADMIN.value
