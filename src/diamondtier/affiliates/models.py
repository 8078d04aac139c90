"""Affiliate program database models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from diamondtier.storage.models import Base, new_uuid


class AffiliateStatus(str, Enum):
    """Affiliates are never deleted, only deactivated."""
    PENDING = "pending"      # Self-registered, awaiting admin approval
    ACTIVE = "active"
    INACTIVE = "inactive"


class AffiliateTierName(str, Enum):
    """Commission tiers, lowest to highest."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


class CommissionStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class RetryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class Affiliate(Base):
    """Referral partner with a unique shareable code.

    The commission rate is not stored here; it comes from the tier.
    """
    __tablename__ = "affiliates"

    id = Column(String(36), primary_key=True, default=new_uuid)

    # Identity
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    company_name = Column(String(255), nullable=True)
    website = Column(String(500), nullable=True)
    referral_code = Column(String(32), unique=True, nullable=False, index=True)

    # Program
    status = Column(String(20), default=AffiliateStatus.ACTIVE.value, nullable=False, index=True)
    tier = Column(String(20), default=AffiliateTierName.BRONZE.value, nullable=False)

    # Payment
    payment_method = Column(String(50), nullable=True)
    payment_details = Column(JSON, nullable=True)

    notes = Column(Text, nullable=True)
    referral_source = Column(String(255), nullable=True)

    # Portal login (optional, admin-created affiliates set it via password reset)
    password_hash = Column(String(255), nullable=True)
    last_login_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    clicks = relationship("AffiliateClick", back_populates="affiliate")
    commissions = relationship("AffiliateCommission", back_populates="affiliate")

    def __repr__(self):
        return f"<Affiliate(code={self.referral_code}, status={self.status}, tier={self.tier})>"

    @property
    def is_active(self) -> bool:
        return self.status == AffiliateStatus.ACTIVE.value


class AffiliateTier(Base):
    """Commission rate per tier (percent of the funding amount)."""
    __tablename__ = "affiliate_tiers"

    id = Column(Integer, primary_key=True)
    name = Column(String(20), unique=True, nullable=False)
    commission_rate = Column(Float, nullable=False)
    description = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<AffiliateTier(name={self.name}, rate={self.commission_rate})>"


class AffiliateClick(Base):
    """One visit carrying a referral code. Immutable, not deduplicated."""
    __tablename__ = "affiliate_clicks"

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id"), nullable=True, index=True)
    referral_code = Column(String(32), nullable=False, index=True)
    referrer_url = Column(String(1000), nullable=False, default="direct")
    user_agent = Column(String(500), nullable=True)
    ip_address = Column(String(64), nullable=True)
    landing_page = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    affiliate = relationship("Affiliate", back_populates="clicks")

    def __repr__(self):
        return f"<AffiliateClick(code={self.referral_code}, referrer={self.referrer_url})>"


class AffiliateCommission(Base):
    """Commission owed to an affiliate for an attributed application.

    One row per (affiliate, application): attribution is idempotent.
    """
    __tablename__ = "affiliate_commissions"
    __table_args__ = (
        UniqueConstraint("affiliate_id", "application_id", name="uq_commission_affiliate_application"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id"), nullable=False, index=True)
    application_id = Column(String(36), ForeignKey("applications.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    rate = Column(Float, nullable=False)
    level = Column(Integer, default=0, nullable=False)  # 0 = direct, 1+ = MLM parent level
    status = Column(String(20), default=CommissionStatus.PENDING.value, nullable=False, index=True)
    payout_date = Column(DateTime, nullable=True)
    payout_id = Column(String(36), ForeignKey("affiliate_payouts.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    affiliate = relationship("Affiliate", back_populates="commissions")

    def __repr__(self):
        return f"<AffiliateCommission(affiliate={self.affiliate_id}, amount={self.amount}, status={self.status})>"


class AffiliateConversion(Base):
    """Application submission credited to an affiliate."""
    __tablename__ = "affiliate_conversions"
    __table_args__ = (
        UniqueConstraint("affiliate_id", "application_id", name="uq_conversion_affiliate_application"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id"), nullable=False, index=True)
    application_id = Column(String(36), ForeignKey("applications.id"), nullable=False, index=True)
    reference_id = Column(String(20), nullable=True)
    conversion_type = Column(String(30), default="application", nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class AffiliateNotification(Base):
    """Dashboard notification for an affiliate."""
    __tablename__ = "affiliate_notifications"

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id"), nullable=False, index=True)
    application_id = Column(String(36), ForeignKey("applications.id"), nullable=True)
    type = Column(String(30), nullable=False)  # new_application, mlm_commission
    read = Column(Boolean, default=False, nullable=False)
    data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class AffiliateTrackingRetry(Base):
    """Failed attribution awaiting manual remediation."""
    __tablename__ = "affiliate_tracking_retries"

    id = Column(String(36), primary_key=True, default=new_uuid)
    application_id = Column(String(36), nullable=False, index=True)
    referral_code = Column(String(32), nullable=False)
    status = Column(String(20), default=RetryStatus.PENDING.value, nullable=False, index=True)
    last_error = Column(Text, nullable=True)
    attempts = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    last_attempt_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<AffiliateTrackingRetry(application={self.application_id}, status={self.status})>"


class AffiliateRelationship(Base):
    """Parent/child link between affiliates for multi-level commissions."""
    __tablename__ = "affiliate_relationships"
    __table_args__ = (
        UniqueConstraint("parent_affiliate_id", "child_affiliate_id", name="uq_affiliate_relationship"),
    )

    id = Column(String(36), primary_key=True, default=new_uuid)
    parent_affiliate_id = Column(String(36), ForeignKey("affiliates.id"), nullable=False, index=True)
    child_affiliate_id = Column(String(36), ForeignKey("affiliates.id"), nullable=False, index=True)
    level = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class MLMSetting(Base):
    """Commission percentage paid to the parent at a given level."""
    __tablename__ = "affiliate_mlm_settings"

    id = Column(Integer, primary_key=True)
    level = Column(Integer, unique=True, nullable=False)
    commission_percentage = Column(Float, nullable=False)
    description = Column(String(255), nullable=True)


class AffiliatePayout(Base):
    """Batch payment of an affiliate's pending commissions."""
    __tablename__ = "affiliate_payouts"

    id = Column(String(36), primary_key=True, default=new_uuid)
    affiliate_id = Column(String(36), ForeignKey("affiliates.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    commission_count = Column(Integer, default=0, nullable=False)
    payment_method = Column(String(50), nullable=False)
    payment_details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
