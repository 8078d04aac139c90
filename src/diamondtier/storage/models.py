"""Database models for application intake."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def new_uuid() -> str:
    """Primary key factory for string UUID columns."""
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ApplicationStatus(str, Enum):
    """Lifecycle of a funding application. Only admins move it."""
    DRAFT = "draft"
    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class Application(Base):
    """Funding application submitted through the intake funnel."""

    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    reference_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ApplicationStatus.PENDING.value, nullable=False, index=True
    )
    credit_check_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_test: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Attribution (set at submission or by a later retry)
    affiliate_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("affiliates.id"), nullable=True, index=True
    )
    affiliate_code: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)

    # Back-office organisation
    folder_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("application_folders.id", ondelete="SET NULL"), nullable=True, index=True
    )

    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    applicant: Mapped["ApplicantDetails | None"] = relationship(
        "ApplicantDetails", back_populates="application", uselist=False, cascade="all, delete-orphan"
    )
    business: Mapped["BusinessDetails | None"] = relationship(
        "BusinessDetails", back_populates="application", uselist=False, cascade="all, delete-orphan"
    )
    funding: Mapped["FundingRequest | None"] = relationship(
        "FundingRequest", back_populates="application", uselist=False, cascade="all, delete-orphan"
    )
    additional: Mapped["AdditionalInformation | None"] = relationship(
        "AdditionalInformation", back_populates="application", uselist=False, cascade="all, delete-orphan"
    )
    tags: Mapped[list["ApplicationTag"]] = relationship(
        "ApplicationTag", secondary="application_tag_relations", order_by="ApplicationTag.name", viewonly=True
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, reference={self.reference_id}, status={self.status})>"


class ApplicantDetails(Base):
    """Personal information of the applicant."""

    __tablename__ = "applicant_details"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    application_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    preferred_contact: Mapped[str] = mapped_column(String(20), default="Email", nullable=False)

    application: Mapped["Application"] = relationship("Application", back_populates="applicant")


class BusinessDetails(Base):
    """Business profile attached to an application."""

    __tablename__ = "business_details"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    application_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    business_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    business_type: Mapped[str] = mapped_column(String(100), nullable=False)
    industry: Mapped[str] = mapped_column(String(100), nullable=False)
    years_in_business: Mapped[str] = mapped_column(String(50), nullable=False)
    ein: Mapped[str | None] = mapped_column(String(20), nullable=True)
    annual_revenue: Mapped[str | None] = mapped_column(String(100), nullable=True)
    monthly_profit: Mapped[str | None] = mapped_column(String(100), nullable=True)
    credit_score: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bankruptcy_history: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    application: Mapped["Application"] = relationship("Application", back_populates="business")


class FundingRequest(Base):
    """Requested funding amount and purpose."""

    __tablename__ = "funding_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    application_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    funding_amount: Mapped[str] = mapped_column(String(100), nullable=False)  # Free text, e.g. "$50,000-$100,000"
    funding_purpose: Mapped[str] = mapped_column(String(255), nullable=False)
    timeframe: Mapped[str] = mapped_column(String(100), nullable=False)
    collateral: Mapped[str | None] = mapped_column(String(255), nullable=True)

    application: Mapped["Application"] = relationship("Application", back_populates="funding")


class AdditionalInformation(Base):
    """Marketing attribution and consent fields."""

    __tablename__ = "additional_information"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    application_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    hear_about_us: Mapped[str | None] = mapped_column(String(255), nullable=True)
    additional_info: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms_agreed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    marketing_consent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    application: Mapped["Application"] = relationship("Application", back_populates="additional")


class ApplicationFolder(Base):
    """Admin-defined folder; an application sits in at most one."""

    __tablename__ = "application_folders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ApplicationFolder(id={self.id}, name={self.name})>"


class ApplicationTag(Base):
    """Colored label admins attach to applications."""

    __tablename__ = "application_tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    color: Mapped[str] = mapped_column(String(7), default="#3b82f6", nullable=False)  # Hex, e.g. "#3b82f6"
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ApplicationTag(id={self.id}, name={self.name})>"


class ApplicationTagRelation(Base):
    """Tag assignment; one row per (application, tag)."""

    __tablename__ = "application_tag_relations"
    __table_args__ = (
        UniqueConstraint("application_id", "tag_id", name="uq_application_tag"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    application_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("application_tags.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
