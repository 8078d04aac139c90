"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Creates tables for:
- applications and their detail rows (applicant, business, funding, additional)
- affiliates, tiers, clicks, conversions, commissions, payouts, notifications
- tracking retries for failed attributions
- MLM relationships and level settings
- admin users
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    # Affiliates
    op.create_table(
        "affiliates",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("company_name", sa.String(255), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("referral_code", sa.String(32), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("tier", sa.String(20), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("payment_details", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("referral_source", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_affiliates_email", "affiliates", ["email"], unique=True)
    op.create_index("ix_affiliates_referral_code", "affiliates", ["referral_code"], unique=True)
    op.create_index("ix_affiliates_status", "affiliates", ["status"], unique=False)

    op.create_table(
        "affiliate_tiers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(20), nullable=False),
        sa.Column("commission_rate", sa.Float(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    # Admin users
    op.create_table(
        "admin_users",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_admin_users_email", "admin_users", ["email"], unique=True)

    # Applications
    op.create_table(
        "applications",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("reference_id", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("credit_check_completed", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_test", sa.Boolean(), nullable=False),
        sa.Column("affiliate_id", sa.String(36), nullable=True),
        sa.Column("affiliate_code", sa.String(32), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_applications_reference_id", "applications", ["reference_id"], unique=True)
    op.create_index("ix_applications_status", "applications", ["status"], unique=False)
    op.create_index("ix_applications_affiliate_id", "applications", ["affiliate_id"], unique=False)
    op.create_index("ix_applications_affiliate_code", "applications", ["affiliate_code"], unique=False)

    op.create_table(
        "applicant_details",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=False),
        sa.Column("preferred_contact", sa.String(20), nullable=False),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )
    op.create_index("ix_applicant_details_email", "applicant_details", ["email"], unique=False)

    op.create_table(
        "business_details",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("business_type", sa.String(100), nullable=False),
        sa.Column("industry", sa.String(100), nullable=False),
        sa.Column("years_in_business", sa.String(50), nullable=False),
        sa.Column("ein", sa.String(20), nullable=True),
        sa.Column("annual_revenue", sa.String(100), nullable=True),
        sa.Column("monthly_profit", sa.String(100), nullable=True),
        sa.Column("credit_score", sa.String(50), nullable=True),
        sa.Column("bankruptcy_history", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )
    op.create_index("ix_business_details_business_name", "business_details", ["business_name"], unique=False)

    op.create_table(
        "funding_requests",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("funding_amount", sa.String(100), nullable=False),
        sa.Column("funding_purpose", sa.String(255), nullable=False),
        sa.Column("timeframe", sa.String(100), nullable=False),
        sa.Column("collateral", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )

    op.create_table(
        "additional_information",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("hear_about_us", sa.String(255), nullable=True),
        sa.Column("additional_info", sa.Text(), nullable=True),
        sa.Column("terms_agreed", sa.Boolean(), nullable=False),
        sa.Column("marketing_consent", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
    )

    # Payouts before commissions (commissions reference their payout)
    op.create_table(
        "affiliate_payouts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("affiliate_id", sa.String(36), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("commission_count", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=False),
        sa.Column("payment_details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_affiliate_payouts_affiliate_id", "affiliate_payouts", ["affiliate_id"], unique=False)

    op.create_table(
        "affiliate_commissions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("affiliate_id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("rate", sa.Float(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payout_date", sa.DateTime(), nullable=True),
        sa.Column("payout_id", sa.String(36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.ForeignKeyConstraint(["payout_id"], ["affiliate_payouts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("affiliate_id", "application_id", name="uq_commission_affiliate_application"),
    )
    op.create_index("ix_affiliate_commissions_affiliate_id", "affiliate_commissions", ["affiliate_id"], unique=False)
    op.create_index(
        "ix_affiliate_commissions_application_id", "affiliate_commissions", ["application_id"], unique=False
    )
    op.create_index("ix_affiliate_commissions_status", "affiliate_commissions", ["status"], unique=False)

    op.create_table(
        "affiliate_clicks",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("affiliate_id", sa.String(36), nullable=True),
        sa.Column("referral_code", sa.String(32), nullable=False),
        sa.Column("referrer_url", sa.String(1000), nullable=False),
        sa.Column("user_agent", sa.String(500), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("landing_page", sa.String(1000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_affiliate_clicks_affiliate_id", "affiliate_clicks", ["affiliate_id"], unique=False)
    op.create_index("ix_affiliate_clicks_referral_code", "affiliate_clicks", ["referral_code"], unique=False)
    op.create_index("ix_affiliate_clicks_created_at", "affiliate_clicks", ["created_at"], unique=False)

    op.create_table(
        "affiliate_conversions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("affiliate_id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("reference_id", sa.String(20), nullable=True),
        sa.Column("conversion_type", sa.String(30), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("affiliate_id", "application_id", name="uq_conversion_affiliate_application"),
    )
    op.create_index("ix_affiliate_conversions_affiliate_id", "affiliate_conversions", ["affiliate_id"], unique=False)
    op.create_index(
        "ix_affiliate_conversions_application_id", "affiliate_conversions", ["application_id"], unique=False
    )

    op.create_table(
        "affiliate_notifications",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("affiliate_id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=True),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["affiliate_id"], ["affiliates.id"]),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_affiliate_notifications_affiliate_id", "affiliate_notifications", ["affiliate_id"], unique=False
    )

    # Failed attributions awaiting manual retry
    op.create_table(
        "affiliate_tracking_retries",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("referral_code", sa.String(32), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_affiliate_tracking_retries_application_id", "affiliate_tracking_retries", ["application_id"], unique=False
    )
    op.create_index("ix_affiliate_tracking_retries_status", "affiliate_tracking_retries", ["status"], unique=False)

    # MLM
    op.create_table(
        "affiliate_relationships",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("parent_affiliate_id", sa.String(36), nullable=False),
        sa.Column("child_affiliate_id", sa.String(36), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["parent_affiliate_id"], ["affiliates.id"]),
        sa.ForeignKeyConstraint(["child_affiliate_id"], ["affiliates.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("parent_affiliate_id", "child_affiliate_id", name="uq_affiliate_relationship"),
    )
    op.create_index(
        "ix_affiliate_relationships_parent_affiliate_id",
        "affiliate_relationships", ["parent_affiliate_id"], unique=False,
    )
    op.create_index(
        "ix_affiliate_relationships_child_affiliate_id",
        "affiliate_relationships", ["child_affiliate_id"], unique=False,
    )

    op.create_table(
        "affiliate_mlm_settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("commission_percentage", sa.Float(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("level"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("affiliate_mlm_settings")
    op.drop_table("affiliate_relationships")
    op.drop_table("affiliate_tracking_retries")
    op.drop_table("affiliate_notifications")
    op.drop_table("affiliate_conversions")
    op.drop_table("affiliate_clicks")
    op.drop_table("affiliate_commissions")
    op.drop_table("affiliate_payouts")
    op.drop_table("additional_information")
    op.drop_table("funding_requests")
    op.drop_table("business_details")
    op.drop_table("applicant_details")
    op.drop_table("applications")
    op.drop_table("admin_users")
    op.drop_table("affiliate_tiers")
    op.drop_table("affiliates")
