"""Add application tags and folders

Revision ID: 002_tags_folders
Revises: 001_initial
Create Date: 2026-10-20

Adds tables for:
- application_folders: Back-office folders, at most one per application
- application_tags: Colored labels
- application_tag_relations: Tag assignments
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "002_tags_folders"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create tag and folder tables."""

    op.create_table(
        "application_folders",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "application_tags",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("color", sa.String(7), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "application_tag_relations",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("application_id", sa.String(36), nullable=False),
        sa.Column("tag_id", sa.String(36), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tag_id"], ["application_tags.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id", "tag_id", name="uq_application_tag"),
    )
    op.create_index(
        "ix_application_tag_relations_application_id", "application_tag_relations", ["application_id"], unique=False
    )
    op.create_index("ix_application_tag_relations_tag_id", "application_tag_relations", ["tag_id"], unique=False)

    # Batch mode so the foreign key also applies on SQLite
    with op.batch_alter_table("applications") as batch_op:
        batch_op.add_column(sa.Column("folder_id", sa.String(36), nullable=True))
        batch_op.create_foreign_key(
            "fk_applications_folder_id", "application_folders", ["folder_id"], ["id"], ondelete="SET NULL"
        )
        batch_op.create_index("ix_applications_folder_id", ["folder_id"], unique=False)


def downgrade() -> None:
    """Drop tag and folder tables."""
    with op.batch_alter_table("applications") as batch_op:
        batch_op.drop_index("ix_applications_folder_id")
        batch_op.drop_constraint("fk_applications_folder_id", type_="foreignkey")
        batch_op.drop_column("folder_id")

    op.drop_table("application_tag_relations")
    op.drop_table("application_tags")
    op.drop_table("application_folders")
