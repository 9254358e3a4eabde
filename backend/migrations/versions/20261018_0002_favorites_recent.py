"""favorites and recent files

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 12:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


# The enum type already exists from the initial revision.
resource_type = sa.Enum("FILE", "FOLDER", name="resourcetype").with_variant(
    postgresql.ENUM("FILE", "FOLDER", name="resourcetype", create_type=False), "postgresql"
)


def upgrade() -> None:
    op.create_table(
        "favorites",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("resource_type", resource_type, nullable=False),
        sa.Column("resource_id", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "resource_type", "resource_id", name="uq_favorite_resource"),
    )
    op.create_index(op.f("ix_favorites_user_id"), "favorites", ["user_id"], unique=False)
    op.create_index(op.f("ix_favorites_resource_id"), "favorites", ["resource_id"], unique=False)

    op.create_table(
        "recent_files",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("file_id", sa.String(length=32), nullable=False),
        sa.Column("accessed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["file_id"], ["files.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "file_id", name="uq_recent_file_user"),
    )
    op.create_index(op.f("ix_recent_files_user_id"), "recent_files", ["user_id"], unique=False)
    op.create_index(op.f("ix_recent_files_file_id"), "recent_files", ["file_id"], unique=False)
    op.create_index(op.f("ix_recent_files_accessed_at"), "recent_files", ["accessed_at"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_recent_files_accessed_at"), table_name="recent_files")
    op.drop_index(op.f("ix_recent_files_file_id"), table_name="recent_files")
    op.drop_index(op.f("ix_recent_files_user_id"), table_name="recent_files")
    op.drop_table("recent_files")

    op.drop_index(op.f("ix_favorites_resource_id"), table_name="favorites")
    op.drop_index(op.f("ix_favorites_user_id"), table_name="favorites")
    op.drop_table("favorites")
