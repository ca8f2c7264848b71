"""role upgrade requests

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

NOW = sa.text("CURRENT_TIMESTAMP")
PENDING = sa.text("status = 'PENDING'")


def upgrade() -> None:
    op.create_table(
        "role_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("current_role", sa.String(length=50), nullable=False),
        sa.Column("requested_role", sa.String(length=50), nullable=False, server_default="MANAGER"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.Uuid(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.CheckConstraint("requested_role = 'MANAGER'", name="chk_role_request_requested_role"),
        sa.CheckConstraint("status IN ('PENDING', 'APPROVED', 'REJECTED')", name="chk_role_request_status"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_role_requests_company_id", "role_requests", ["company_id"], unique=False)
    op.create_index("ix_role_requests_user_id", "role_requests", ["user_id"], unique=False)
    op.create_index("idx_role_requests_company_status", "role_requests", ["company_id", "status"], unique=False)
    op.create_index(
        "uq_role_requests_pending_user",
        "role_requests",
        ["user_id"],
        unique=True,
        postgresql_where=PENDING,
        sqlite_where=PENDING,
    )


def downgrade() -> None:
    op.drop_index("uq_role_requests_pending_user", table_name="role_requests")
    op.drop_index("idx_role_requests_company_status", table_name="role_requests")
    op.drop_index("ix_role_requests_user_id", table_name="role_requests")
    op.drop_index("ix_role_requests_company_id", table_name="role_requests")
    op.drop_table("role_requests")
