"""create ta recruitment tables

Revision ID: a7c1e0d2f4b9
Revises:
Create Date: 2026-10-18 09:00:00.000000

This migration:
1. Creates the enum types shared by the recruitment tables
2. Creates module_recruitments and its per-role ledger rows (role_quotas)
3. Creates ta_applications
4. Creates ta_document_submissions

The ledger CHECK constraints mirror the counter invariants enforced by the
services, so a buggy write fails at the database instead of drifting.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c1e0d2f4b9"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


module_status_enum = postgresql.ENUM(
    "initialised",
    "pending-changes",
    "changes-submitted",
    "advertised",
    "full",
    "getting-documents",
    "closed",
    "archived",
    name="module_status",
    create_type=False,
)
applicant_role_enum = postgresql.ENUM(
    "undergraduate",
    "postgraduate",
    name="applicant_role",
    create_type=False,
)
application_status_enum = postgresql.ENUM(
    "pending",
    "accepted",
    "rejected",
    name="application_status",
    create_type=False,
)
document_status_enum = postgresql.ENUM(
    "pending",
    "submitted",
    "approved",
    "rejected",
    "additional-required",
    name="document_status",
    create_type=False,
)

ENUMS = (
    module_status_enum,
    applicant_role_enum,
    application_status_enum,
    document_status_enum,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create the enum types and the four recruitment tables."""
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # Module recruitments
    op.create_table(
        "module_recruitments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("recruitment_series_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("module_code", sa.String(length=20), nullable=False),
        sa.Column("module_name", sa.String(length=200), nullable=False),
        sa.Column("semester", sa.String(length=20), nullable=False),
        sa.Column("year", sa.String(length=20), nullable=False),
        sa.Column(
            "coordinators",
            postgresql.ARRAY(postgresql.UUID(as_uuid=True)),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("required_ta_hours", sa.Float(), nullable=True),
        sa.Column("requirements", sa.Text(), nullable=True),
        sa.Column("application_due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("document_due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "open_for_undergraduates", sa.Boolean(), nullable=False, server_default="true"
        ),
        sa.Column(
            "open_for_postgraduates", sa.Boolean(), nullable=False, server_default="true"
        ),
        sa.Column(
            "module_status",
            module_status_enum,
            nullable=False,
            server_default="initialised",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "open_for_undergraduates OR open_for_postgraduates",
            name="ck_module_recruitments_open_for_some_role",
        ),
    )
    op.create_index(
        "ix_module_recruitments_status", "module_recruitments", ["module_status"], unique=False
    )
    op.create_index(
        "ix_module_recruitments_series",
        "module_recruitments",
        ["recruitment_series_id"],
        unique=False,
    )
    op.create_index(
        "ix_module_recruitments_coordinators",
        "module_recruitments",
        ["coordinators"],
        unique=False,
        postgresql_using="gin",
    )

    # Ledger rows
    op.create_table(
        "role_quotas",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("module_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", applicant_role_enum, nullable=False),
        sa.Column("required", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("applied", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reviewed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("accepted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("doc_submitted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("appointed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["module_id"],
            ["module_recruitments.id"],
            name="fk_role_quotas_module_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("module_id", "role", name="uq_role_quotas_module_role"),
        sa.CheckConstraint(
            "required >= 0 AND remaining >= 0 AND applied >= 0 AND reviewed >= 0 "
            "AND accepted >= 0 AND doc_submitted >= 0 AND appointed >= 0",
            name="ck_role_quotas_non_negative",
        ),
        sa.CheckConstraint("remaining = required - accepted", name="ck_role_quotas_remaining"),
        sa.CheckConstraint(
            "reviewed <= applied AND accepted <= reviewed", name="ck_role_quotas_review_order"
        ),
        sa.CheckConstraint(
            "doc_submitted <= accepted AND appointed <= doc_submitted",
            name="ck_role_quotas_document_order",
        ),
        sa.CheckConstraint("applied - reviewed <= remaining", name="ck_role_quotas_claims"),
    )

    # Applications
    op.create_table(
        "ta_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("applicant_email", sa.String(length=255), nullable=False),
        sa.Column("module_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recruitment_series_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("role", applicant_role_enum, nullable=False),
        sa.Column("ta_hours", sa.Float(), nullable=True),
        sa.Column(
            "status",
            application_status_enum,
            nullable=False,
            server_default="pending",
        ),
        sa.Column("decided_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("documents_counted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("appointed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["module_id"],
            ["module_recruitments.id"],
            name="fk_ta_applications_module_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "applicant_id", "module_id", name="uq_ta_applications_applicant_module"
        ),
    )
    op.create_index(
        "ix_ta_applications_module_status",
        "ta_applications",
        ["module_id", "status"],
        unique=False,
    )
    op.create_index(
        "ix_ta_applications_applicant", "ta_applications", ["applicant_id"], unique=False
    )

    # Document submissions
    op.create_table(
        "ta_document_submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        *_timestamps(),
        sa.Column("applicant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("applicant_email", sa.String(length=255), nullable=False),
        sa.Column("recruitment_series_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name_as_in_bank_account", sa.String(length=200), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=True),
        sa.Column("nic_number", sa.String(length=20), nullable=True),
        sa.Column("bank", sa.String(length=100), nullable=True),
        sa.Column("branch", sa.String(length=100), nullable=True),
        sa.Column("account_number", sa.String(length=50), nullable=True),
        sa.Column(
            "documents",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column(
            "status",
            document_status_enum,
            nullable=False,
            server_default="pending",
        ),
        sa.Column("review_note", sa.Text(), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "applicant_id",
            "recruitment_series_id",
            name="uq_ta_document_submissions_applicant_series",
        ),
    )
    op.create_index(
        "ix_ta_document_submissions_status",
        "ta_document_submissions",
        ["status"],
        unique=False,
    )


def downgrade() -> None:
    """Drop the recruitment tables and their enum types."""
    op.drop_index("ix_ta_document_submissions_status", table_name="ta_document_submissions")
    op.drop_table("ta_document_submissions")

    op.drop_index("ix_ta_applications_applicant", table_name="ta_applications")
    op.drop_index("ix_ta_applications_module_status", table_name="ta_applications")
    op.drop_table("ta_applications")

    op.drop_table("role_quotas")

    op.drop_index("ix_module_recruitments_coordinators", table_name="module_recruitments")
    op.drop_index("ix_module_recruitments_series", table_name="module_recruitments")
    op.drop_index("ix_module_recruitments_status", table_name="module_recruitments")
    op.drop_table("module_recruitments")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
