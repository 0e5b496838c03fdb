"""create forms and requests with history

Revision ID: 202610190002
Revises: 202610190001
Create Date: 2026-10-19 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190002"
down_revision: str | None = "202610190001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _workflow_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="CREATED"),
        sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id"), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("geom", sa.JSON(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
    ]


def _history_columns(parent_column: str, parent_table: str) -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(parent_column, sa.Integer(), sa.ForeignKey(f"{parent_table}.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "forms",
        *_workflow_columns(),
        sa.Column("type", sa.String(length=16), nullable=False, server_default="NEW"),
        sa.Column("object_type", sa.String(length=64), nullable=True),
        sa.Column("object_name", sa.String(length=255), nullable=True),
        sa.Column("cadastral_id", sa.String(length=64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("files", sa.JSON(), nullable=True),
        sa.Column("provider_type", sa.String(length=16), nullable=True),
        sa.Column("provided_by", sa.String(length=255), nullable=True),
        sa.Column("assignee_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_forms_status", "forms", ["status", "deleted_at"], unique=False)
    op.create_index("ix_forms_tenant_id", "forms", ["tenant_id"], unique=False)
    op.create_index("ix_forms_created_by", "forms", ["created_by"], unique=False)

    op.create_table("form_histories", *_history_columns("form_id", "forms"), sa.PrimaryKeyConstraint("id"))
    op.create_index("ix_form_histories_form_id", "form_histories", ["form_id"], unique=False)

    op.create_table(
        "requests",
        *_workflow_columns(),
        sa.Column("purpose", sa.String(length=64), nullable=True),
        sa.Column("purpose_value", sa.Text(), nullable=True),
        sa.Column("delivery", sa.String(length=32), nullable=True),
        sa.Column("objects", sa.JSON(), nullable=False),
        sa.Column("notify_email", sa.String(length=255), nullable=True),
        sa.Column("generated_file", sa.String(length=1024), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_requests_status", "requests", ["status", "deleted_at"], unique=False)
    op.create_index("ix_requests_tenant_id", "requests", ["tenant_id"], unique=False)
    op.create_index("ix_requests_created_by", "requests", ["created_by"], unique=False)

    op.create_table("request_histories", *_history_columns("request_id", "requests"), sa.PrimaryKeyConstraint("id"))
    op.create_index("ix_request_histories_request_id", "request_histories", ["request_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_request_histories_request_id", table_name="request_histories")
    op.drop_table("request_histories")
    op.drop_index("ix_requests_created_by", table_name="requests")
    op.drop_index("ix_requests_tenant_id", table_name="requests")
    op.drop_index("ix_requests_status", table_name="requests")
    op.drop_table("requests")
    op.drop_index("ix_form_histories_form_id", table_name="form_histories")
    op.drop_table("form_histories")
    op.drop_index("ix_forms_created_by", table_name="forms")
    op.drop_index("ix_forms_tenant_id", table_name="forms")
    op.drop_index("ix_forms_status", table_name="forms")
    op.drop_table("forms")
