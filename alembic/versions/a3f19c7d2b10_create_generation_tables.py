"""Create generation job, document and audit tables.

Revision ID: a3f19c7d2b10
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "a3f19c7d2b10"
down_revision = None
branch_labels = None
depends_on = None

_UTC_TEXT_NOW = sa.text("""to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')""")


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "generation_jobs",
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("company_profile_id", sa.String(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=True),
    sa.Column("frameworks", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("options_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("progress", sa.Integer(), nullable=False),
    sa.Column("total_documents", sa.Integer(), nullable=False),
    sa.Column("documents_generated", sa.Integer(), nullable=False),
    sa.Column("current_document", sa.String(), nullable=True),
    sa.Column("units_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_at", sa.String(), server_default=_UTC_TEXT_NOW, nullable=False),
    sa.Column("updated_at", sa.String(), server_default=_UTC_TEXT_NOW, nullable=False),
    sa.Column("completed_at", sa.String(), nullable=True),
    sa.PrimaryKeyConstraint("job_id"),
  )
  op.create_index(op.f("ix_generation_jobs_company_profile_id"), "generation_jobs", ["company_profile_id"], unique=False)
  op.create_index(op.f("ix_generation_jobs_user_id"), "generation_jobs", ["user_id"], unique=False)
  op.create_index("ix_generation_jobs_active", "generation_jobs", ["status"], unique=False, postgresql_where=sa.text("status IN ('queued', 'running')"))

  op.create_table(
    "generated_documents",
    sa.Column("document_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("company_profile_id", sa.String(), nullable=False),
    sa.Column("framework", sa.String(), nullable=False),
    sa.Column("template_id", sa.String(), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("category", sa.String(), nullable=False),
    sa.Column("document_type", sa.String(), nullable=False),
    sa.Column("content", sa.Text(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("provider_used", sa.String(), nullable=False),
    sa.Column("model", sa.String(), nullable=True),
    sa.Column("quality_score", sa.Integer(), nullable=True),
    sa.Column("quality_json", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_by", sa.String(), nullable=True),
    sa.Column("sequence", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.String(), server_default=_UTC_TEXT_NOW, nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["generation_jobs.job_id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("document_id"),
  )
  op.create_index(op.f("ix_generated_documents_job_id"), "generated_documents", ["job_id"], unique=False)
  op.create_index(op.f("ix_generated_documents_company_profile_id"), "generated_documents", ["company_profile_id"], unique=False)

  op.create_table(
    "audit_events",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("action", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("user_id", sa.String(), nullable=True),
    sa.Column("metadata_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_audit_events_action"), "audit_events", ["action"], unique=False)
  op.create_index(op.f("ix_audit_events_entity_id"), "audit_events", ["entity_id"], unique=False)
  op.create_index(op.f("ix_audit_events_user_id"), "audit_events", ["user_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_audit_events_user_id"), table_name="audit_events")
  op.drop_index(op.f("ix_audit_events_entity_id"), table_name="audit_events")
  op.drop_index(op.f("ix_audit_events_action"), table_name="audit_events")
  op.drop_table("audit_events")
  op.drop_index(op.f("ix_generated_documents_company_profile_id"), table_name="generated_documents")
  op.drop_index(op.f("ix_generated_documents_job_id"), table_name="generated_documents")
  op.drop_table("generated_documents")
  op.drop_index("ix_generation_jobs_active", table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_user_id"), table_name="generation_jobs")
  op.drop_index(op.f("ix_generation_jobs_company_profile_id"), table_name="generation_jobs")
  op.drop_table("generation_jobs")
