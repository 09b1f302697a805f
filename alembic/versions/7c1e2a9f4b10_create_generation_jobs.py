"""Create the generation job ledger.

Revision ID: 7c1e2a9f4b10
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from gameforge.core.migration_guards import guarded_create_index, guarded_create_table, guarded_drop_index, guarded_drop_table

revision = "7c1e2a9f4b10"
down_revision = None
branch_labels = None
depends_on = None

_JSON_DOCUMENT = postgresql.JSONB(astext_type=sa.Text()).with_variant(sa.JSON(), "sqlite")


def upgrade() -> None:
  """Upgrade schema."""
  guarded_create_table(
    "generation_jobs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("prompt", sa.Text(), nullable=False),
    sa.Column("template", sa.String(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=True),
    sa.Column("priority", sa.Integer(), nullable=False),
    sa.Column("config_json", _JSON_DOCUMENT, nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("result_ref", sa.String(), nullable=True),
    sa.Column("result_json", _JSON_DOCUMENT, nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_generation_jobs_user_id"), "generation_jobs", ["user_id"], unique=False)
  guarded_create_index(op.f("ix_generation_jobs_status"), "generation_jobs", ["status"], unique=False)
  guarded_create_index(op.f("ix_generation_jobs_created_at"), "generation_jobs", ["created_at"], unique=False)
  guarded_create_index("ix_generation_jobs_status_started", "generation_jobs", ["status", "started_at"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  guarded_drop_index("ix_generation_jobs_status_started", table_name="generation_jobs")
  guarded_drop_index(op.f("ix_generation_jobs_created_at"), table_name="generation_jobs")
  guarded_drop_index(op.f("ix_generation_jobs_status"), table_name="generation_jobs")
  guarded_drop_index(op.f("ix_generation_jobs_user_id"), table_name="generation_jobs")
  guarded_drop_table("generation_jobs")
