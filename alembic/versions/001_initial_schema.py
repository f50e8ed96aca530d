"""Initial schema: catalog tables, design variants, production jobs.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "templates",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("vector_source_ref", sa.Text, nullable=True),
        sa.Column("master_document_ref", sa.Text, nullable=True),
        sa.Column("layer_data", postgresql.JSONB, nullable=True),
        schema="public",
    )
    op.create_table(
        "items",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("template_id", sa.Text, sa.ForeignKey("public.templates.id"), nullable=True),
        schema="public",
    )
    op.create_table(
        "assets",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("kind", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("value", sa.Text, nullable=False),
        schema="public",
    )
    op.create_table(
        "design_variants",
        sa.Column("id", postgresql.UUID, primary_key=True),
        sa.Column("item_id", sa.Text, sa.ForeignKey("public.items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("configuration", postgresql.JSONB, nullable=False),
        sa.Column("preview_artifact_ref", sa.Text, nullable=True),
        sa.Column("final_artifact_ref", sa.Text, nullable=True),
        sa.Column("status", sa.Text, nullable=False, server_default="preview"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        schema="public",
    )
    op.create_index("ix_design_variants_item", "design_variants", ["item_id", "created_at"], schema="public")
    op.create_table(
        "production_jobs",
        sa.Column("id", postgresql.UUID, primary_key=True),
        # No foreign key: a job outlives the variant it was created for.
        sa.Column("variant_id", postgresql.UUID, nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        schema="public",
    )
    op.create_index(
        "uq_active_job_per_variant",
        "production_jobs",
        ["variant_id"],
        unique=True,
        schema="public",
        postgresql_where=sa.text("status IN ('pending', 'processing')"),
    )
    op.create_index("ix_production_jobs_queue", "production_jobs", ["status", "priority", "enqueued_at"], schema="public")
    op.create_table(
        "job_artifacts",
        sa.Column("job_id", postgresql.UUID, sa.ForeignKey("public.production_jobs.id", ondelete="CASCADE")),
        sa.Column("format", sa.Text, nullable=False),
        sa.Column("ref", sa.Text, nullable=False),
        sa.PrimaryKeyConstraint("job_id", "format"),
        schema="public",
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("job_artifacts", schema="public")
    op.drop_index("ix_production_jobs_queue", table_name="production_jobs", schema="public")
    op.drop_index("uq_active_job_per_variant", table_name="production_jobs", schema="public")
    op.drop_table("production_jobs", schema="public")
    op.drop_index("ix_design_variants_item", table_name="design_variants", schema="public")
    op.drop_table("design_variants", schema="public")
    op.drop_table("assets", schema="public")
    op.drop_table("items", schema="public")
    op.drop_table("templates", schema="public")
