"""create_generation_queue_tables

Revision ID: 3b9d2f6a1c04
Revises:
Create Date: 2026-10-17 09:12:40.118302

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9d2f6a1c04"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

queue_job_status = sa.Enum(
    "PENDING", "PROCESSING", "COMPLETED", "FAILED", "RETRYING", name="queuejobstatus"
)
generation_job_status = sa.Enum(
    "QUEUED", "PROCESSING", "COMPLETED", "FAILED", name="generationjobstatus"
)


def upgrade() -> None:
    """Create generation job, queue, page and file ownership tables."""
    op.create_table(
        "generation_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=True),
        sa.Column("status", generation_job_status, nullable=False),
        sa.Column("output_url", sa.String(), nullable=True),
        sa.Column("image_path", sa.String(length=512), nullable=True),
        sa.Column("page_id", sa.Uuid(), nullable=True),
        sa.Column("claim_nonce", sa.String(length=128), nullable=True),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generation_jobs_owner_id", "generation_jobs", ["owner_id"])
    op.create_index("ix_generation_jobs_status", "generation_jobs", ["status"])

    op.create_table(
        "job_queue",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("external_job_id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=True),
        sa.Column("status", queue_job_status, nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("last_error", sa.String(length=1000), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["external_job_id"], ["generation_jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_job_queue_external_job_id", "job_queue", ["external_job_id"])
    op.create_index("ix_job_queue_owner_id", "job_queue", ["owner_id"])
    op.create_index("ix_job_queue_status", "job_queue", ["status"])
    op.create_index("ix_job_queue_scheduled_at", "job_queue", ["scheduled_at"])
    # Claim ordering: pending rows by priority, then age
    op.create_index(
        "ix_job_queue_claim_order",
        "job_queue",
        ["status", sa.text("priority DESC"), "scheduled_at", "created_at"],
    )
    # At most one active row per external job
    op.create_index(
        "uq_job_queue_active_external_job",
        "job_queue",
        ["external_job_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'PROCESSING', 'RETRYING')"),
    )

    op.create_table(
        "coloring_pages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=True),
        sa.Column("prompt", sa.String(), nullable=False),
        sa.Column("style", sa.String(length=50), nullable=False),
        sa.Column("difficulty", sa.Integer(), nullable=False),
        sa.Column("image_path", sa.String(length=512), nullable=False),
        sa.Column("analysis", sa.JSON(), nullable=True),
        sa.Column("analysis_is_fallback", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("difficulty BETWEEN 1 AND 5", name="ck_coloring_pages_difficulty"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_coloring_pages_owner_id", "coloring_pages", ["owner_id"])
    op.create_index("ix_coloring_pages_image_path", "coloring_pages", ["image_path"])

    op.create_table(
        "file_ownerships",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("path", sa.String(length=512), nullable=False),
        sa.Column("nonce_hash", sa.String(length=64), nullable=False),
        sa.Column("claimed_by", sa.String(length=255), nullable=True),
        sa.Column("claimed_path", sa.String(length=512), nullable=True),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_file_ownerships_path", "file_ownerships", ["path"], unique=True)


def downgrade() -> None:
    """Drop all generation tables and enum types."""
    op.drop_index("ix_file_ownerships_path", table_name="file_ownerships")
    op.drop_table("file_ownerships")

    op.drop_index("ix_coloring_pages_image_path", table_name="coloring_pages")
    op.drop_index("ix_coloring_pages_owner_id", table_name="coloring_pages")
    op.drop_table("coloring_pages")

    op.drop_index("uq_job_queue_active_external_job", table_name="job_queue")
    op.drop_index("ix_job_queue_claim_order", table_name="job_queue")
    op.drop_index("ix_job_queue_scheduled_at", table_name="job_queue")
    op.drop_index("ix_job_queue_status", table_name="job_queue")
    op.drop_index("ix_job_queue_owner_id", table_name="job_queue")
    op.drop_index("ix_job_queue_external_job_id", table_name="job_queue")
    op.drop_table("job_queue")

    op.drop_index("ix_generation_jobs_status", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_owner_id", table_name="generation_jobs")
    op.drop_table("generation_jobs")

    queue_job_status.drop(op.get_bind(), checkfirst=True)
    generation_job_status.drop(op.get_bind(), checkfirst=True)
