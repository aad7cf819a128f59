"""Create jobs table."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "jobs",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("state", sa.String(length=16), nullable=False),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("parameters_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("caller_id", sa.String(length=128), nullable=False),
        sa.Column("notification_target", sa.String(length=512)),
        sa.Column("vendor_request_id", sa.String(length=128)),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("result_reference", sa.Text()),
        sa.Column("result_json", sa.Text()),
        sa.Column("error_detail", sa.Text()),
    )
    op.create_index("ix_jobs_state", "jobs", ["state"])
    op.create_index("ix_jobs_caller_id", "jobs", ["caller_id"])


def downgrade() -> None:
    op.drop_index("ix_jobs_caller_id", table_name="jobs")
    op.drop_index("ix_jobs_state", table_name="jobs")
    op.drop_table("jobs")
