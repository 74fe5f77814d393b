"""create generation_tasks, photoshoots and credit_ledger

Revision ID: 3b1f9c2d7a10
Revises:
Create Date: 2025-06-02 10:12:41.118204

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f9c2d7a10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum members are stored by name
TASK_STATUS_VALUES = ("PENDING", "PROCESSING", "COMPLETED", "FAILED")

task_status = sa.Enum(*TASK_STATUS_VALUES, name="taskstatus").with_variant(
    postgresql.ENUM(*TASK_STATUS_VALUES, name="taskstatus", create_type=False), "postgresql"
)


def upgrade() -> None:
    """Create generation_tasks, photoshoots and credit_ledger tables."""
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        postgresql.ENUM(*TASK_STATUS_VALUES, name="taskstatus").create(bind, checkfirst=True)

    op.create_table(
        "generation_tasks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("batch_id", sa.Uuid(), nullable=False),
        sa.Column("batch_index", sa.Integer(), nullable=False),
        sa.Column("total_in_batch", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("prompt", sa.String(), nullable=False),
        sa.Column("reference_image_urls", sa.JSON(), nullable=False),
        sa.Column("size", sa.String(length=20), nullable=False),
        sa.Column("quality", sa.String(length=20), nullable=False),
        sa.Column("status", task_status, nullable=False),
        sa.Column("result_image_url", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("batch_id", "batch_index", name="uq_generation_tasks_batch_slot"),
    )
    op.create_index("ix_generation_tasks_batch_id", "generation_tasks", ["batch_id"])
    op.create_index("ix_generation_tasks_user_id", "generation_tasks", ["user_id"])
    op.create_index("ix_generation_tasks_status", "generation_tasks", ["status"])
    op.create_index("ix_generation_tasks_updated_at", "generation_tasks", ["updated_at"])

    op.create_table(
        "photoshoots",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("task_id", sa.Uuid(), nullable=True),
        sa.Column("batch_id", sa.Uuid(), nullable=True),
        sa.Column("batch_index", sa.Integer(), nullable=True),
        sa.Column("variation_group_id", sa.Uuid(), nullable=True),
        sa.Column("variation_index", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("prompt", sa.String(), nullable=False),
        sa.Column("reference_image_urls", sa.JSON(), nullable=False),
        sa.Column("status", task_status, nullable=False),
        sa.Column("result_image_url", sa.String(), nullable=True),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["generation_tasks.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_photoshoots_task_id", "photoshoots", ["task_id"])
    op.create_index("ix_photoshoots_user_id", "photoshoots", ["user_id"])
    op.create_index("ix_photoshoots_status", "photoshoots", ["status"])
    op.create_index("ix_photoshoots_batch_slot", "photoshoots", ["batch_id", "batch_index"])
    op.create_index(
        "ix_photoshoots_variation_slot", "photoshoots", ["variation_group_id", "variation_index"]
    )

    op.create_table(
        "credit_ledger",
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("credits_used", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("credits >= 0", name="ck_credit_ledger_credits_non_negative"),
        sa.PrimaryKeyConstraint("user_id"),
    )


def downgrade() -> None:
    """Drop generation tables."""
    op.drop_table("credit_ledger")
    op.drop_index("ix_photoshoots_variation_slot", table_name="photoshoots")
    op.drop_index("ix_photoshoots_batch_slot", table_name="photoshoots")
    op.drop_index("ix_photoshoots_status", table_name="photoshoots")
    op.drop_index("ix_photoshoots_user_id", table_name="photoshoots")
    op.drop_index("ix_photoshoots_task_id", table_name="photoshoots")
    op.drop_table("photoshoots")
    op.drop_index("ix_generation_tasks_updated_at", table_name="generation_tasks")
    op.drop_index("ix_generation_tasks_status", table_name="generation_tasks")
    op.drop_index("ix_generation_tasks_user_id", table_name="generation_tasks")
    op.drop_index("ix_generation_tasks_batch_id", table_name="generation_tasks")
    op.drop_table("generation_tasks")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        postgresql.ENUM(name="taskstatus").drop(bind, checkfirst=True)
