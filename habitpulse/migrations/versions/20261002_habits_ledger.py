"""habit definitions and the completion ledger

Revision ID: 20261002_habits_ledger
Revises: 20261001_core_initial
Create Date: 2026-10-02
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261002_habits_ledger"
down_revision = "20261001_core_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "habits_habit",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("kind", sa.String(length=16), nullable=False, server_default="simple"),
        sa.Column("target_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("schedule_days", sa.JSON(), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
        sa.Column("overflow_policy", sa.String(length=16)),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_habits_habit_user_id", "habits_habit", ["user_id"])
    op.create_index("ix_habits_habit_user_deleted", "habits_habit", ["user_id", "deleted_at"])

    op.create_table(
        "habits_completion_event",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("habit_id", sa.Integer(), sa.ForeignKey("habits_habit.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("local_day", sa.Date(), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False, server_default="increment"),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_habits_event_habit_day", "habits_completion_event", ["habit_id", "local_day", "id"]
    )
    op.create_index("ix_habits_event_user_day", "habits_completion_event", ["user_id", "local_day"])


def downgrade():
    op.drop_index("ix_habits_event_user_day", table_name="habits_completion_event")
    op.drop_index("ix_habits_event_habit_day", table_name="habits_completion_event")
    op.drop_table("habits_completion_event")
    op.drop_index("ix_habits_habit_user_deleted", table_name="habits_habit")
    op.drop_index("ix_habits_habit_user_id", table_name="habits_habit")
    op.drop_table("habits_habit")
