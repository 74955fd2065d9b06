"""challenges, membership intervals, friendships and privacy settings

Revision ID: 20261003_challenges_social
Revises: 20261002_habits_ledger
Create Date: 2026-10-03
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261003_challenges_social"
down_revision = "20261002_habits_ledger"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "challenges_challenge",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("creator_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organization.id")),
        sa.Column("start_day", sa.Date(), nullable=False),
        sa.Column("end_day", sa.Date()),
        sa.Column("partial_credit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_challenges_challenge_creator_id", "challenges_challenge", ["creator_id"])
    op.create_index("ix_challenges_challenge_organization_id", "challenges_challenge", ["organization_id"])

    op.create_table(
        "challenges_challenge_habit",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("challenge_id", sa.Integer(), sa.ForeignKey("challenges_challenge.id"), nullable=False),
        sa.Column("habit_id", sa.Integer(), sa.ForeignKey("habits_habit.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("challenge_id", "habit_id", name="uq_challenge_habit"),
    )
    op.create_index("ix_challenges_challenge_habit_challenge_id", "challenges_challenge_habit", ["challenge_id"])
    op.create_index("ix_challenges_challenge_habit_habit_id", "challenges_challenge_habit", ["habit_id"])

    op.create_table(
        "challenges_membership",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("challenge_id", sa.Integer(), sa.ForeignKey("challenges_challenge.id"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.Column("joined_day", sa.Date(), nullable=False),
        sa.Column("left_at", sa.DateTime()),
        sa.Column("left_day", sa.Date()),
        sa.Column("opt_out_of_leaderboard", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_challenges_membership_user_id", "challenges_membership", ["user_id"])
    op.create_index(
        "ix_challenges_membership_open", "challenges_membership", ["challenge_id", "user_id", "left_at"]
    )

    op.create_table(
        "social_friendship",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("friend_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "friend_id", name="uq_social_friendship_edge"),
    )
    op.create_index("ix_social_friendship_user_id", "social_friendship", ["user_id"])
    op.create_index("ix_social_friendship_friend_id", "social_friendship", ["friend_id"])

    op.create_table(
        "social_privacy_setting",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False),
        sa.Column("scope_class", sa.String(length=32), nullable=False),
        sa.Column("visibility", sa.String(length=32), nullable=False, server_default="public"),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "scope_class", name="uq_social_privacy_scope"),
    )
    op.create_index("ix_social_privacy_setting_user_id", "social_privacy_setting", ["user_id"])


def downgrade():
    op.drop_index("ix_social_privacy_setting_user_id", table_name="social_privacy_setting")
    op.drop_table("social_privacy_setting")
    op.drop_index("ix_social_friendship_friend_id", table_name="social_friendship")
    op.drop_index("ix_social_friendship_user_id", table_name="social_friendship")
    op.drop_table("social_friendship")
    op.drop_index("ix_challenges_membership_open", table_name="challenges_membership")
    op.drop_index("ix_challenges_membership_user_id", table_name="challenges_membership")
    op.drop_table("challenges_membership")
    op.drop_index("ix_challenges_challenge_habit_habit_id", table_name="challenges_challenge_habit")
    op.drop_index("ix_challenges_challenge_habit_challenge_id", table_name="challenges_challenge_habit")
    op.drop_table("challenges_challenge_habit")
    op.drop_index("ix_challenges_challenge_organization_id", table_name="challenges_challenge")
    op.drop_index("ix_challenges_challenge_creator_id", table_name="challenges_challenge")
    op.drop_table("challenges_challenge")
