"""transactional outbox

Revision ID: 20261004_platform_outbox
Revises: 20261003_challenges_social
Create Date: 2026-10-04
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261004_platform_outbox"
down_revision = "20261003_challenges_social"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "platform_outbox",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id")),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("available_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("last_error", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_platform_outbox_user_id", "platform_outbox", ["user_id"])
    op.create_index("ix_platform_outbox_event_type", "platform_outbox", ["event_type"])
    op.create_index("ix_platform_outbox_user_available_at", "platform_outbox", ["user_id", "available_at"])
    op.create_index("ix_platform_outbox_status_available_at", "platform_outbox", ["status", "available_at"])


def downgrade():
    op.drop_index("ix_platform_outbox_status_available_at", table_name="platform_outbox")
    op.drop_index("ix_platform_outbox_user_available_at", table_name="platform_outbox")
    op.drop_index("ix_platform_outbox_event_type", table_name="platform_outbox")
    op.drop_index("ix_platform_outbox_user_id", table_name="platform_outbox")
    op.drop_table("platform_outbox")
