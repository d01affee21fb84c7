"""create audits and actor_activity tables

Revision ID: 3f9a2c71d0b4
Revises:
Create Date: 2026-10-18 09:12:40.118203

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f9a2c71d0b4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "audits",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "action",
            sa.Text,
            nullable=False,
            comment="Dispatch key matched against the job registry",
        ),
        sa.Column(
            "actor_id", sa.Integer, nullable=True, comment="Who triggered the action"
        ),
        sa.Column(
            "actee_id", sa.Text, nullable=True, comment="What the action was performed on"
        ),
        sa.Column("details", sa.JSON, nullable=True, comment="Job input data"),
        sa.Column(
            "logged_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Creation time; defines FIFO processing order",
        ),
        # Worker bookkeeping
        sa.Column(
            "claimed",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When a worker took ownership; NULL when unclaimed",
        ),
        sa.Column(
            "processed",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When all jobs succeeded; set once, never cleared",
        ),
        sa.Column(
            "failures",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Failed processing attempts",
        ),
        sa.Column(
            "last_failure",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="Time of the most recent failed attempt",
        ),
    )

    op.create_index("ix_audits_action_logged_at", "audits", ["action", "logged_at"])

    # The checker only ever scans unprocessed rows in logged_at order
    op.create_index(
        "ix_audits_unprocessed_logged_at",
        "audits",
        ["logged_at", "id"],
        postgresql_where=sa.text("processed IS NULL"),
    )

    op.create_table(
        "actor_activity",
        sa.Column("actor_id", sa.Integer, primary_key=True),
        sa.Column(
            "last_action",
            sa.Text,
            nullable=False,
            comment="Action of the latest processed event",
        ),
        sa.Column(
            "last_audit_id",
            sa.Integer,
            nullable=False,
            comment="Latest processed audit event",
        ),
        sa.Column(
            "last_seen_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            comment="logged_at of the latest processed event",
        ),
        sa.Column(
            "event_count",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Processed events for this actor",
        ),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("actor_activity")
    op.drop_index("ix_audits_unprocessed_logged_at", table_name="audits")
    op.drop_index("ix_audits_action_logged_at", table_name="audits")
    op.drop_table("audits")
