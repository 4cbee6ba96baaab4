"""Scheduling schema

Creates the tables of the SM-2 scheduler:
- schedulable_items: per (owner, content) scheduling state with an
  optimistic-concurrency version counter
- review_events: append-only review history
- statistics_snapshots: advisory per-owner statistics

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ===========================================
    # Schedulable items
    # ===========================================
    op.create_table(
        "schedulable_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(128), nullable=False, index=True),
        sa.Column("content_type", sa.String(32), nullable=False),
        sa.Column("content_ref", sa.String(128), nullable=False, index=True),
        sa.Column("scope", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        # SM-2 state
        sa.Column("status", sa.String(20), nullable=False, server_default="LEARNING"),
        sa.Column("ease_factor", sa.Float(), nullable=False, server_default="2.5"),
        sa.Column("interval_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("repetitions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lapses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fail_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_leech", sa.Boolean(), nullable=False, server_default=sa.false()),
        # Scheduling
        sa.Column("last_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_review_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("suspended_from_status", sa.String(20), nullable=True),
        # Bookkeeping
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "owner_id",
            "content_type",
            "content_ref",
            name="uq_schedulable_items_owner_content",
        ),
    )

    # Due-item query and statistics access path
    op.create_index(
        "ix_schedulable_items_owner_status_next_review",
        "schedulable_items",
        ["owner_id", "status", "next_review_at"],
    )
    op.create_index(
        "ix_schedulable_items_owner_scope",
        "schedulable_items",
        ["owner_id", "scope"],
    )

    # ===========================================
    # Review events
    # ===========================================
    op.create_table(
        "review_events",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("item_id", sa.String(36), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=False, index=True),
        # Review details
        sa.Column("quality", sa.Integer(), nullable=False),
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        # Resulting state
        sa.Column("resulting_interval_days", sa.Integer(), nullable=False),
        sa.Column("resulting_ease_factor", sa.Float(), nullable=False),
        sa.Column("is_lapse", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status_before", sa.String(20), nullable=True),
        sa.Column("status_after", sa.String(20), nullable=True),
    )

    op.create_index(
        "ix_review_events_item_occurred",
        "review_events",
        ["item_id", "occurred_at"],
    )

    # ===========================================
    # Statistics snapshots
    # ===========================================
    op.create_table(
        "statistics_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("scope", sa.String(128), nullable=False, server_default=""),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "computed_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "owner_id", "scope", name="uq_statistics_snapshots_owner_scope"
        ),
    )


def downgrade() -> None:
    op.drop_table("statistics_snapshots")
    op.drop_index("ix_review_events_item_occurred", table_name="review_events")
    op.drop_table("review_events")
    op.drop_index(
        "ix_schedulable_items_owner_scope", table_name="schedulable_items"
    )
    op.drop_index(
        "ix_schedulable_items_owner_status_next_review",
        table_name="schedulable_items",
    )
    op.drop_table("schedulable_items")
