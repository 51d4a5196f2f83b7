"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- ENUM types ---
    break_status_enum = sa.Enum("active", "armed", "on_break", name="break_status_enum")
    break_status_enum.create(op.get_bind(), checkfirst=True)

    break_reason_enum = sa.Enum("attention_rule", "duration_rule", name="break_reason_enum")
    break_reason_enum.create(op.get_bind(), checkfirst=True)

    # --- viewers ---
    op.create_table(
        "viewers",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("last_event_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    # --- watch_events ---
    op.create_table(
        "watch_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("video_id", sa.String(128), nullable=False),
        sa.Column("watch_time", sa.Float(), nullable=False),
        sa.Column("video_duration", sa.Float(), nullable=False),
        sa.Column("session_watch_time", sa.Float(), nullable=False),
        sa.Column("video_name", sa.String(512), nullable=False, server_default=""),
        sa.Column("hashtags", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("liked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("disliked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hour_of_day", sa.Integer(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("discarded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_watch_events_id", "watch_events", ["id"])
    op.create_index("ix_watch_events_user_id", "watch_events", ["user_id"])
    op.create_index("ix_watch_events_video_id", "watch_events", ["video_id"])
    op.create_index("ix_watch_events_day", "watch_events", ["day"])

    # --- daily_stats ---
    op.create_table(
        "daily_stats",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("watch_time_total", sa.Float(), nullable=False, server_default="0"),
        sa.Column("duration_total", sa.Float(), nullable=False, server_default="0"),
        sa.Column("counted_events", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "day", name="uq_daily_stats_user_day"),
    )
    op.create_index("ix_daily_stats_id", "daily_stats", ["id"])
    op.create_index("ix_daily_stats_user_id", "daily_stats", ["user_id"])
    op.create_index("ix_daily_stats_day", "daily_stats", ["day"])

    # --- break_states ---
    op.create_table(
        "break_states",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("status", sa.Enum(
            "active", "armed", "on_break", name="break_status_enum", create_type=False,
        ), nullable=False),
        sa.Column("armed_reason", sa.Enum(
            "attention_rule", "duration_rule", name="break_reason_enum", create_type=False,
        ), nullable=True),
        sa.Column("armed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("armed_hour", sa.Integer(), nullable=True),
        sa.Column("break_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("break_length_minutes", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    # --- break_notifications ---
    op.create_table(
        "break_notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("reason", sa.Enum(
            "attention_rule", "duration_rule", name="break_reason_enum", create_type=False,
        ), nullable=False),
        sa.Column("break_length_minutes", sa.Float(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_break_notifications_id", "break_notifications", ["id"])
    op.create_index("ix_break_notifications_user_id", "break_notifications", ["user_id"])

    # --- profile_entries ---
    op.create_table(
        "profile_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("video_id", sa.String(128), nullable=False),
        sa.Column("tokens", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("liked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "seq", name="uq_profile_entry_user_seq"),
    )
    op.create_index("ix_profile_entries_id", "profile_entries", ["id"])
    op.create_index("ix_profile_entries_user_id", "profile_entries", ["user_id"])

    # --- profile_purges ---
    op.create_table(
        "profile_purges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("token", sa.String(256), nullable=False),
        sa.Column("purged_at_seq", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "token", name="uq_profile_purge_user_token"),
    )
    op.create_index("ix_profile_purges_id", "profile_purges", ["id"])
    op.create_index("ix_profile_purges_user_id", "profile_purges", ["user_id"])

    # --- parental_settings ---
    op.create_table(
        "parental_settings",
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("break_short_minutes", sa.Float(), nullable=False),
        sa.Column("break_medium_minutes", sa.Float(), nullable=False),
        sa.Column("break_long_minutes", sa.Float(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )


def downgrade() -> None:
    op.drop_table("parental_settings")
    op.drop_index("ix_profile_purges_user_id", table_name="profile_purges")
    op.drop_index("ix_profile_purges_id", table_name="profile_purges")
    op.drop_table("profile_purges")
    op.drop_index("ix_profile_entries_user_id", table_name="profile_entries")
    op.drop_index("ix_profile_entries_id", table_name="profile_entries")
    op.drop_table("profile_entries")
    op.drop_index("ix_break_notifications_user_id", table_name="break_notifications")
    op.drop_index("ix_break_notifications_id", table_name="break_notifications")
    op.drop_table("break_notifications")
    op.drop_table("break_states")
    op.drop_index("ix_daily_stats_day", table_name="daily_stats")
    op.drop_index("ix_daily_stats_user_id", table_name="daily_stats")
    op.drop_index("ix_daily_stats_id", table_name="daily_stats")
    op.drop_table("daily_stats")
    op.drop_index("ix_watch_events_day", table_name="watch_events")
    op.drop_index("ix_watch_events_video_id", table_name="watch_events")
    op.drop_index("ix_watch_events_user_id", table_name="watch_events")
    op.drop_index("ix_watch_events_id", table_name="watch_events")
    op.drop_table("watch_events")
    op.drop_table("viewers")

    op.execute("DROP TYPE IF EXISTS break_reason_enum")
    op.execute("DROP TYPE IF EXISTS break_status_enum")
