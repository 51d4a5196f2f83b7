"""
Profile storage.

ProfileEntry   - one row per counted, non-disliked watch (tokens in watch order).
ProfilePurge   - latest dislike purge per (user, token); entries with
                 seq <= purged_at_seq no longer contribute that token.
ParentalSettings - per-user break-length override (short, medium, long minutes).

tokens: JSON-encoded list stored as Text (no external deps).
"""
from datetime import datetime
from sqlalchemy import Integer, String, Text, Boolean, Float, DateTime, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class ProfileEntry(Base):
    __tablename__ = "profile_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "seq", name="uq_profile_entry_user_seq"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    video_id: Mapped[str] = mapped_column(String(128), nullable=False)
    tokens: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    liked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ProfilePurge(Base):
    __tablename__ = "profile_purges"
    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_profile_purge_user_token"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(256), nullable=False)
    purged_at_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ParentalSettings(Base):
    __tablename__ = "parental_settings"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    break_short_minutes: Mapped[float] = mapped_column(Float, nullable=False)
    break_medium_minutes: Mapped[float] = mapped_column(Float, nullable=False)
    break_long_minutes: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
