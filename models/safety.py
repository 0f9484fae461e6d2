"""Safety & moderation models - blocks, favorites and reports."""

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, BigIntId


class BlockedUser(Base):
    """One-directional block: blocker no longer sees or likes blocked."""

    __tablename__ = "blocked_users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    blocker_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    blocked_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("blocker_id", "blocked_id", name="uq_blocked_pair"),)

    def __repr__(self) -> str:
        return f"<BlockedUser(blocker={self.blocker_id}, blocked={self.blocked_id})>"


class Favorite(Base):
    """Bookmarked profile."""

    __tablename__ = "favorites"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    favorite_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "favorite_id", name="uq_favorite_pair"),)


class Report(Base):
    """User-generated report (complaint) about another user."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    reporter_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reported_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending"
    )  # pending|reviewed|resolved|dismissed
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','reviewed','resolved','dismissed')",
            name="chk_report_status",
        ),
        UniqueConstraint("reporter_id", "reported_id", name="uq_report_pair"),
        Index("idx_reports_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, from={self.reporter_id}, to={self.reported_id}, status={self.status})>"
