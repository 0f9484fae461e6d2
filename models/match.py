from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, BigIntId


class Like(Base):
    """Append-only like from liker to liked."""

    __tablename__ = "likes"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    liker_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    liked_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("liker_id", "liked_id", name="uq_like_pair"),)

    def __repr__(self) -> str:
        return f"<Like({self.liker_id}->{self.liked_id})>"


class Dislike(Base):
    """Append-only dislike; never retracts a like."""

    __tablename__ = "dislikes"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    disliker_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    disliked_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("disliker_id", "disliked_id", name="uq_dislike_pair"),)

    def __repr__(self) -> str:
        return f"<Dislike({self.disliker_id}->{self.disliked_id})>"


class Match(Base):
    """Mutual-like match between two users."""

    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_a: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )  # the liker whose like completed the pair
    user_b: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Ordered pair for deduplication: u_lo = min(user_a, user_b), u_hi = max(user_a, user_b)
    u_lo: Mapped[int] = mapped_column(BigInteger, nullable=False)
    u_hi: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("user_a <> user_b", name="chk_match_no_self"),
        # At most one ACTIVE match per pair; inactive rows are kept for history
        Index(
            "idx_match_pair_active",
            "u_lo",
            "u_hi",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    def other_user(self, user_id: int) -> int:
        return self.user_b if self.user_a == user_id else self.user_a

    def __repr__(self) -> str:
        return f"<Match(id={self.id}, user_a={self.user_a}, user_b={self.user_b}, active={self.is_active})>"


class Conversation(Base):
    """Messaging channel bound 1:1 to a match."""

    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("matches.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, match_id={self.match_id}, active={self.is_active})>"
