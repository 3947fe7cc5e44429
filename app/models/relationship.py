from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
import uuid
from datetime import datetime, timezone

from app.db.base_class import Base

STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Relationship(Base):
    """One row per unordered user pair.

    A pending row is a friend request from ``requested_by_id`` to the other
    user; an accepted row is a mutual friendship. Both sides of the pair are
    read from and written to this single row.
    """

    __tablename__ = "relationships"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    user_low_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    user_high_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default=STATUS_PENDING)
    requested_by_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, onupdate=_now_utc, nullable=False)

    __table_args__ = (
        sa.UniqueConstraint("user_low_id", "user_high_id", name="uq_relationships_pair"),
        sa.CheckConstraint("user_low_id <> user_high_id", name="ck_relationships_not_self"),
        sa.CheckConstraint("status in ('pending', 'accepted')", name="ck_relationships_status"),
    )
