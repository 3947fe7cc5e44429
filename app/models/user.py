import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    # Issued by the external identity provider; stored as-is.
    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)

    username: Mapped[str] = mapped_column(sa.String(50), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(sa.String(120), nullable=False)

    avatar_url: Mapped[str | None] = mapped_column(sa.String(500), nullable=True)
    bio: Mapped[str | None] = mapped_column(sa.String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), default=_now_utc, onupdate=_now_utc, nullable=False)
