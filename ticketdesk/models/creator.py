"""Creator model — the content-creator account a ticket is raised for."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketdesk.models.base import Base, TimestampMixin
from ticketdesk.models.user import User


class Creator(TimestampMixin, Base):
    """A managed creator account."""

    __tablename__ = "creators"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False, unique=True)
    stage_name: Mapped[str] = mapped_column(String(200), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="America/New_York")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    user: Mapped[User] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Creator stage_name={self.stage_name} active={self.is_active}>"


class UserCreatorAssignment(TimestampMixin, Base):
    """Staff member responsible for a creator; receives its new-ticket alerts."""

    __tablename__ = "user_creator_assignments"
    __table_args__ = (UniqueConstraint("user_id", "creator_id"),)

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("creators.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
