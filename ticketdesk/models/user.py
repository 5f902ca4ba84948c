"""User model — agency staff and creator accounts that act on tickets."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ticketdesk.models.base import Base, TimestampMixin
from ticketdesk.models.enums import UserRole


class User(TimestampMixin, Base):
    """A person who can open, work on, or comment on tickets."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.CHATTER.value, index=True)

    # Deactivated users keep their history but cannot receive new assignments
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<User email={self.email} role={self.role} active={self.is_active}>"
