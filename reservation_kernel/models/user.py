"""
Module: reservation_kernel.models.user
Responsibility: Read-only view of user profiles (name and role) used for
    display names and to resolve oversight recipients.  Authentication lives
    outside the kernel.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from reservation_kernel.db.base import Base


class UserProfileModel(Base):
    __tablename__ = "user_profiles"

    __table_args__ = (Index("ix_user_profiles_role", "role", "is_active"),)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<UserProfile {self.id} role={self.role}>"
