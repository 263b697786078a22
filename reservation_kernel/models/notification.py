"""
Module: reservation_kernel.models.notification
Responsibility: In-app notification feed rows written by the database
    notification dispatcher.  One row per recipient.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reservation_kernel.db.base import Base, UUIDString


class NotificationModel(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_dedup", "user_id", "kind", "reference_id", "created_at"),
        Index("ix_notifications_user_unread", "user_id", "read_at"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(String(100), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    module_source: Mapped[str] = mapped_column(String(50), nullable=False, default="equipments")
    module_target: Mapped[str] = mapped_column(String(50), nullable=False, default="equipments")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    # "metadata" is reserved on declarative classes
    payload: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    action_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<Notification {self.kind} user={self.user_id} ref={self.reference_id}>"
