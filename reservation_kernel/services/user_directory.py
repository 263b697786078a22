"""
reservation_kernel.services.user_directory -- Identity lookups.

The kernel never authenticates; it only needs display names for the advisor
field and the set of oversight users to notify.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from reservation_kernel.models.user import UserProfileModel

DEFAULT_OVERSIGHT_ROLES: tuple[str, ...] = ("sales_manager", "admin")


@runtime_checkable
class UserDirectory(Protocol):
    def oversight_user_ids(self) -> list[UUID]:
        ...

    def display_name(self, user_id: UUID) -> str | None:
        ...


class SqlUserDirectory:
    """Reads ``user_profiles`` in the caller's session."""

    def __init__(
        self,
        session: Session,
        oversight_roles: Sequence[str] = DEFAULT_OVERSIGHT_ROLES,
    ) -> None:
        self._session = session
        self._oversight_roles = tuple(oversight_roles)

    def oversight_user_ids(self) -> list[UUID]:
        rows = self._session.execute(
            select(UserProfileModel.id)
            .where(
                UserProfileModel.role.in_(self._oversight_roles),
                UserProfileModel.is_active.is_(True),
            )
            .order_by(UserProfileModel.full_name)
        ).scalars().all()
        return list(rows)

    def display_name(self, user_id: UUID) -> str | None:
        return self._session.execute(
            select(UserProfileModel.full_name).where(UserProfileModel.id == user_id)
        ).scalar_one_or_none()
