"""
reservation_kernel.services.notification_service -- Notification dispatch.

Responsibility:
    Defines the dispatcher boundary the workflow and the maintenance job
    talk to, a database-backed implementation (in-app feed rows), and the
    best-effort wrapper every caller in this kernel goes through.

Invariants enforced:
    - A failed dispatch never rolls back the state change that triggered
      it: BestEffortNotifier runs the dispatch inside a SAVEPOINT, rolls back
      only that savepoint on failure, logs, and returns 0.
    - ``reference_id`` is always the reservation id so repeated maintenance
      runs can be de-duplicated against what was already sent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol, Sequence, runtime_checkable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from reservation_kernel.domain.clock import DEFAULT_TIMEZONE, Clock, SystemClock
from reservation_kernel.logging_config import get_logger
from reservation_kernel.models.notification import NotificationModel

logger = get_logger("services.notifications")


class NotificationKind(str, Enum):
    RESERVATION_REQUESTED = "reservation_requested"
    RESERVATION_APPROVED = "reservation_approved"
    RESERVATION_AUTO_REJECTED = "reservation_auto_rejected"
    RESERVATION_REJECTED = "reservation_rejected"
    QUEUE_PROMOTED = "queue_promoted"
    RESERVATION_EXPIRED = "reservation_expired"
    SEPARATION_DEADLINE_WARNING = "separation_deadline_warning"
    RESERVATION_DEADLINE_WARNING = "reservation_deadline_warning"
    EQUIPMENT_DELIVERED = "equipment_delivered"


@dataclass(frozen=True)
class ActionRef:
    action_type: str
    action_url: str

    @classmethod
    def for_equipment(cls, equipment_id: UUID) -> ActionRef:
        return cls("open_equipment", f"/equipments/{equipment_id}")


class DedupKey(str, Enum):
    REFERENCE = "reference"
    MESSAGE = "message"


@dataclass(frozen=True)
class DedupRule:
    """How to tell that a notification was already sent.

    ``key=REFERENCE`` matches on (recipient, kind, reference_id);
    ``key=MESSAGE`` matches on (recipient, kind, message text).
    ``lookback_days=None`` searches the whole history.
    """

    key: DedupKey = DedupKey.REFERENCE
    lookback_days: int | None = None


@runtime_checkable
class NotificationDispatcher(Protocol):
    def notify(
        self,
        recipients: Sequence[UUID],
        *,
        kind: str,
        title: str,
        message: str,
        reference_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
        action_ref: ActionRef | None = None,
        priority: str = "normal",
    ) -> int:
        """Deliver to every recipient; returns how many were written."""
        ...

    def was_sent(
        self,
        recipient_id: UUID,
        *,
        kind: str,
        reference_id: UUID | None = None,
        message: str | None = None,
        since: datetime | None = None,
    ) -> bool:
        ...


class DatabaseNotificationDispatcher:
    """Writes one ``notifications`` row per recipient in the caller's session."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._timezone = timezone

    def notify(
        self,
        recipients: Sequence[UUID],
        *,
        kind: str,
        title: str,
        message: str,
        reference_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
        action_ref: ActionRef | None = None,
        priority: str = "normal",
    ) -> int:
        now = self._clock.local_now(self._timezone)
        unique = list(dict.fromkeys(recipients))
        for user_id in unique:
            self._session.add(NotificationModel(
                user_id=user_id,
                kind=str(getattr(kind, "value", kind)),
                priority=priority,
                title=title,
                message=message,
                reference_id=reference_id,
                payload=metadata,
                action_type=action_ref.action_type if action_ref else None,
                action_url=action_ref.action_url if action_ref else None,
                created_at=now,
            ))
        self._session.flush()
        return len(unique)

    def was_sent(
        self,
        recipient_id: UUID,
        *,
        kind: str,
        reference_id: UUID | None = None,
        message: str | None = None,
        since: datetime | None = None,
    ) -> bool:
        query = select(NotificationModel.id).where(
            NotificationModel.user_id == recipient_id,
            NotificationModel.kind == str(getattr(kind, "value", kind)),
        )
        if reference_id is not None:
            query = query.where(NotificationModel.reference_id == reference_id)
        if message is not None:
            query = query.where(NotificationModel.message == message)
        if since is not None:
            query = query.where(NotificationModel.created_at >= since)
        return self._session.execute(query.limit(1)).first() is not None


class BestEffortNotifier:
    """Wraps a dispatcher so that delivery failures are logged and swallowed."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        session: Session | None = None,
        clock: Clock | None = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self._dispatcher = dispatcher
        self._session = session
        self._clock = clock or SystemClock()
        self._timezone = timezone

    def notify(
        self,
        recipients: Sequence[UUID],
        *,
        kind: NotificationKind,
        title: str,
        message: str,
        reference_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
        action_ref: ActionRef | None = None,
        priority: str = "normal",
    ) -> int:
        targets = [r for r in dict.fromkeys(recipients) if r is not None]
        if not targets:
            return 0
        savepoint = self._session.begin_nested() if self._session is not None else None
        try:
            sent = self._dispatcher.notify(
                targets,
                kind=kind.value,
                title=title,
                message=message,
                reference_id=reference_id,
                metadata=metadata,
                action_ref=action_ref,
                priority=priority,
            )
            if savepoint is not None:
                savepoint.commit()
        except Exception:
            if savepoint is not None and savepoint.is_active:
                savepoint.rollback()
            logger.exception(
                "notification_dispatch_failed",
                extra={
                    "kind": kind.value,
                    "reference_id": str(reference_id) if reference_id else None,
                    "recipient_count": len(targets),
                },
            )
            return 0
        logger.info(
            "notification_sent",
            extra={
                "kind": kind.value,
                "reference_id": str(reference_id) if reference_id else None,
                "recipient_count": sent,
            },
        )
        return sent

    def notify_once(
        self,
        recipients: Sequence[UUID],
        *,
        rule: DedupRule,
        kind: NotificationKind,
        title: str,
        message: str,
        reference_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
        action_ref: ActionRef | None = None,
        priority: str = "normal",
    ) -> int:
        """Like ``notify`` but skips recipients that already received it."""
        since = None
        if rule.lookback_days is not None:
            since = self._clock.local_now(self._timezone) - timedelta(days=rule.lookback_days)
        fresh = []
        for recipient in dict.fromkeys(recipients):
            if recipient is None:
                continue
            try:
                already = self._dispatcher.was_sent(
                    recipient,
                    kind=kind.value,
                    reference_id=reference_id if rule.key is DedupKey.REFERENCE else None,
                    message=message if rule.key is DedupKey.MESSAGE else None,
                    since=since,
                )
            except Exception:
                logger.exception(
                    "notification_dedup_lookup_failed",
                    extra={"kind": kind.value, "recipient_id": str(recipient)},
                )
                continue
            if already:
                logger.debug(
                    "notification_deduplicated",
                    extra={"kind": kind.value, "recipient_id": str(recipient)},
                )
            else:
                fresh.append(recipient)
        return self.notify(
            fresh,
            kind=kind,
            title=title,
            message=message,
            reference_id=reference_id,
            metadata=metadata,
            action_ref=action_ref,
            priority=priority,
        )
