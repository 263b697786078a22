"""
Pytest fixtures for the equipment reservation test suite.

Provides:
- A file-backed SQLite database per test (real commits, SAVEPOINT support)
- A deterministic clock pinned to Monday 2025-03-03 12:00 (naive, local)
- User, equipment and service factories
- Structured log capture

Environment Variables:
- None.  PostgreSQL-only behaviour (advisory locks) is covered with fakes.
"""

import json
import logging
from datetime import datetime
from io import StringIO
from typing import Callable, Generator

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker

from reservation_kernel.db.base import SYSTEM_ACTOR_ID
from reservation_kernel.db.engine import configure_sqlite, create_tables
from reservation_kernel.domain.clock import DeterministicClock
from reservation_kernel.domain.dtos import Actor, ChecklistUpdate
from reservation_kernel.domain.policy import LifecyclePolicy
from reservation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.models.notification import NotificationModel
from reservation_kernel.models.user import UserProfileModel
from reservation_kernel.services.reservation_service import ReservationService

START_TIME = datetime(2025, 3, 3, 12, 0, 0)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture reservation_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.request_reservation(...)
            logs = captured_logs()
            assert any(r["message"] == "reservation_requested" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("reservation_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    eng = configure_sqlite(
        create_engine(
            f"sqlite:///{tmp_path / 'reservations.db'}",
            connect_args={"timeout": 30, "check_same_thread": False},
        )
    )

    # Readers must not block the job's writers across sessions
    @event.listens_for(eng, "connect")
    def _wal(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


# =============================================================================
# Time and policy
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


@pytest.fixture
def policy() -> LifecyclePolicy:
    return LifecyclePolicy()


@pytest.fixture
def today(clock, policy):
    return clock.today(policy.timezone)


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_user(session) -> Callable[..., Actor]:
    """Create a user profile and return the matching Actor."""
    counter = {"n": 0}

    def _make(full_name: str | None = None, role: str = "advisor", is_active: bool = True) -> Actor:
        counter["n"] += 1
        name = full_name or f"User {counter['n']}"
        user = UserProfileModel(
            full_name=name,
            email=f"user{counter['n']}@example.com",
            role=role,
            is_active=is_active,
        )
        session.add(user)
        session.flush()
        return Actor(actor_id=user.id, role=role, display_name=name)

    return _make


@pytest.fixture
def manager(make_user) -> Actor:
    return make_user("Maria Manager", role="sales_manager")


@pytest.fixture
def requester_a(make_user) -> Actor:
    return make_user("Andres Advisor", role="advisor")


@pytest.fixture
def requester_b(make_user) -> Actor:
    return make_user("Beatriz Advisor", role="advisor")


@pytest.fixture
def make_equipment(session) -> Callable[..., EquipmentModel]:
    counter = {"n": 0}

    def _make(**fields) -> EquipmentModel:
        counter["n"] += 1
        values = {
            "state": "free",
            "serial": f"SN-{counter['n']:04d}",
            "model": "ZX200",
            "mq": f"MQ-{counter['n']:04d}",
            "created_by_id": SYSTEM_ACTOR_ID,
        }
        values.update(fields)
        equipment = EquipmentModel(**values)
        session.add(equipment)
        session.flush()
        return equipment

    return _make


@pytest.fixture
def equipment(make_equipment) -> EquipmentModel:
    return make_equipment()


@pytest.fixture
def service(session, policy, clock) -> ReservationService:
    return ReservationService(session, policy=policy, clock=clock)


@pytest.fixture
def notifications(session) -> Callable[..., list[NotificationModel]]:
    """Return notification rows, optionally filtered by kind and recipient."""

    def _query(kind: str | None = None, user_id=None) -> list[NotificationModel]:
        query = select(NotificationModel).order_by(NotificationModel.created_at)
        if kind is not None:
            query = query.where(NotificationModel.kind == kind)
        if user_id is not None:
            query = query.where(NotificationModel.user_id == user_id)
        return list(session.execute(query).scalars().all())

    return _query


@pytest.fixture
def make_reservation(service, make_equipment, manager, requester_a):
    """Drive a unit through the workflow to ``state``.

    Returns the equipment row and the reservation DTO as of the last step.
    """

    def _make(
        state: str = "pre_reserved",
        requester: Actor | None = None,
        equipment: EquipmentModel | None = None,
        client: str = "Constructora Andina",
    ):
        unit = equipment or make_equipment()
        actor = requester or requester_a
        reservation = service.request_reservation(unit.id, actor, client=client)
        if state in ("reserved", "separated", "delivered"):
            service.update_checklist(
                reservation.id, actor, ChecklistUpdate(deposit_confirmed=True),
            )
        if state in ("separated", "delivered"):
            service.update_checklist(
                reservation.id,
                actor,
                ChecklistUpdate(ten_percent_paid=True, documents_signed=True),
            )
            service.approve_reservation(reservation.id, manager)
        if state == "delivered":
            service.mark_delivered(unit.id, manager)
        return unit, service.get_reservation(reservation.id)

    return _make
