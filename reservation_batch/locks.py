"""
Job mutex providers -- leader election for the maintenance job.

Contract:
    ``try_acquire(key)`` never blocks: it returns True when this process now
    holds the named lock and False when someone else does.  ``release(key)``
    gives it back and raises ``MaintenanceLockError`` if the key is not held
    by this provider.  ``renew(key)`` confirms the lock is still held and
    extends it where the provider expires locks; it returns False once the
    lock has been lost.

Providers:
    PostgresAdvisoryMutex -- session-level ``pg_try_advisory_lock`` held on a
        dedicated connection for the lifetime of the run.  Dies with the
        connection, so a crashed holder cannot wedge the job.
    LeaseMutex -- a row in ``job_leases`` with a holder id and an expiry.
        Works on any SQL database; the TTL bounds how long a crashed holder
        blocks other instances.
"""

from __future__ import annotations

import hashlib
import os
import socket
import threading
from datetime import datetime, timedelta
from typing import Callable, Protocol, runtime_checkable
from uuid import uuid4

from sqlalchemy import Connection, Engine, or_, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from reservation_kernel.domain.clock import Clock, SystemClock
from reservation_kernel.exceptions import MaintenanceLockError
from reservation_kernel.logging_config import get_logger
from reservation_kernel.models.job_lease import JobLeaseModel

logger = get_logger("batch.locks")


@runtime_checkable
class JobMutex(Protocol):
    def try_acquire(self, key: str) -> bool:
        ...

    def release(self, key: str) -> None:
        ...

    def renew(self, key: str) -> bool:
        ...


def advisory_lock_id(key: str) -> int:
    """Stable signed 64-bit id for ``key`` (fits a PostgreSQL bigint)."""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def default_holder_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


class PostgresAdvisoryMutex:
    """Advisory lock on a connection checked out for the whole run."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._connections: dict[str, Connection] = {}
        self._guard = threading.Lock()

    def try_acquire(self, key: str) -> bool:
        with self._guard:
            if key in self._connections:
                return False
        conn = self._engine.connect()
        try:
            acquired = bool(
                conn.execute(
                    text("SELECT pg_try_advisory_lock(:lock_id)"),
                    {"lock_id": advisory_lock_id(key)},
                ).scalar()
            )
            conn.commit()
        except Exception:
            conn.close()
            raise
        if not acquired:
            conn.close()
            logger.info("advisory_lock_busy", extra={"lock_name": key})
            return False
        with self._guard:
            self._connections[key] = conn
        logger.info("advisory_lock_acquired", extra={"lock_name": key})
        return True

    def release(self, key: str) -> None:
        with self._guard:
            conn = self._connections.pop(key, None)
        if conn is None:
            raise MaintenanceLockError(key, "not held by this process")
        try:
            conn.execute(
                text("SELECT pg_advisory_unlock(:lock_id)"),
                {"lock_id": advisory_lock_id(key)},
            )
            conn.commit()
        except Exception:
            # The session lock must not survive in the pool
            conn.invalidate()
            raise
        finally:
            conn.close()
        logger.info("advisory_lock_released", extra={"lock_name": key})

    def renew(self, key: str) -> bool:
        """Session locks never expire; held as long as the connection lives."""
        with self._guard:
            conn = self._connections.get(key)
        return conn is not None and not conn.invalidated


class LeaseMutex:
    """Row-based lease with a TTL; each call commits in its own session.

    Lease timestamps are naive UTC.  ``renew`` only writes once half the TTL
    has passed since the last acquire or renewal.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        ttl_seconds: int = 900,
        holder: str | None = None,
        clock: Clock | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._session_factory = session_factory
        self._ttl = timedelta(seconds=ttl_seconds)
        self._holder = holder or default_holder_id()
        self._clock = clock or SystemClock()
        self._renew_after: dict[str, datetime] = {}

    @property
    def holder(self) -> str:
        return self._holder

    def _now(self) -> datetime:
        return self._clock.now_utc().replace(tzinfo=None)

    def try_acquire(self, key: str) -> bool:
        now = self._now()
        session = self._session_factory()
        try:
            claimed = session.execute(
                update(JobLeaseModel)
                .where(
                    JobLeaseModel.name == key,
                    or_(
                        JobLeaseModel.holder.is_(None),
                        JobLeaseModel.expires_at < now,
                    ),
                )
                .values(holder=self._holder, acquired_at=now, expires_at=now + self._ttl)
            )
            if claimed.rowcount == 1:
                session.commit()
                self._renew_after[key] = now + self._ttl / 2
                logger.info("lease_acquired", extra={"lock_name": key, "holder": self._holder})
                return True

            existing = session.execute(
                select(JobLeaseModel.holder).where(JobLeaseModel.name == key)
            ).first()
            if existing is not None:
                session.rollback()
                logger.info(
                    "lease_busy",
                    extra={"lock_name": key, "current_holder": existing.holder},
                )
                return False

            session.add(JobLeaseModel(
                name=key,
                holder=self._holder,
                acquired_at=now,
                expires_at=now + self._ttl,
            ))
            session.commit()
            self._renew_after[key] = now + self._ttl / 2
            logger.info("lease_acquired", extra={"lock_name": key, "holder": self._holder})
            return True
        except IntegrityError:
            # Another instance inserted the row first
            session.rollback()
            logger.info("lease_busy", extra={"lock_name": key})
            return False
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def renew(self, key: str) -> bool:
        now = self._now()
        due = self._renew_after.get(key)
        if due is not None and now < due:
            return True
        session = self._session_factory()
        try:
            renewed = session.execute(
                update(JobLeaseModel)
                .where(JobLeaseModel.name == key, JobLeaseModel.holder == self._holder)
                .values(expires_at=now + self._ttl)
            )
            if renewed.rowcount != 1:
                session.rollback()
                self._renew_after.pop(key, None)
                logger.warning("lease_lost", extra={"lock_name": key, "holder": self._holder})
                return False
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        self._renew_after[key] = now + self._ttl / 2
        logger.debug("lease_renewed", extra={"lock_name": key, "holder": self._holder})
        return True

    def release(self, key: str) -> None:
        self._renew_after.pop(key, None)
        session = self._session_factory()
        try:
            released = session.execute(
                update(JobLeaseModel)
                .where(JobLeaseModel.name == key, JobLeaseModel.holder == self._holder)
                .values(holder=None, expires_at=None)
            )
            if released.rowcount != 1:
                session.rollback()
                raise MaintenanceLockError(key, f"lease not held by {self._holder}")
            session.commit()
        except MaintenanceLockError:
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        logger.info("lease_released", extra={"lock_name": key, "holder": self._holder})


def build_job_mutex(
    engine: Engine,
    *,
    session_factory: Callable[[], Session] | None = None,
    ttl_seconds: int = 900,
    clock: Clock | None = None,
) -> JobMutex:
    """Advisory locks on PostgreSQL, leases everywhere else."""
    if engine.dialect.name == "postgresql":
        return PostgresAdvisoryMutex(engine)
    return LeaseMutex(
        session_factory or sessionmaker(bind=engine, expire_on_commit=False),
        ttl_seconds=ttl_seconds,
        clock=clock,
    )
