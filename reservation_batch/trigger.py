"""
Maintenance trigger -- the framework-free body of the cron endpoint.

An HTTP route (or any other caller) passes the raw ``Authorization`` header
and gets back a status code and a JSON-ready body:

    200 {"ok": true, "executed": bool, ...}   job ran, or another instance held the lock
    401 {"error": ...}                        secret configured, header missing or wrong
    503 {"error": ...}                        production without a configured secret
    500 {"error": ..., "details": ...}        unexpected failure

Outside production a missing secret allows unauthenticated local runs.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass, field
from typing import Any, Protocol

from reservation_batch.job import MaintenanceResult
from reservation_kernel.domain.clock import Clock, SystemClock
from reservation_kernel.logging_config import get_logger

logger = get_logger("batch.trigger")


class RunsMaintenance(Protocol):
    def run(self, correlation_id: str | None = None) -> MaintenanceResult:
        ...


@dataclass(frozen=True)
class TriggerResponse:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


def extract_bearer_token(authorization: str | None) -> str | None:
    if not isinstance(authorization, str):
        return None
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme != "Bearer" or not token:
        return None
    return token


def handle_maintenance_trigger(
    job: RunsMaintenance,
    *,
    authorization: str | None,
    cron_secret: str | None,
    environment: str = "development",
    correlation_id: str | None = None,
    clock: Clock | None = None,
) -> TriggerResponse:
    if cron_secret:
        token = extract_bearer_token(authorization)
        if token is None or not hmac.compare_digest(token.encode(), cron_secret.encode()):
            logger.warning("maintenance_trigger_unauthorized")
            return TriggerResponse(401, {"error": "unauthorized"})
    elif environment == "production":
        logger.error("maintenance_trigger_secret_missing")
        return TriggerResponse(503, {"error": "cron secret is not configured in production"})

    clock = clock or SystemClock()
    try:
        result = job.run(correlation_id=correlation_id)
    except Exception as exc:
        logger.exception("maintenance_trigger_failed")
        return TriggerResponse(
            500, {"error": "equipment maintenance failed", "details": str(exc)},
        )
    return TriggerResponse(
        200,
        {
            "ok": True,
            "executed": result.executed,
            "duration_ms": result.duration_ms,
            "timestamp": clock.now().isoformat(),
        },
    )
