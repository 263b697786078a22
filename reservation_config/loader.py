"""
Configuration Loader (``reservation_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the frozen dataclasses
of ``reservation_config.schema``.  Runtime callers go through
``reservation_config.get_active_config()`` instead of calling this module.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required sections have no silent defaults.
* ``compute_checksum`` is deterministic for identical input, so a loaded
  configuration can be matched to a version-controlled file.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from reservation_config.schema import (
    DedupPolicyDef,
    MaintenanceSettings,
    NotificationPolicy,
    ReservationConfig,
    ReservationRules,
    RetrySettings,
)

_DEDUP_KEYS = ("reference", "message")
_ENVIRONMENTS = ("development", "test", "staging", "production")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _non_negative_int(section: str, data: Mapping[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{section}.{key} must be a non-negative integer, got {value!r}")
    return value


def parse_holiday(value: Any) -> tuple[int, int]:
    """Parse ``"MM-DD"`` or ``[month, day]`` into a (month, day) pair."""
    if isinstance(value, str):
        parts = value.split("-")
        if len(parts) != 2:
            raise ValueError(f"holiday {value!r} must look like MM-DD")
        month, day = int(parts[0]), int(parts[1])
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        month, day = int(value[0]), int(value[1])
    else:
        raise ValueError(f"Cannot parse holiday from {value!r}")
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        raise ValueError(f"holiday {value!r} is not a valid month-day")
    return month, day


def parse_rules(data: dict[str, Any]) -> ReservationRules:
    holidays = tuple(sorted({parse_holiday(h) for h in data["holidays"]}))
    roles = tuple(data.get("oversight_roles", ("sales_manager", "admin")))
    if not roles:
        raise ValueError("rules.oversight_roles must name at least one role")
    return ReservationRules(
        holidays=holidays,
        checklist_deadline_business_days=_non_negative_int(
            "rules", data, "checklist_deadline_business_days", 7,
        ),
        separation_deadline_business_days=_non_negative_int(
            "rules", data, "separation_deadline_business_days", 59,
        ),
        approval_window_days=_non_negative_int("rules", data, "approval_window_days", 7),
        separation_warning_business_days=_non_negative_int(
            "rules", data, "separation_warning_business_days", 10,
        ),
        reservation_warning_business_days=_non_negative_int(
            "rules", data, "reservation_warning_business_days", 2,
        ),
        timezone=str(data.get("timezone", "America/Bogota")),
        oversight_roles=roles,
    )


def parse_dedup(name: str, data: dict[str, Any] | None) -> DedupPolicyDef:
    if data is None:
        return DedupPolicyDef()
    key = data.get("key", "reference")
    if key not in _DEDUP_KEYS:
        raise ValueError(f"notifications.{name}.key must be one of {_DEDUP_KEYS}, got {key!r}")
    lookback = data.get("lookback_days")
    if lookback is not None:
        lookback = _non_negative_int(f"notifications.{name}", data, "lookback_days", 0)
    return DedupPolicyDef(key=key, lookback_days=lookback)


def parse_notifications(data: dict[str, Any]) -> NotificationPolicy:
    defaults = NotificationPolicy()
    return NotificationPolicy(
        reservation_expired=(
            parse_dedup("reservation_expired", data["reservation_expired"])
            if "reservation_expired" in data else defaults.reservation_expired
        ),
        separation_deadline_warning=(
            parse_dedup("separation_deadline_warning", data["separation_deadline_warning"])
            if "separation_deadline_warning" in data
            else defaults.separation_deadline_warning
        ),
        reservation_deadline_warning=(
            parse_dedup("reservation_deadline_warning", data["reservation_deadline_warning"])
            if "reservation_deadline_warning" in data
            else defaults.reservation_deadline_warning
        ),
    )


def parse_maintenance(data: dict[str, Any]) -> MaintenanceSettings:
    interval = float(data.get("tick_interval_seconds", 3600.0))
    if interval <= 0:
        raise ValueError("maintenance.tick_interval_seconds must be positive")
    return MaintenanceSettings(
        mutex_name=str(data.get("mutex_name", "equipment_maintenance")),
        lease_ttl_seconds=_non_negative_int("maintenance", data, "lease_ttl_seconds", 900),
        tick_interval_seconds=interval,
        catalog_sync_enabled=bool(data.get("catalog_sync_enabled", True)),
    )


def parse_retry(data: dict[str, Any]) -> RetrySettings:
    attempts = _non_negative_int("retry", data, "max_attempts", 3)
    if attempts < 1:
        raise ValueError("retry.max_attempts must be at least 1")
    return RetrySettings(
        max_attempts=attempts,
        base_delay_seconds=float(data.get("base_delay_seconds", 0.5)),
        max_delay_seconds=float(data.get("max_delay_seconds", 5.0)),
    )


def parse_config(data: dict[str, Any]) -> ReservationConfig:
    """Parse the whole document; ``rules`` is the only required section."""
    environment = str(data.get("environment", "development"))
    if environment not in _ENVIRONMENTS:
        raise ValueError(f"environment must be one of {_ENVIRONMENTS}, got {environment!r}")
    return ReservationConfig(
        rules=parse_rules(data["rules"]),
        notifications=parse_notifications(data.get("notifications") or {}),
        maintenance=parse_maintenance(data.get("maintenance") or {}),
        retry=parse_retry(data.get("retry") or {}),
        environment=environment,
        database_url=data.get("database_url"),
        checksum=compute_checksum(data),
    )


def apply_environment(
    config: ReservationConfig, environ: Mapping[str, str],
) -> ReservationConfig:
    """Overlay DATABASE_URL, MAINTENANCE_CRON_SECRET and RESERVATION_ENV."""
    environment = environ.get("RESERVATION_ENV", config.environment)
    if environment not in _ENVIRONMENTS:
        raise ValueError(f"RESERVATION_ENV must be one of {_ENVIRONMENTS}, got {environment!r}")
    return replace(
        config,
        environment=environment,
        database_url=environ.get("DATABASE_URL") or config.database_url,
        cron_secret=environ.get("MAINTENANCE_CRON_SECRET") or config.cron_secret,
    )
