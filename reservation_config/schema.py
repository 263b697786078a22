"""
Reservation configuration schema.

Typed, frozen view of the YAML configuration file.  The loader parses YAML
into these types; ``bridges`` turns them into the kernel's runtime inputs
(``LifecyclePolicy``, ``RetryPolicy``, ``DedupRule``).
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReservationRules:
    """Deadlines, approval window, holidays and roles."""

    holidays: tuple[tuple[int, int], ...]
    checklist_deadline_business_days: int = 7
    separation_deadline_business_days: int = 59
    approval_window_days: int = 7
    separation_warning_business_days: int = 10
    reservation_warning_business_days: int = 2
    timezone: str = "America/Bogota"
    oversight_roles: tuple[str, ...] = ("sales_manager", "admin")


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DedupPolicyDef:
    """How a maintenance notification kind is de-duplicated.

    key: "reference" (recipient + kind + reservation) or "message"
        (recipient + kind + message text).
    lookback_days: None searches all history.
    """

    key: str = "reference"
    lookback_days: int | None = None


@dataclass(frozen=True)
class NotificationPolicy:
    reservation_expired: DedupPolicyDef = field(default_factory=DedupPolicyDef)
    separation_deadline_warning: DedupPolicyDef = field(default_factory=DedupPolicyDef)
    reservation_deadline_warning: DedupPolicyDef = field(
        default_factory=lambda: DedupPolicyDef(key="message", lookback_days=3),
    )


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MaintenanceSettings:
    mutex_name: str = "equipment_maintenance"
    lease_ttl_seconds: int = 900
    tick_interval_seconds: float = 3600.0
    catalog_sync_enabled: bool = True


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 5.0


@dataclass(frozen=True)
class ReservationConfig:
    """The complete runtime configuration.

    ``cron_secret`` and ``database_url`` normally come from the environment
    and are never written back to YAML.
    """

    rules: ReservationRules
    notifications: NotificationPolicy
    maintenance: MaintenanceSettings
    retry: RetrySettings
    environment: str = "development"
    database_url: str | None = None
    cron_secret: str | None = field(default=None, repr=False)
    checksum: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment == "production"
