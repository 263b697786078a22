"""
Lifecycle policy (``reservation_kernel.domain.policy``).

The numbers that drive deadlines and guards, bundled so the services take
one injected value instead of reading configuration themselves.  The
defaults are the production values; ``reservation_config`` builds a policy
from YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from reservation_kernel.domain.calendar import BusinessCalendar
from reservation_kernel.domain.clock import DEFAULT_TIMEZONE
from reservation_kernel.domain.dtos import Actor

SYSTEM_REASON_DEADLINE_EXPIRED = "deadline expired"
SYSTEM_REASON_ANOTHER_APPROVED = "another request approved"
SYSTEM_REASON_DELIVERY_REVERTED = "delivery reverted"


@dataclass(frozen=True)
class LifecyclePolicy:
    calendar: BusinessCalendar = field(default_factory=BusinessCalendar)
    checklist_deadline_business_days: int = 7
    separation_deadline_business_days: int = 59
    approval_window_days: int = 7
    timezone: str = DEFAULT_TIMEZONE
    oversight_roles: tuple[str, ...] = ("sales_manager", "admin")

    def __post_init__(self) -> None:
        for name in (
            "checklist_deadline_business_days",
            "separation_deadline_business_days",
            "approval_window_days",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    def is_oversight(self, actor: Actor) -> bool:
        return actor.role in self.oversight_roles
