"""
Config -> Kernel Bridges.

Convert a ``ReservationConfig`` into the kernel's runtime inputs.  These
live here (the producer) because the kernel must never import
``reservation_config``.

Usage:
    from reservation_config.bridges import build_lifecycle_policy

    config = get_active_config()
    policy = build_lifecycle_policy(config)
"""

from __future__ import annotations

from reservation_config.schema import DedupPolicyDef, ReservationConfig
from reservation_kernel.db.retry import RetryPolicy
from reservation_kernel.domain.calendar import BusinessCalendar
from reservation_kernel.domain.policy import LifecyclePolicy
from reservation_kernel.services.notification_service import DedupKey, DedupRule


def build_calendar(config: ReservationConfig) -> BusinessCalendar:
    return BusinessCalendar.from_month_days(config.rules.holidays)


def build_lifecycle_policy(config: ReservationConfig) -> LifecyclePolicy:
    rules = config.rules
    return LifecyclePolicy(
        calendar=build_calendar(config),
        checklist_deadline_business_days=rules.checklist_deadline_business_days,
        separation_deadline_business_days=rules.separation_deadline_business_days,
        approval_window_days=rules.approval_window_days,
        timezone=rules.timezone,
        oversight_roles=rules.oversight_roles,
    )


def build_retry_policy(config: ReservationConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.retry.max_attempts,
        base_delay_seconds=config.retry.base_delay_seconds,
        max_delay_seconds=config.retry.max_delay_seconds,
    )


def build_dedup_rule(definition: DedupPolicyDef) -> DedupRule:
    return DedupRule(key=DedupKey(definition.key), lookback_days=definition.lookback_days)
