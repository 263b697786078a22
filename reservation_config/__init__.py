"""
reservation_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way the batch layer, the trigger
    surface and the scripts obtain configuration.  It reads the YAML file
    (the packaged ``defaults.yaml`` unless told otherwise), validates it
    into frozen dataclasses and overlays the environment.

Architecture position:
    Sits above ``reservation_kernel`` and beside ``reservation_batch``.
    The kernel MUST NEVER import from ``reservation_config``; ``bridges``
    translates configuration into kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from reservation_config.loader import apply_environment, load_yaml_file, parse_config
from reservation_config.schema import (
    DedupPolicyDef,
    MaintenanceSettings,
    NotificationPolicy,
    ReservationConfig,
    ReservationRules,
    RetrySettings,
)
from reservation_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ReservationConfig:
    """Load, validate and return the active configuration.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.
        environ: Environment mapping for overrides.  Defaults to
            ``os.environ``.

    Raises:
        FileNotFoundError: the file does not exist.
        ValueError: a value fails validation.
        KeyError: a required section is missing.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path))
    config = apply_environment(config, os.environ if environ is None else environ)

    _logger.info(
        "reservation_config_loaded",
        extra={
            "config_path": str(path),
            "checksum": config.checksum,
            "environment": config.environment,
            "holiday_count": len(config.rules.holidays),
            "cron_secret_configured": config.cron_secret is not None,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DedupPolicyDef",
    "MaintenanceSettings",
    "NotificationPolicy",
    "ReservationConfig",
    "ReservationRules",
    "RetrySettings",
    "get_active_config",
]
