#!/usr/bin/env python3
"""
Run the equipment maintenance job from the command line.

Runs once and prints the result as JSON, or with --loop starts the
in-process scheduler and runs until interrupted.  Exit code 0 when the run
completed or another instance held the lock; 1 on failure.

Usage:
  python scripts/run_maintenance.py
  python scripts/run_maintenance.py --database-url sqlite:///reservations.db --create-tables
  python scripts/run_maintenance.py --config deploy/production.yaml --loop
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

# Allow importing the project packages when run as a script (no PYTHONPATH required).
_script_dir = os.path.dirname(os.path.abspath(__file__))
_root = os.path.dirname(_script_dir)
if _root not in sys.path:
    sys.path.insert(0, _root)

from reservation_batch.orchestrator import MaintenanceOrchestrator  # noqa: E402
from reservation_config import get_active_config  # noqa: E402
from reservation_kernel.db.engine import (  # noqa: E402
    create_tables,
    get_engine,
    init_engine_from_url,
)
from reservation_kernel.logging_config import configure_logging, get_logger  # noqa: E402

logger = get_logger("scripts.run_maintenance")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the equipment maintenance job")
    parser.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: packaged defaults.yaml)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (default: DATABASE_URL from the environment or config)",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Start the in-process scheduler instead of running once",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Scheduler tick interval in seconds (with --loop)",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running (development only)",
    )
    parser.add_argument(
        "--correlation-id",
        default=None,
        help="Correlation id attached to every log line of the run",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    config = get_active_config(args.config)
    database_url = args.database_url or config.database_url
    if not database_url:
        print("error: no database URL (use --database-url or DATABASE_URL)", file=sys.stderr)
        return 2

    init_engine_from_url(database_url)
    engine = get_engine()
    if args.create_tables:
        create_tables(engine)

    orchestrator = MaintenanceOrchestrator.from_config(config, engine)

    if args.loop:
        scheduler = orchestrator.create_scheduler(args.interval)
        scheduler.start()
        try:
            scheduler.wait()
        except KeyboardInterrupt:
            pass
        finally:
            scheduler.stop()
        return 0

    try:
        result = orchestrator.job.run(correlation_id=args.correlation_id)
    except Exception as exc:
        logger.exception("maintenance_run_failed")
        print(json.dumps({"executed": False, "error": str(exc)}))
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
