"""
Background worker entry point.

Usage:
    reimburse-worker --config config.yaml            # poll until interrupted
    reimburse-worker --config config.yaml --once     # run at most one job
    reimburse-worker --create-tables                 # create schema first
"""

from __future__ import annotations

import argparse
import signal
import sys

from reimburse_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from reimburse_kernel.exceptions import ConfigurationError
from reimburse_kernel.logging_config import configure_logging, get_logger
from reimburse_config import load_config

from reimburse_batch.orchestrator import JobOrchestrator

logger = get_logger("batch.worker")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the reimbursement job worker")
    parser.add_argument("--config", help="Path to the YAML configuration file")
    parser.add_argument("--once", action="store_true", help="Run at most one job and exit")
    parser.add_argument(
        "--create-tables", action="store_true", help="Create missing tables before polling",
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    configure_logging(level=config.logging.level)
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    if args.create_tables:
        create_tables()

    orchestrator = JobOrchestrator.from_config(config, get_session_factory())

    if args.once:
        result = orchestrator.queue.run_once()
        if result is None:
            print("No eligible job")
            return 0
        print(f"{result.job_id} {result.job_type} -> {result.status.value}")
        return 0

    poller = orchestrator.create_poller()

    def _shutdown(signum, frame):
        logger.info("worker_shutdown_requested", extra={"signal": signum})
        poller.stop()

    signal.signal(signal.SIGTERM, _shutdown)
    try:
        poller.run_forever()
    except KeyboardInterrupt:
        poller.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
