"""Command-line entry point for the push delivery engine."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from push_engine.config.environment import EnvironmentConfig
from push_engine.config.exceptions import ConfigurationError
from push_engine.config.loader import load_config
from push_engine.config.models import EngineConfig
from push_engine.delivery.cancellation import CancellationToken
from push_engine.delivery.engine import DeliveryEngine
from push_engine.delivery.exceptions import RequestValidationError
from push_engine.domain.models import DeliveryReport
from push_engine.logging import get_logger
from push_engine.logging.config import configure_logging
from push_engine.providers.factory import get_provider
from push_engine.registry.database import RegistryDatabase
from push_engine.registry.updater import SqlRegistryUpdater
from push_engine.reporting.summary import render_summary, report_to_dict
from push_engine.submission.consumer import SpoolConsumer
from push_engine.submission.exceptions import SubmissionError
from push_engine.submission.loader import load_requests
from push_engine.submission.scheduler import SpoolScheduler
from push_engine.submission.spool import SpoolDirectory

logger = get_logger(__name__, component="cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Push Delivery Engine - batch push notification delivery with retries and registry upkeep"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--file",
        type=Path,
        default=None,
        help="Send the requests in this JSON or CSV file once and exit",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the JSON delivery reports to this path (with --file)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Use the dry-run provider and leave the registry untouched",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    return parser


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str], dry_run: bool = False
) -> Tuple[EngineConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    engine_config, env_config = load_config(config_path, dry_run=dry_run)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = engine_config.logging.level or "INFO"

    return engine_config, env_config


def open_registry(
    engine_config: EngineConfig, env_config: EnvironmentConfig, dry_run: bool
) -> Optional[RegistryDatabase]:
    """Open the registration store when reconciliation should be applied."""
    if dry_run or not engine_config.registry.enabled or engine_config.registry.dry_run:
        return None
    database = RegistryDatabase(env_config.database_url)
    database.initialize()
    return database


def run_file(engine: DeliveryEngine, path: Path, output: Optional[Path]) -> int:
    """Send every request in a request file; 1 if any recipient did not succeed."""
    requests = load_requests(path)
    reports: List[DeliveryReport] = []
    documents = []
    rejected = 0

    for request in requests:
        try:
            report = engine.send(request.recipients, request.payload, request.to_send_options())
        except RequestValidationError as e:
            logger.error(
                f"Request rejected: {e}",
                extra={"event": "service.request.rejected", "request_id": request.request_id},
            )
            print(f"Request {request.request_id or '(unnamed)'} rejected: {e}", file=sys.stderr)
            documents.append({"request_id": request.request_id, "error": str(e)})
            rejected += 1
            continue

        reports.append(report)
        documents.append(report_to_dict(report))
        print(render_summary(report))

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps({"file": str(path), "requests": documents}, indent=2), encoding="utf-8")
        logger.info("Report written", extra={"event": "service.report.written", "path": str(output)})

    if rejected or any(not report.all_succeeded for report in reports):
        return 1
    return 0


def run_daemon(engine: DeliveryEngine, engine_config: EngineConfig) -> int:
    """Drain the spool on a schedule until SIGINT or SIGTERM."""
    shutdown_event = threading.Event()
    shutdown_token = CancellationToken()

    spool = SpoolDirectory(engine_config.consumer.spool_dir)
    spool.ensure()
    spool.recover()

    consumer = SpoolConsumer(engine, spool, shutdown=shutdown_token)
    scheduler = SpoolScheduler(
        drain_callable=consumer.drain,
        interval_seconds=engine_config.consumer.poll_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        shutdown_token.cancel()
        scheduler.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler.start()
    logger.info(
        "Spool consumer started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started", "spool_dir": str(spool.root)},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down", extra={"event": "service.keyboard_interrupt"})
        shutdown_token.cancel()
        scheduler.shutdown(wait=False)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)
    database: Optional[RegistryDatabase] = None
    engine: Optional[DeliveryEngine] = None

    try:
        engine_config, env_config = load_runtime_config(args.config, args.log_level, args.dry_run)

        configure_logging(
            level=env_config.log_level,
            format_type=engine_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "Push Delivery Engine starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "dry_run": args.dry_run,
                "mode": "file" if args.file else "daemon",
            },
        )

        database = open_registry(engine_config, env_config, args.dry_run)
        updater = SqlRegistryUpdater(database) if database else None
        provider = get_provider(engine_config.provider, env_config, dry_run=args.dry_run)
        engine = DeliveryEngine.from_config(engine_config, provider, updater=updater)

        logger.info(
            "Services initialized",
            extra={
                "event": "services.initialized",
                "provider": provider.name,
                "registry_enabled": updater is not None,
            },
        )

        if args.file:
            return run_file(engine, args.file, args.output)
        return run_daemon(engine, engine_config)

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except SubmissionError as e:
        print(f"Request file error: {e}", file=sys.stderr)
        logger.error(
            f"Request file error: {e}",
            extra={"event": "submission.error", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={"event": "service.failed", "error_type": type(e).__name__, "error": str(e)},
            exc_info=True,
        )
        return 1
    finally:
        if engine is not None:
            engine.close()
        if database is not None:
            database.close()
        logger.info(
            "Push Delivery Engine stopped",
            extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
        )


if __name__ == "__main__":
    sys.exit(main())
