"""Periodic spool polling on APScheduler."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from push_engine.logging import get_logger

logger = get_logger(__name__, component="scheduler")

JOB_ID = "spool-drain"


class SpoolScheduler:
    """
    Runs the spool drain at a fixed interval on a background thread.

    The main thread stays free to handle signals and coordinate shutdown.
    """

    def __init__(
        self,
        drain_callable: Callable[[], object],
        interval_seconds: float,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            drain_callable: Called on every tick (usually SpoolConsumer.drain)
            interval_seconds: Seconds between ticks
            shutdown_event: Set once the scheduler has stopped
        """
        self.drain_callable = drain_callable
        self.interval_seconds = interval_seconds
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": max(1, int(interval_seconds)),
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register the drain job (first run immediately) and start ticking."""
        next_run = datetime.now(timezone.utc)
        self.scheduler.add_job(
            func=self.drain_callable,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc),
            id=JOB_ID,
            name="Spool drain",
            replace_existing=True,
            next_run_time=next_run,
        )
        self.scheduler.start()

        logger.info(
            f"Scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat(),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """Stop the scheduler; with wait=True a running drain finishes first."""
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
        if self.shutdown_event:
            self.shutdown_event.set()
        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """Run one drain synchronously in the calling thread."""
        logger.info("Triggering immediate spool drain", extra={"event": "scheduler.trigger_now"})
        self.drain_callable()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
