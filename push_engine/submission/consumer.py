"""Consumer side of the submission bus: drains the spool through the engine."""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from push_engine.delivery.cancellation import CancellationToken
from push_engine.delivery.engine import DeliveryEngine
from push_engine.delivery.exceptions import RequestValidationError
from push_engine.logging import get_logger
from push_engine.logging.context import bind_log_context
from push_engine.reporting.summary import report_to_dict
from push_engine.utils.timestamps import format_utc, utc_now

from .exceptions import SubmissionError
from .loader import load_requests
from .spool import SpoolDirectory

logger = get_logger(__name__, component="consumer")


@dataclass
class ConsumerRunResult:
    """
    Outcome of one drain of the inbox.

    Attributes:
        files_processed: Files moved to done
        files_failed: Files moved to failed (unreadable or invalid)
        requests_sent: Requests that produced a DeliveryReport
        requests_rejected: Requests refused with RequestValidationError
        recipients: Recipients covered by the produced reports
        skipped: True when a previous drain was still running
    """

    files_processed: int = 0
    files_failed: int = 0
    requests_sent: int = 0
    requests_rejected: int = 0
    recipients: int = 0
    skipped: bool = False
    errors: List[str] = field(default_factory=list)


class SpoolConsumer:
    """Processes request files from a SpoolDirectory.

    Each claimed file is loaded, every request in it is sent through the
    engine, and a JSON document with one entry per request is written next
    to the file in ``done/``. Files that cannot be loaded go to ``failed/``.
    Overlapping drains are skipped rather than queued.
    """

    def __init__(
        self,
        engine: DeliveryEngine,
        spool: SpoolDirectory,
        shutdown: Optional[CancellationToken] = None,
    ):
        self.engine = engine
        self.spool = spool
        self.shutdown = shutdown or CancellationToken()
        self._lock = threading.Lock()

    def drain(self) -> ConsumerRunResult:
        """Process every file currently in the inbox."""
        if not self._lock.acquire(blocking=False):
            logger.warning(
                "Spool drain skipped: previous drain still in progress",
                extra={"event": "consumer.drain.skipped", "reason": "lock_held"},
            )
            return ConsumerRunResult(skipped=True)

        try:
            self.spool.ensure()
            result = ConsumerRunResult()
            pending = self.spool.pending()
            if pending:
                logger.info(
                    f"Draining {len(pending)} request files",
                    extra={"event": "consumer.drain.started", "file_count": len(pending)},
                )

            for path in pending:
                if self.shutdown.cancelled:
                    logger.info(
                        "Shutdown requested, leaving remaining files in inbox",
                        extra={"event": "consumer.drain.interrupted"},
                    )
                    break
                claimed = self.spool.claim(path)
                if claimed is None:
                    continue
                self._process_file(claimed, result)

            if pending:
                logger.info(
                    "Spool drain finished",
                    extra={
                        "event": "consumer.drain.completed",
                        "files_processed": result.files_processed,
                        "files_failed": result.files_failed,
                        "requests_sent": result.requests_sent,
                        "requests_rejected": result.requests_rejected,
                    },
                )
            return result
        finally:
            self._lock.release()

    def _process_file(self, path: Path, result: ConsumerRunResult) -> None:
        with bind_log_context(spool_file=path.name):
            try:
                requests = load_requests(path)
            except SubmissionError as e:
                logger.error(
                    f"Rejected request file: {e}",
                    extra={"event": "consumer.file.failed", "error_type": type(e).__name__},
                )
                self.spool.fail(path, str(e))
                result.files_failed += 1
                result.errors.append(str(e))
                return

            entries: List[Dict[str, Any]] = []
            for request in requests:
                try:
                    report = self.engine.send(
                        request.recipients,
                        request.payload,
                        request.to_send_options(cancellation=self.shutdown),
                    )
                except RequestValidationError as e:
                    logger.warning(
                        f"Request rejected: {e}",
                        extra={"event": "consumer.request.rejected", "request_id": request.request_id},
                    )
                    entries.append({"request_id": request.request_id, "error": str(e)})
                    result.requests_rejected += 1
                    continue

                entries.append(report_to_dict(report))
                result.requests_sent += 1
                result.recipients += report.total

            self.spool.complete(
                path,
                {"file": path.name, "processed_at": format_utc(utc_now()), "requests": entries},
            )
            result.files_processed += 1
