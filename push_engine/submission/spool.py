"""Spool directory used as the submission bus.

Layout under the spool root::

    inbox/       producers drop request files here
    processing/  a consumer claimed the file
    done/        processed; a ``<name>.report.json`` sits beside it
    failed/      unreadable; a ``<name>.error.json`` sits beside it

Moves use ``os.replace`` so a file is claimed by exactly one consumer.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from push_engine.logging import get_logger
from push_engine.utils.timestamps import format_utc, utc_now

from .exceptions import SubmissionError
from .models import DeliveryRequest

logger = get_logger(__name__, component="spool")

REQUEST_SUFFIXES = (".json", ".csv")


class SpoolDirectory:
    """File-system queue of delivery requests."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)
        self.inbox = self.root / "inbox"
        self.processing = self.root / "processing"
        self.done = self.root / "done"
        self.failed = self.root / "failed"

    def ensure(self) -> None:
        """Create the spool directories if they are missing."""
        for directory in (self.inbox, self.processing, self.done, self.failed):
            directory.mkdir(parents=True, exist_ok=True)

    def submit(self, request: Union[DeliveryRequest, Dict[str, Any]], name: Optional[str] = None) -> Path:
        """Write a request into the inbox (producer side).

        The file is written under a temporary name and renamed, so consumers
        never see a partial file.

        Returns:
            Path of the new inbox file
        """
        self.ensure()
        if isinstance(request, DeliveryRequest):
            body = request.model_dump(mode="json", exclude_none=True)
        else:
            body = request
        stem = name or f"{utc_now().strftime('%Y%m%dT%H%M%S')}-{uuid4().hex[:8]}"
        target = self.inbox / f"{stem}.json"
        temporary = self.inbox / f".{stem}.json.tmp"
        temporary.write_text(json.dumps(body, indent=2), encoding="utf-8")
        os.replace(temporary, target)
        logger.debug("Request submitted to spool", extra={"event": "spool.submitted", "file": target.name})
        return target

    def pending(self) -> List[Path]:
        """Inbox files waiting to be processed, oldest name first."""
        if not self.inbox.exists():
            return []
        return sorted(
            path
            for path in self.inbox.iterdir()
            if path.is_file() and not path.name.startswith(".") and path.suffix.lower() in REQUEST_SUFFIXES
        )

    def claim(self, path: Path) -> Optional[Path]:
        """Move an inbox file to processing.

        Returns:
            New path, or None if another consumer claimed it first
        """
        target = self.processing / path.name
        try:
            os.replace(path, target)
        except FileNotFoundError:
            return None
        return target

    def recover(self) -> List[Path]:
        """Return files left in processing by an interrupted run to the inbox."""
        recovered = []
        if not self.processing.exists():
            return recovered
        for path in sorted(self.processing.iterdir()):
            if path.is_file():
                target = self.inbox / path.name
                os.replace(path, target)
                recovered.append(target)
        if recovered:
            logger.warning(
                f"Recovered {len(recovered)} interrupted request files",
                extra={"event": "spool.recovered", "count": len(recovered)},
            )
        return recovered

    def complete(self, path: Path, report: Any) -> Path:
        """Move a processed file to done and write its report beside it."""
        return self._finish(path, self.done, "report", report)

    def fail(self, path: Path, error: str) -> Path:
        """Move an unprocessable file to failed with an error record."""
        return self._finish(
            path, self.failed, "error", {"error": error, "failed_at": format_utc(utc_now())}
        )

    def _finish(self, path: Path, directory: Path, kind: str, content: Any) -> Path:
        target = directory / path.name
        try:
            os.replace(path, target)
            sidecar = directory / f"{path.stem}.{kind}.json"
            sidecar.write_text(json.dumps(content, indent=2), encoding="utf-8")
        except OSError as e:
            raise SubmissionError(f"Failed to move {path.name} to {directory.name}: {e}") from e
        return target
