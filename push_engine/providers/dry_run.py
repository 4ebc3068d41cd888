"""Provider that accepts everything without network I/O."""

import threading

from push_engine.domain.models import Batch
from push_engine.logging import get_logger

from .base import DeliveryProvider, ProviderResponse, RecipientResponse

logger = get_logger(__name__, component="provider")


class DryRunProvider(DeliveryProvider):
    """Reports every recipient as delivered and counts what it was given.

    Used by ``--dry-run`` to exercise validation, batching and reporting
    against real request files without contacting a push service.
    """

    name = "dry_run"

    def __init__(self, max_batch_size: int = 1000, max_payload_bytes: int = 4096) -> None:
        self.max_batch_size = max_batch_size
        self.max_payload_bytes = max_payload_bytes
        self._lock = threading.Lock()
        self._counter = 0

    @property
    def accepted_count(self) -> int:
        """Recipients accepted so far."""
        return self._counter

    def deliver(self, batch: Batch) -> ProviderResponse:
        with self._lock:
            start = self._counter
            self._counter += len(batch)

        logger.info(
            "Dry run: batch accepted without sending",
            extra={"event": "provider.dry_run.accepted", "batch_size": len(batch)},
        )
        return ProviderResponse(
            results=[
                RecipientResponse(registration_id=registration_id, message_id=f"dry-run-{start + offset}")
                for offset, registration_id in enumerate(batch.registration_ids)
            ]
        )
