"""Order-preserving batch planning."""

from typing import List, Sequence

from push_engine.config.exceptions import ConfigurationError
from push_engine.domain.models import Batch, BatchItem, NotificationPayload


class BatchPlanner:
    """Slices recipients into consecutive provider-sized batches.

    Batches hold exactly ``max_batch_size`` items except the last one, and
    items keep their input order. Batch ids are ``<prefix>-r<attempt>-b<index>``
    so logs can be correlated with retry rounds.
    """

    def plan(
        self,
        items: Sequence[BatchItem],
        max_batch_size: int,
        payload: NotificationPayload,
        attempt: int = 0,
        prefix: str = "batch",
    ) -> List[Batch]:
        """Partition items into batches.

        Args:
            items: Recipients to send, in order
            max_batch_size: Upper bound on items per batch
            payload: Payload shared by every batch
            attempt: Dispatch round the batches belong to (0 = first)
            prefix: Batch id prefix (usually the request id)

        Returns:
            Batches in input order; empty when there are no items

        Raises:
            ConfigurationError: If max_batch_size <= 0
        """
        if max_batch_size <= 0:
            raise ConfigurationError(
                f"max_batch_size must be positive, got {max_batch_size}"
            )

        return [
            Batch(
                batch_id=f"{prefix}-r{attempt}-b{index}",
                items=tuple(items[start:start + max_batch_size]),
                payload=payload,
                attempt=attempt,
            )
            for index, start in enumerate(range(0, len(items), max_batch_size))
        ]
