"""Base class and response types for push delivery providers.

A provider turns one Batch into one provider call and reports what happened
to each recipient, in batch order. Mapping provider error codes onto
delivery outcomes is NOT a provider concern; see
push_engine.delivery.classification.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from push_engine.domain.models import Batch


@dataclass(frozen=True)
class RecipientResponse:
    """The provider's answer for one recipient.

    Attributes:
        registration_id: Identifier the entry belongs to
        message_id: Provider message id when the send was accepted
        canonical_id: Replacement identifier, when the provider issued one
        error: Provider error code (e.g. "NotRegistered"), None on success
    """

    registration_id: str
    message_id: Optional[str] = None
    canonical_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ProviderResponse:
    """Structured response for a whole batch; results follow batch order."""

    results: List[RecipientResponse]
    retry_after: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


class DeliveryProvider(ABC):
    """Base class for push delivery providers.

    Subclasses declare their limits and implement ``deliver``. ``deliver``
    either returns a ProviderResponse with one entry per batch item, or
    raises a ProviderError subclass:

    - ProviderUnavailableError / ProviderResponseError: no per-recipient
      information (every recipient is retried)
    - ProviderPayloadError / ProviderAuthError: the batch cannot be delivered
      at all (no recipient is retried)

    Attributes:
        name: Provider label used in logs
        max_batch_size: Most recipients accepted per call
        max_payload_bytes: Largest accepted payload (canonical JSON bytes)
    """

    name: str = "provider"
    max_batch_size: int = 1000
    max_payload_bytes: int = 4096

    @abstractmethod
    def deliver(self, batch: Batch) -> ProviderResponse:
        """Send one batch.

        Args:
            batch: Recipients plus the shared payload

        Returns:
            ProviderResponse with exactly one RecipientResponse per batch item

        Raises:
            ProviderError: See class docstring
        """
        pass

    def close(self) -> None:
        """Release transport resources. Default: nothing to release."""
        return None
