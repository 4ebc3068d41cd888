"""Domain models shared by every engine component."""

from .models import (
    Batch,
    BatchItem,
    BatchResult,
    DeliveryOutcome,
    DeliveryReport,
    NotificationPayload,
    PushOptions,
    Recipient,
    RecipientOutcome,
    RecipientResult,
    ReconciliationResult,
    Registration,
)

__all__ = [
    "Batch",
    "BatchItem",
    "BatchResult",
    "DeliveryOutcome",
    "DeliveryReport",
    "NotificationPayload",
    "PushOptions",
    "Recipient",
    "RecipientOutcome",
    "RecipientResult",
    "ReconciliationResult",
    "Registration",
]
