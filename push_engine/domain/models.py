"""Core domain models for push delivery.

- Recipient / NotificationPayload: validated request inputs (pydantic, immutable)
- BatchItem / Batch: the unit of provider I/O
- DeliveryOutcome / RecipientOutcome / BatchResult: what one dispatch produced
- RecipientResult / DeliveryReport: the final, per-call answer
- ReconciliationResult: what was forwarded to the registration store
- Registration: a row of the registration store
"""

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator, model_validator

# FCM's documented upper bound for time_to_live (four weeks)
MAX_TIME_TO_LIVE_SECONDS = 2_419_200


class Recipient(BaseModel):
    """A device registration identifier plus optional hints.

    The identifier is kept exactly as supplied; RegistrationValidator decides
    whether it is usable.
    """

    registration_id: str = Field(..., description="Opaque device/endpoint identifier")
    platform: Optional[str] = Field(None, description="Platform hint (android, ios, web)")
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def coerce(cls, value: Union["Recipient", str, Dict[str, Any]]) -> "Recipient":
        """Accept a Recipient, a bare identifier string, or a mapping."""
        if isinstance(value, Recipient):
            return value
        if isinstance(value, str):
            return cls(registration_id=value)
        return cls.model_validate(value)


class PushOptions(BaseModel):
    """Provider delivery options."""

    priority: Literal["high", "normal"] = "high"
    time_to_live: Optional[int] = Field(None, ge=0, le=MAX_TIME_TO_LIVE_SECONDS)
    collapse_key: Optional[str] = Field(None, min_length=1, max_length=256)

    model_config = {"frozen": True}


class NotificationPayload(BaseModel):
    """The message fanned out to every recipient of a request.

    A payload needs a title or some data; title and body lengths follow the
    limits the push tooling has always enforced (100 / 500 characters).
    """

    title: Optional[str] = Field(None, max_length=100)
    body: Optional[str] = Field(None, max_length=500)
    data: Dict[str, str] = Field(default_factory=dict)
    options: PushOptions = Field(default_factory=PushOptions)

    model_config = {"frozen": True}

    @field_validator("data", mode="before")
    @classmethod
    def stringify_data_values(cls, v: Any) -> Any:
        """Provider data maps are string-to-string; scalars are converted."""
        if not isinstance(v, dict):
            return v
        converted = {}
        for key, value in v.items():
            if isinstance(value, (dict, list)):
                converted[str(key)] = json.dumps(value, separators=(",", ":"), sort_keys=True)
            elif isinstance(value, bool):
                converted[str(key)] = "true" if value else "false"
            elif value is None:
                converted[str(key)] = ""
            else:
                converted[str(key)] = str(value)
        return converted

    @model_validator(mode="after")
    def require_title_or_data(self):
        if not self.title and not self.data:
            raise ValueError("Payload must have either a title or data")
        return self

    def to_wire(self) -> Dict[str, Any]:
        """Provider-neutral JSON form, omitting unset fields."""
        return self.model_dump(exclude_none=True)

    def size_bytes(self) -> int:
        """UTF-8 size of the canonical JSON encoding."""
        encoded = json.dumps(self.to_wire(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return len(encoded.encode("utf-8"))


class DeliveryOutcome(str, Enum):
    """Per-recipient classification of a delivery attempt."""

    DELIVERED = "delivered"
    INVALID_RECIPIENT = "invalid_recipient"
    RECIPIENT_MOVED = "recipient_moved"
    TRANSIENT = "transient"
    FATAL = "fatal"
    FAILED_AFTER_RETRIES = "failed_after_retries"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Everything except TRANSIENT is final for the recipient."""
        return self is not DeliveryOutcome.TRANSIENT

    @property
    def is_success(self) -> bool:
        """The provider accepted the message (a moved identifier still received it)."""
        return self in (DeliveryOutcome.DELIVERED, DeliveryOutcome.RECIPIENT_MOVED)


@dataclass(frozen=True)
class BatchItem:
    """A recipient tagged with its position in the caller's input."""

    position: int
    recipient: Recipient

    @property
    def registration_id(self) -> str:
        return self.recipient.registration_id


@dataclass(frozen=True)
class Batch:
    """An ordered group of recipients sharing one payload.

    attempt is 0 for the first dispatch round and k for retry round k.
    """

    batch_id: str
    items: Tuple[BatchItem, ...]
    payload: NotificationPayload
    attempt: int = 0

    def __len__(self) -> int:
        return len(self.items)

    @property
    def size(self) -> int:
        return len(self.items)

    @property
    def recipients(self) -> List[Recipient]:
        return [item.recipient for item in self.items]

    @property
    def registration_ids(self) -> List[str]:
        return [item.registration_id for item in self.items]


@dataclass(frozen=True)
class RecipientOutcome:
    """Outcome for one batch item from one dispatch."""

    item: BatchItem
    outcome: DeliveryOutcome
    error_code: Optional[str] = None
    canonical_id: Optional[str] = None


@dataclass(frozen=True)
class BatchResult:
    """Outcome of dispatching (or declining to dispatch) one batch.

    Attributes:
        batch: The batch this result belongs to
        outcomes: One RecipientOutcome per batch item, in batch order
        dispatched: True when the provider was actually invoked
        completed_at: Monotonic clock reading when the result was produced
        retry_after: Provider back-off hint in seconds, if any
        error: Batch-level error description (network failure, fatal payload, ...)
    """

    batch: Batch
    outcomes: Tuple[RecipientOutcome, ...]
    dispatched: bool
    completed_at: float
    retry_after: Optional[float] = None
    error: Optional[str] = None

    def with_outcome(self, outcome: DeliveryOutcome) -> List[RecipientOutcome]:
        return [o for o in self.outcomes if o.outcome is outcome]

    @property
    def transient_items(self) -> List[BatchItem]:
        return [o.item for o in self.outcomes if o.outcome is DeliveryOutcome.TRANSIENT]


@dataclass(frozen=True)
class RecipientResult:
    """Final outcome for one input recipient."""

    position: int
    recipient: Recipient
    outcome: DeliveryOutcome
    attempts: int = 0
    error_code: Optional[str] = None
    canonical_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def registration_id(self) -> str:
        return self.recipient.registration_id


@dataclass(frozen=True)
class ReconciliationResult:
    """Registry changes derived from a report and what happened to them.

    Attributes:
        to_remove: Identifiers the provider (or validator) called invalid
        to_replace: (old, new) identifier pairs from canonical replacements
        applied: True when the changes were forwarded to a registry updater
        errors: Failures reported by the registry updater (best-effort step)
    """

    to_remove: Tuple[str, ...] = ()
    to_replace: Tuple[Tuple[str, str], ...] = ()
    applied: bool = False
    errors: Tuple[str, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.to_remove or self.to_replace)


@dataclass(frozen=True)
class DeliveryReport:
    """Immutable per-call summary; every input recipient appears exactly once."""

    request_id: str
    results: Tuple[RecipientResult, ...]
    started_at: datetime
    finished_at: datetime
    elapsed_seconds: float
    retry_rounds: int = 0
    retry_attempts: int = 0
    cancelled_call: bool = False
    reconciliation: Optional[ReconciliationResult] = None
    _counts: Counter = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_counts", Counter(r.outcome for r in self.results))

    def count(self, outcome: DeliveryOutcome) -> int:
        return self._counts.get(outcome, 0)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def delivered(self) -> int:
        return self.count(DeliveryOutcome.DELIVERED)

    @property
    def invalid(self) -> int:
        return self.count(DeliveryOutcome.INVALID_RECIPIENT)

    @property
    def moved(self) -> int:
        return self.count(DeliveryOutcome.RECIPIENT_MOVED)

    @property
    def failed_after_retries(self) -> int:
        return self.count(DeliveryOutcome.FAILED_AFTER_RETRIES)

    @property
    def fatal(self) -> int:
        return self.count(DeliveryOutcome.FATAL)

    @property
    def cancelled(self) -> int:
        return self.count(DeliveryOutcome.CANCELLED)

    @property
    def success_rate(self) -> float:
        """Percentage of recipients the provider accepted, two decimals."""
        if not self.results:
            return 0.0
        accepted = sum(1 for r in self.results if r.outcome.is_success)
        return round(accepted / len(self.results) * 100, 2)

    @property
    def all_succeeded(self) -> bool:
        return all(r.outcome.is_success for r in self.results)

    @property
    def error_counts(self) -> Dict[str, int]:
        """How often each error code / rejection reason ended a recipient."""
        counts: Counter = Counter()
        for result in self.results:
            if result.outcome.is_success:
                continue
            counts[result.error_code or result.reason or result.outcome.value] += 1
        return dict(counts.most_common())

    def by_outcome(self, outcome: DeliveryOutcome) -> List[RecipientResult]:
        return [r for r in self.results if r.outcome is outcome]

    def result_at(self, position: int) -> RecipientResult:
        """Result for the recipient at an input position."""
        result = self.results[position]
        if result.position != position:
            # results are always ordered by position; fall back to a scan otherwise
            result = next(r for r in self.results if r.position == position)
        return result


class Registration(BaseModel):
    """A stored device registration (registry row)."""

    registration_id: str = Field(..., min_length=1)
    platform: Optional[str] = None
    created_at: datetime
    updated_at: datetime
