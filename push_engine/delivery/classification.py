"""Mapping of provider responses onto delivery outcomes.

One fixed table, keyed by provider error code, isolates provider-specific
vocabulary from the retry and aggregation logic. Codes from the legacy FCM
HTTP API, the FCM v1 API and the Admin SDK ("messaging/...") are covered.
"""

from typing import Dict, List, Optional, Tuple

from push_engine.domain.models import Batch, DeliveryOutcome, RecipientOutcome
from push_engine.providers.base import ProviderResponse, RecipientResponse

INVALID = DeliveryOutcome.INVALID_RECIPIENT
TRANSIENT = DeliveryOutcome.TRANSIENT
FATAL = DeliveryOutcome.FATAL

CLASSIFICATION_TABLE: Dict[str, DeliveryOutcome] = {
    # identifier malformed or no longer registered
    "MissingRegistration": INVALID,
    "InvalidRegistration": INVALID,
    "NotRegistered": INVALID,
    "UNREGISTERED": INVALID,
    "INVALID_ARGUMENT": INVALID,
    "messaging/invalid-token": INVALID,
    "messaging/invalid-registration-token": INVALID,
    "messaging/registration-token-not-registered": INVALID,
    "messaging/invalid-argument": INVALID,
    # provider-side or throttling, worth another attempt
    "Unavailable": TRANSIENT,
    "InternalServerError": TRANSIENT,
    "DeviceMessageRateExceeded": TRANSIENT,
    "TopicsMessageRateExceeded": TRANSIENT,
    "UNAVAILABLE": TRANSIENT,
    "INTERNAL": TRANSIENT,
    "QUOTA_EXCEEDED": TRANSIENT,
    "messaging/server-unavailable": TRANSIENT,
    "messaging/internal-error": TRANSIENT,
    "messaging/message-rate-exceeded": TRANSIENT,
    "messaging/device-message-rate-exceeded": TRANSIENT,
    # the message itself (or the sender) is wrong; the whole batch fails
    "MessageTooBig": FATAL,
    "InvalidDataKey": FATAL,
    "InvalidTtl": FATAL,
    "InvalidParameters": FATAL,
    "InvalidPackageName": FATAL,
    "MismatchSenderId": FATAL,
    "InvalidApnsCredential": FATAL,
    "SENDER_ID_MISMATCH": FATAL,
    "THIRD_PARTY_AUTH_ERROR": FATAL,
    "messaging/payload-size-limit-exceeded": FATAL,
    "messaging/invalid-payload": FATAL,
    "messaging/mismatched-credential": FATAL,
}

# Unknown codes are retried; max_retries bounds the damage.
DEFAULT_ERROR_OUTCOME = TRANSIENT

# Batch-level error codes used when no provider code exists
CODE_NETWORK = "network_error"
CODE_CIRCUIT_OPEN = "circuit_open"
CODE_RESPONSE_MISMATCH = "response_mismatch"


def classify(entry: RecipientResponse) -> Tuple[DeliveryOutcome, Optional[str]]:
    """Classify one provider result entry.

    Returns:
        (outcome, error_code); error_code is None for accepted entries
    """
    if entry.error:
        return CLASSIFICATION_TABLE.get(entry.error, DEFAULT_ERROR_OUTCOME), entry.error
    if entry.canonical_id and entry.canonical_id != entry.registration_id:
        return DeliveryOutcome.RECIPIENT_MOVED, None
    return DeliveryOutcome.DELIVERED, None


def classify_response(batch: Batch, response: ProviderResponse) -> List[RecipientOutcome]:
    """Classify a structured response for a whole batch.

    A single payload-level (FATAL) code anywhere in the response marks every
    recipient of the batch FATAL with that code.

    Raises:
        ValueError: If the response does not have one entry per batch item
    """
    if len(response.results) != len(batch.items):
        raise ValueError(
            f"Provider returned {len(response.results)} results for a batch of {len(batch.items)}"
        )

    classified = [classify(entry) for entry in response.results]

    fatal_code = next((code for outcome, code in classified if outcome is FATAL), None)
    if fatal_code is not None:
        return mark_all(batch, FATAL, fatal_code)

    return [
        RecipientOutcome(
            item=item,
            outcome=outcome,
            error_code=code,
            canonical_id=entry.canonical_id if outcome is DeliveryOutcome.RECIPIENT_MOVED else None,
        )
        for item, entry, (outcome, code) in zip(batch.items, response.results, classified)
    ]


def mark_all(batch: Batch, outcome: DeliveryOutcome, error_code: Optional[str]) -> List[RecipientOutcome]:
    """Give every recipient of a batch the same outcome."""
    return [RecipientOutcome(item=item, outcome=outcome, error_code=error_code) for item in batch.items]


def is_transient_failure(outcomes: List[RecipientOutcome]) -> bool:
    """True when every recipient came back TRANSIENT (counts against the breaker)."""
    return bool(outcomes) and all(o.outcome is TRANSIENT for o in outcomes)
