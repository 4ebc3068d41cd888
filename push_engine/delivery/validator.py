"""Syntactic validation of registration identifiers."""

import re
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from push_engine.config.exceptions import ConfigurationError
from push_engine.domain.models import BatchItem

# Rejection reasons, reported on the recipient's result
REASON_EMPTY = "empty"
REASON_TOO_SHORT = "too_short"
REASON_TOO_LONG = "too_long"
REASON_INVALID_CHARACTERS = "invalid_characters"

_ALLOWED_CHARACTERS = re.compile(r"[A-Za-z0-9_:.\-]+")


@dataclass(frozen=True)
class RejectedRecipient:
    """A recipient refused before dispatch, with the reason."""

    item: BatchItem
    reason: str


class RegistrationValidator:
    """Checks identifiers before any network call.

    Pure: no I/O, no shared state. An identifier is accepted when it is
    non-empty, its length lies within [min_length, max_length], and it only
    uses letters, digits and ``_ : . -``.
    """

    def __init__(self, min_length: int = 8, max_length: int = 4096) -> None:
        if min_length < 1 or max_length < min_length:
            raise ConfigurationError(
                f"Invalid identifier length bounds: [{min_length}, {max_length}]",
                suggestions=["Use 1 <= min_length <= max_length"],
            )
        self.min_length = min_length
        self.max_length = max_length

    def check(self, registration_id: str) -> str:
        """Return the rejection reason for an identifier, or "" if it is valid."""
        if not registration_id:
            return REASON_EMPTY
        if len(registration_id) < self.min_length:
            return REASON_TOO_SHORT
        if len(registration_id) > self.max_length:
            return REASON_TOO_LONG
        if not _ALLOWED_CHARACTERS.fullmatch(registration_id):
            return REASON_INVALID_CHARACTERS
        return ""

    def validate(
        self, items: Sequence[BatchItem]
    ) -> Tuple[List[BatchItem], List[RejectedRecipient]]:
        """Split recipients into accepted and rejected, preserving input order.

        Args:
            items: Position-tagged recipients

        Returns:
            (valid, rejected)
        """
        valid: List[BatchItem] = []
        rejected: List[RejectedRecipient] = []
        for item in items:
            reason = self.check(item.registration_id)
            if reason:
                rejected.append(RejectedRecipient(item=item, reason=reason))
            else:
                valid.append(item)
        return valid, rejected
