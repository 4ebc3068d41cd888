"""Registration lifecycle reconciliation.

Turns a finished DeliveryReport into registry changes: identifiers the
provider no longer knows are removed, identifiers with a canonical
replacement are swapped. The storage itself sits behind RegistryUpdater.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from push_engine.domain.models import DeliveryOutcome, DeliveryReport, ReconciliationResult
from push_engine.logging import get_logger

logger = get_logger(__name__, component="lifecycle")


class RegistryUpdater(ABC):
    """Write access to wherever registration identifiers are stored."""

    @abstractmethod
    def remove(self, registration_ids: Sequence[str]) -> None:
        """Delete stale identifiers."""
        pass

    @abstractmethod
    def replace(self, pairs: Sequence[Tuple[str, str]]) -> None:
        """Swap each (old, new) identifier pair."""
        pass


class RegistrationLifecycleManager:
    """Classifies report entries for registry cleanup and forwards them.

    Reconciliation is best-effort: updater failures are logged and returned
    in ``ReconciliationResult.errors`` and never change a delivery outcome.
    """

    def __init__(self, updater: Optional[RegistryUpdater] = None, dry_run: bool = False) -> None:
        self.updater = updater
        self.dry_run = dry_run

    def plan(self, report: DeliveryReport) -> ReconciliationResult:
        """Collect removals and replacements without applying them.

        Identifiers repeated in the input are listed once.
        """
        to_remove: List[str] = []
        to_replace: List[Tuple[str, str]] = []
        seen_remove = set()
        seen_replace = set()

        for result in report.results:
            if result.outcome is DeliveryOutcome.INVALID_RECIPIENT:
                if result.registration_id and result.registration_id not in seen_remove:
                    seen_remove.add(result.registration_id)
                    to_remove.append(result.registration_id)
            elif result.outcome is DeliveryOutcome.RECIPIENT_MOVED and result.canonical_id:
                pair = (result.registration_id, result.canonical_id)
                if pair not in seen_replace:
                    seen_replace.add(pair)
                    to_replace.append(pair)

        return ReconciliationResult(to_remove=tuple(to_remove), to_replace=tuple(to_replace))

    def reconcile(self, report: DeliveryReport) -> ReconciliationResult:
        """Plan the registry changes for a report and apply them.

        Returns:
            ReconciliationResult with ``applied`` set when the updater was called
        """
        planned = self.plan(report)

        if not planned.has_changes:
            return planned

        if self.updater is None or self.dry_run:
            logger.info(
                "Registry changes planned but not applied",
                extra={
                    "event": "registry.reconcile.planned",
                    "remove_count": len(planned.to_remove),
                    "replace_count": len(planned.to_replace),
                    "dry_run": self.dry_run,
                },
            )
            return planned

        errors: List[str] = []

        if planned.to_remove:
            try:
                self.updater.remove(list(planned.to_remove))
            except Exception as e:
                logger.error(
                    f"Failed to remove stale registrations: {e}",
                    extra={
                        "event": "registry.reconcile.failed",
                        "operation": "remove",
                        "error_type": type(e).__name__,
                        "count": len(planned.to_remove),
                    },
                )
                errors.append(f"remove: {e}")

        if planned.to_replace:
            try:
                self.updater.replace(list(planned.to_replace))
            except Exception as e:
                logger.error(
                    f"Failed to replace moved registrations: {e}",
                    extra={
                        "event": "registry.reconcile.failed",
                        "operation": "replace",
                        "error_type": type(e).__name__,
                        "count": len(planned.to_replace),
                    },
                )
                errors.append(f"replace: {e}")

        logger.info(
            "Registry reconciled",
            extra={
                "event": "registry.reconcile.completed",
                "remove_count": len(planned.to_remove),
                "replace_count": len(planned.to_replace),
                "error_count": len(errors),
            },
        )

        return ReconciliationResult(
            to_remove=planned.to_remove,
            to_replace=planned.to_replace,
            applied=True,
            errors=tuple(errors),
        )
