"""SQL-backed RegistryUpdater used by lifecycle reconciliation."""

from typing import Sequence, Tuple

from push_engine.delivery.lifecycle import RegistryUpdater
from push_engine.logging import get_logger

from .database import RegistryDatabase
from .repositories import RegistrationRepository

logger = get_logger(__name__, component="registry")


class SqlRegistryUpdater(RegistryUpdater):
    """Applies removals and replacements to the registrations table.

    Each call runs in its own transaction; a failure rolls that call back and
    propagates to the lifecycle manager, which records it.
    """

    def __init__(self, database: RegistryDatabase) -> None:
        self.database = database

    def remove(self, registration_ids: Sequence[str]) -> None:
        with self.database.session() as session:
            removed = RegistrationRepository(session).remove_many(registration_ids)
        logger.info(
            f"Removed {removed} stale registrations",
            extra={"event": "registry.removed", "requested": len(registration_ids), "removed": removed},
        )

    def replace(self, pairs: Sequence[Tuple[str, str]]) -> None:
        with self.database.session() as session:
            moved = RegistrationRepository(session).replace_many(pairs)
        logger.info(
            f"Replaced {moved} moved registrations",
            extra={"event": "registry.replaced", "requested": len(pairs), "moved": moved},
        )
