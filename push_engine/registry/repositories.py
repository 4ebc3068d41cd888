"""Data access for stored registrations.

Repositories take a session, run SQLAlchemy statements and return domain
models, never ORM rows.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from push_engine.domain.models import Registration
from push_engine.utils.timestamps import utc_now

from .exceptions import RegistrationExistsError, RegistryError
from .schema import RegistrationModel, format_datetime

logger = logging.getLogger(__name__)


class RegistrationRepository:
    """Repository for registration rows."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, registration_id: str, platform: Optional[str] = None) -> Registration:
        """Insert a new registration.

        Raises:
            RegistrationExistsError: If the identifier is already stored
            RegistryError: On any other database error
        """
        now = utc_now()
        model = RegistrationModel.from_domain(
            Registration(registration_id=registration_id, platform=platform, created_at=now, updated_at=now)
        )
        try:
            if self.session.get(RegistrationModel, registration_id) is not None:
                raise RegistrationExistsError(f"Registration already exists: {registration_id[:10]}...")
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            raise RegistrationExistsError(f"Registration already exists: {registration_id[:10]}...") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding registration: {e}", exc_info=True)
            raise RegistryError(f"Failed to add registration: {e}") from e

    def get(self, registration_id: str) -> Optional[Registration]:
        """Return the registration, or None if it is not stored."""
        try:
            model = self.session.get(RegistrationModel, registration_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving registration: {e}", exc_info=True)
            raise RegistryError(f"Failed to retrieve registration: {e}") from e

    def list(self, platform: Optional[str] = None, limit: Optional[int] = None) -> List[Registration]:
        """All registrations, oldest first, optionally for one platform."""
        try:
            stmt = select(RegistrationModel).order_by(
                RegistrationModel.created_at, RegistrationModel.registration_id
            )
            if platform is not None:
                stmt = stmt.where(RegistrationModel.platform == platform)
            if limit is not None:
                stmt = stmt.limit(limit)
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing registrations: {e}", exc_info=True)
            raise RegistryError(f"Failed to list registrations: {e}") from e

    def count(self) -> int:
        try:
            return self.session.execute(select(func.count()).select_from(RegistrationModel)).scalar_one()
        except SQLAlchemyError as e:
            raise RegistryError(f"Failed to count registrations: {e}") from e

    def remove_many(self, registration_ids: Sequence[str]) -> int:
        """Delete registrations; unknown identifiers are ignored.

        Returns:
            Number of rows deleted
        """
        if not registration_ids:
            return 0
        try:
            stmt = delete(RegistrationModel).where(
                RegistrationModel.registration_id.in_(list(registration_ids))
            )
            result = self.session.execute(stmt)
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error removing registrations: {e}", exc_info=True)
            raise RegistryError(f"Failed to remove registrations: {e}") from e

    def replace(self, old_id: str, new_id: str) -> bool:
        """Move a registration to its canonical identifier.

        The old row's platform and creation time carry over. If the new
        identifier is already stored, the old row is simply dropped. If the
        old identifier is unknown, the new one is registered.

        Returns:
            True if a stored row was moved or merged, False if newly inserted
        """
        try:
            old = self.session.get(RegistrationModel, old_id)
            existing = self.session.get(RegistrationModel, new_id)

            if old is None:
                if existing is None:
                    now = format_datetime(utc_now())
                    self.session.add(
                        RegistrationModel(registration_id=new_id, created_at=now, updated_at=now)
                    )
                    self.session.flush()
                return False

            if existing is None:
                self.session.add(
                    RegistrationModel(
                        registration_id=new_id,
                        platform=old.platform,
                        created_at=old.created_at,
                        updated_at=format_datetime(utc_now()),
                    )
                )
            self.session.delete(old)
            self.session.flush()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Error replacing registration: {e}", exc_info=True)
            raise RegistryError(f"Failed to replace registration: {e}") from e

    def replace_many(self, pairs: Sequence[Tuple[str, str]]) -> int:
        """Apply several replacements; returns how many stored rows moved."""
        return sum(1 for old_id, new_id in pairs if self.replace(old_id, new_id))
