"""Database schema definition and ORM models for the registration store."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, String
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from push_engine.domain.models import Registration

logger = logging.getLogger(__name__)

Base = declarative_base()


class RegistrationModel(Base):
    """ORM model for the registrations table.

    One row per device registration identifier.
    """

    __tablename__ = "registrations"

    registration_id = Column(String(4096), primary_key=True, nullable=False)
    platform = Column(String(32), nullable=True)

    # Timestamps (stored as ISO 8601 strings)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_registrations_platform", "platform"),)

    def to_domain(self) -> Registration:
        return Registration(
            registration_id=self.registration_id,
            platform=self.platform,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )

    @classmethod
    def from_domain(cls, registration: Registration) -> "RegistrationModel":
        return cls(
            registration_id=registration.registration_id,
            platform=registration.platform,
            created_at=format_datetime(registration.created_at),
            updated_at=format_datetime(registration.updated_at),
        )


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 UTC string (naive values are taken as UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    if not dt_str:
        return None
    if dt_str.endswith("Z"):
        dt_str = dt_str[:-1] + "+00:00"
    return datetime.fromisoformat(dt_str)


def create_schema(engine: Engine) -> None:
    """Create tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.debug("Registry schema ensured", extra={"event": "registry.schema.created"})
