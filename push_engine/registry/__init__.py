"""Registration store: SQLAlchemy persistence of device registrations."""

from .database import RegistryDatabase
from .exceptions import RegistrationExistsError, RegistryConnectionError, RegistryError
from .repositories import RegistrationRepository
from .updater import SqlRegistryUpdater

__all__ = [
    "RegistryDatabase",
    "RegistrationRepository",
    "SqlRegistryUpdater",
    "RegistryError",
    "RegistryConnectionError",
    "RegistrationExistsError",
]
