"""Registration store exceptions.

All registry exceptions inherit from RegistryError so callers can catch the
whole layer with a single except clause.
"""


class RegistryError(Exception):
    """Base exception for all registration store errors."""

    pass


class RegistryConnectionError(RegistryError):
    """Raised when the database cannot be initialized or reached.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database used before initialization
    """

    pass


class RegistrationExistsError(RegistryError):
    """Raised when adding an identifier that is already registered."""

    pass
