"""Environment variables (secrets and deployment-specific values)."""

import os
from typing import Optional
from urllib.parse import urlparse

from .exceptions import ConfigurationError
from .models import ProviderType

DEFAULT_DATABASE_URL = "sqlite:///./data/registrations.db"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvironmentConfig:
    """Values read from the process environment (after .env is loaded)."""

    def __init__(
        self,
        fcm_server_key: Optional[str] = None,
        fcm_endpoint: Optional[str] = None,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.fcm_server_key = fcm_server_key
        self.fcm_endpoint = fcm_endpoint
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.log_level = log_level
        self.environment = environment or "local"

    def __repr__(self) -> str:
        key_state = "set" if self.fcm_server_key else "unset"
        return (
            f"EnvironmentConfig(fcm_server_key=<{key_state}>, fcm_endpoint={self.fcm_endpoint!r}, "
            f"database_url={self.database_url!r}, log_level={self.log_level!r}, "
            f"environment={self.environment!r})"
        )


def load_environment_config(provider_type: str = ProviderType.FCM_LEGACY.value) -> EnvironmentConfig:
    """Read and validate environment variables.

    Variables:
    - FCM_SERVER_KEY: provider credential (required for the fcm_legacy provider)
    - FCM_ENDPOINT: override of the FCM send URL
    - DATABASE_URL: registration store (default sqlite:///./data/registrations.db)
    - LOG_LEVEL: overrides the configured log level
    - ENVIRONMENT: label stamped on log records (default "local")

    Args:
        provider_type: Configured provider; decides which variables are required

    Raises:
        ConfigurationError: If required variables are missing or malformed
    """
    errors = []

    fcm_server_key = os.getenv("FCM_SERVER_KEY")
    fcm_endpoint = os.getenv("FCM_ENDPOINT")
    database_url = os.getenv("DATABASE_URL")
    log_level = os.getenv("LOG_LEVEL")
    environment = os.getenv("ENVIRONMENT")

    if provider_type == ProviderType.FCM_LEGACY.value and not fcm_server_key:
        errors.append("Missing required environment variable: FCM_SERVER_KEY")

    if fcm_endpoint:
        parsed = urlparse(fcm_endpoint)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"Invalid FCM_ENDPOINT: '{fcm_endpoint}'. Must be an http(s) URL.")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if database_url and "://" not in database_url:
        errors.append(f"Invalid DATABASE_URL: '{database_url}'. Expected a SQLAlchemy URL.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in the provider credential",
                "Use provider.type: dry_run to run without credentials",
            ],
        )

    return EnvironmentConfig(
        fcm_server_key=fcm_server_key,
        fcm_endpoint=fcm_endpoint,
        database_url=database_url,
        log_level=log_level.upper() if log_level else None,
        environment=environment,
    )
