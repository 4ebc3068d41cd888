"""Factory function for instantiating delivery providers."""

import logging

from push_engine.config.environment import EnvironmentConfig
from push_engine.config.models import ProviderConfig, ProviderType

from .base import DeliveryProvider
from .dry_run import DryRunProvider
from .exceptions import ProviderConfigurationError
from .fcm import FcmLegacyProvider

logger = logging.getLogger(__name__)


def get_provider(
    provider_config: ProviderConfig,
    env_config: EnvironmentConfig,
    dry_run: bool = False,
) -> DeliveryProvider:
    """Instantiate the configured provider.

    Args:
        provider_config: Provider section of the engine configuration
        env_config: Environment (server key, endpoint override)
        dry_run: Force the dry-run provider regardless of configuration

    Returns:
        Ready-to-use provider

    Raises:
        ProviderConfigurationError: If the type is unknown or the provider
            cannot be built (e.g. missing server key)

    Example:
        >>> provider = get_provider(ProviderConfig(type="dry_run"), EnvironmentConfig())
        >>> provider.name
        'dry_run'
    """
    requested = getattr(provider_config.type, "value", provider_config.type)
    provider_type = ProviderType.DRY_RUN.value if dry_run else str(requested).lower()

    logger.debug(
        "Creating provider instance",
        extra={"provider_type": provider_type, "dry_run": dry_run},
    )

    if provider_type == ProviderType.DRY_RUN.value:
        return DryRunProvider(
            max_batch_size=provider_config.max_batch_size or 1000,
            max_payload_bytes=provider_config.max_payload_bytes or 4096,
        )

    if provider_type == ProviderType.FCM_LEGACY.value:
        try:
            return FcmLegacyProvider(
                server_key=env_config.fcm_server_key or "",
                endpoint=env_config.fcm_endpoint or provider_config.endpoint,
                timeout=provider_config.request_timeout,
                user_agent=provider_config.user_agent,
                max_batch_size=provider_config.max_batch_size,
                max_payload_bytes=provider_config.max_payload_bytes,
            )
        except ProviderConfigurationError:
            raise
        except Exception as e:
            raise ProviderConfigurationError(f"Failed to create {provider_type} provider: {e}") from e

    supported = ", ".join(sorted(t.value for t in ProviderType))
    raise ProviderConfigurationError(
        f"Unknown provider type: {provider_config.type}. Supported types: {supported}"
    )
