"""Push delivery providers."""

from .base import DeliveryProvider, ProviderResponse, RecipientResponse
from .dry_run import DryRunProvider
from .exceptions import (
    ProviderAuthError,
    ProviderConfigurationError,
    ProviderError,
    ProviderPayloadError,
    ProviderResponseError,
    ProviderUnavailableError,
)
from .factory import get_provider
from .fcm import FcmLegacyProvider

__all__ = [
    "DeliveryProvider",
    "ProviderResponse",
    "RecipientResponse",
    "FcmLegacyProvider",
    "DryRunProvider",
    "get_provider",
    "ProviderError",
    "ProviderUnavailableError",
    "ProviderResponseError",
    "ProviderPayloadError",
    "ProviderAuthError",
    "ProviderConfigurationError",
]
