"""Custom exceptions for push delivery providers."""

from typing import Optional


class ProviderError(Exception):
    """Base exception for all provider errors.

    The dispatch workers sort subclasses into two groups: network-level
    failures (every recipient of the batch is retried) and batch-level fatal
    errors (every recipient of the batch fails without retry).
    """

    pass


class ProviderUnavailableError(ProviderError):
    """The provider could not be reached or asked us to back off.

    Covers timeouts, connection failures, HTTP 5xx and HTTP 429.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        retry_after: Optional[float] = None,
    ) -> None:
        """Initialize with transport details.

        Args:
            message: Human-readable error message
            status_code: HTTP status (0 when no response was received)
            retry_after: Provider back-off hint in seconds, if sent
        """
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class ProviderResponseError(ProviderError):
    """The provider answered with something we cannot interpret.

    Invalid JSON, or a results list that does not line up with the batch.
    """

    pass


class ProviderPayloadError(ProviderError):
    """The provider rejected the request body (HTTP 400)."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    """The provider rejected our credentials (HTTP 401/403)."""

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderConfigurationError(ProviderError):
    """Invalid provider configuration (unknown type, missing key)."""

    pass


# Raised by a provider when the batch as a whole is undeliverable.
FATAL_PROVIDER_ERRORS = (ProviderPayloadError, ProviderAuthError)

# Raised by a provider when nothing is known about individual recipients.
NETWORK_PROVIDER_ERRORS = (ProviderUnavailableError, ProviderResponseError)
