"""Firebase Cloud Messaging (legacy HTTP API) provider."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import requests

from push_engine.domain.models import Batch, NotificationPayload
from push_engine.logging import get_logger

from .base import DeliveryProvider, ProviderResponse, RecipientResponse
from .exceptions import (
    ProviderAuthError,
    ProviderConfigurationError,
    ProviderPayloadError,
    ProviderResponseError,
    ProviderUnavailableError,
)

logger = get_logger(__name__, component="provider")


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds.

    Returns None for a missing or unparseable header.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


class FcmLegacyProvider(DeliveryProvider):
    """Multicast sends through the FCM legacy HTTP endpoint.

    One batch becomes one POST with ``registration_ids``. The response's
    ``results`` array lines up with the ids sent; each entry carries a
    ``message_id`` on success, an optional canonical ``registration_id``, or
    an ``error`` code.

    API Details:
        Endpoint: https://fcm.googleapis.com/fcm/send
        Method: POST
        Authentication: ``Authorization: key=<server key>``
        Limits: 1000 registration ids per request, 4096-byte payload
    """

    name = "fcm_legacy"
    DEFAULT_ENDPOINT = "https://fcm.googleapis.com/fcm/send"
    max_batch_size = 1000
    max_payload_bytes = 4096

    def __init__(
        self,
        server_key: str,
        endpoint: Optional[str] = None,
        timeout: float = 10.0,
        user_agent: str = "PushDeliveryEngine/1.0",
        max_batch_size: Optional[int] = None,
        max_payload_bytes: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize provider with credentials and transport settings.

        Args:
            server_key: FCM server key
            endpoint: Send URL (default: the public FCM endpoint)
            timeout: HTTP timeout per request in seconds
            user_agent: User-Agent header
            max_batch_size: Lower the 1000-id ceiling
            max_payload_bytes: Lower the 4096-byte ceiling
            session: Pre-built requests session (tests inject a mock here)

        Raises:
            ProviderConfigurationError: If the key is empty or timeout invalid
        """
        if not server_key or not server_key.strip():
            raise ProviderConfigurationError("FCM server key cannot be empty")
        if timeout <= 0:
            raise ProviderConfigurationError(f"Timeout must be positive, got: {timeout}")

        self.endpoint = endpoint or self.DEFAULT_ENDPOINT
        self.timeout = timeout
        if max_batch_size is not None:
            self.max_batch_size = min(max_batch_size, FcmLegacyProvider.max_batch_size)
        if max_payload_bytes is not None:
            self.max_payload_bytes = min(max_payload_bytes, FcmLegacyProvider.max_payload_bytes)

        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"key={server_key.strip()}",
                "Content-Type": "application/json",
                "User-Agent": user_agent,
            }
        )

    def build_body(self, batch: Batch) -> Dict[str, Any]:
        """Request body for one batch."""
        payload: NotificationPayload = batch.payload
        body: Dict[str, Any] = {
            "registration_ids": batch.registration_ids,
            "priority": payload.options.priority,
        }
        notification = {}
        if payload.title:
            notification["title"] = payload.title
        if payload.body:
            notification["body"] = payload.body
        if notification:
            body["notification"] = notification
        if payload.data:
            body["data"] = dict(payload.data)
        if payload.options.time_to_live is not None:
            body["time_to_live"] = payload.options.time_to_live
        if payload.options.collapse_key:
            body["collapse_key"] = payload.options.collapse_key
        return body

    def deliver(self, batch: Batch) -> ProviderResponse:
        """POST one batch and parse the per-recipient results.

        Raises:
            ProviderUnavailableError: Timeout, connection error, HTTP 429 or 5xx
            ProviderPayloadError: HTTP 400 or another 4xx
            ProviderAuthError: HTTP 401 or 403
            ProviderResponseError: Invalid JSON or misaligned results
        """
        try:
            logger.debug(
                f"HTTP POST to {self.endpoint}",
                extra={
                    "event": "provider.request",
                    "batch_size": len(batch),
                    "timeout": self.timeout,
                },
            )
            response = self._session.post(self.endpoint, json=self.build_body(batch), timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {self.endpoint} timed out after {self.timeout} seconds",
                extra={"event": "provider.request.retryable_error", "error_type": "Timeout"},
            )
            raise ProviderUnavailableError(
                f"Request to {self.endpoint} timed out after {self.timeout} seconds"
            ) from e
        except requests.exceptions.RequestException as e:
            logger.warning(
                f"Request to {self.endpoint} failed: {e}",
                extra={"event": "provider.request.retryable_error", "error_type": type(e).__name__},
            )
            raise ProviderUnavailableError(f"Request to {self.endpoint} failed: {e}") from e

        status = response.status_code
        if status >= 400:
            self._raise_for_status(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"Failed to parse JSON response from {self.endpoint}: {e}") from e

        return ProviderResponse(
            results=self._parse_results(batch, data),
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
            raw=data,
        )

    def _raise_for_status(self, response: requests.Response) -> None:
        status = response.status_code
        message = f"HTTP {status}: {response.reason}"

        if status == 429 or status >= 500:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(
                f"HTTP {status} from provider",
                extra={
                    "event": "provider.request.retryable_error",
                    "status_code": status,
                    "retry_after_seconds": retry_after,
                },
            )
            raise ProviderUnavailableError(message, status_code=status, retry_after=retry_after)

        logger.error(
            f"HTTP {status} from provider",
            extra={"event": "provider.request.error", "status_code": status},
        )
        if status in (401, 403):
            raise ProviderAuthError(message, status_code=status)
        raise ProviderPayloadError(message, status_code=status)

    def _parse_results(self, batch: Batch, data: Any) -> List[RecipientResponse]:
        if not isinstance(data, dict):
            raise ProviderResponseError(f"Expected JSON object response, got {type(data).__name__}")

        entries = data.get("results")
        if not isinstance(entries, list):
            raise ProviderResponseError(
                f"Expected 'results' field to be array, got {type(entries).__name__}"
            )
        if len(entries) != len(batch):
            raise ProviderResponseError(
                f"Provider returned {len(entries)} results for {len(batch)} registration ids"
            )

        results = []
        for registration_id, entry in zip(batch.registration_ids, entries):
            if not isinstance(entry, dict):
                raise ProviderResponseError(f"Expected result object, got {type(entry).__name__}")
            results.append(
                RecipientResponse(
                    registration_id=registration_id,
                    message_id=entry.get("message_id"),
                    canonical_id=entry.get("registration_id"),
                    error=entry.get("error"),
                )
            )
        return results

    def close(self) -> None:
        self._session.close()
