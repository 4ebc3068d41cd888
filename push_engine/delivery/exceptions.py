"""Exceptions raised by the delivery engine."""

from typing import List, Optional


class DeliveryError(Exception):
    """Base exception for delivery engine errors.

    Per-recipient problems are never raised; they become outcomes in the
    DeliveryReport. Only request-level and local control-flow errors use
    this hierarchy.
    """

    pass


class RequestValidationError(DeliveryError):
    """The request is malformed and nothing was dispatched.

    Raised for an empty recipient list, a payload above the provider's byte
    ceiling, or a payload that fails model validation.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        """Initialize with a summary and optional detail lines.

        Args:
            message: Human-readable summary
            errors: Individual validation failures
        """
        super().__init__(message)
        self.errors = errors or []

    def __str__(self) -> str:
        message = super().__str__()
        if not self.errors:
            return message
        return message + "\n" + "\n".join(f"  - {error}" for error in self.errors)


class RateLimitTimeout(DeliveryError):
    """Tokens could not be acquired before the caller's deadline.

    Local backpressure; the caller may try again later.
    """

    def __init__(self, message: str, requested: float, wait_seconds: float) -> None:
        super().__init__(message)
        self.requested = requested
        self.wait_seconds = wait_seconds


class CircuitOpenError(DeliveryError):
    """The circuit breaker rejected a call without contacting the provider."""

    def __init__(self, message: str, retry_in: float) -> None:
        """Initialize with the time left until a probe is allowed.

        Args:
            message: Human-readable error message
            retry_in: Seconds until the breaker moves to half-open (0 if a
                probe is already in flight)
        """
        super().__init__(message)
        self.retry_in = retry_in


class DeliveryCancelledError(DeliveryError):
    """A blocking wait was interrupted by cancellation or deadline expiry."""

    pass
