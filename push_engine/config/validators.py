"""Soft configuration checks that warn instead of failing."""

import warnings
from typing import List

from .models import EngineConfig


def check_for_warnings(config: EngineConfig) -> List[str]:
    """Return warnings for settings that are legal but probably unintended."""
    messages = []

    if config.dispatch.worker_count > config.rate_limit.capacity:
        messages.append(
            f"dispatch.worker_count ({config.dispatch.worker_count}) exceeds rate_limit.capacity "
            f"({config.rate_limit.capacity}); extra workers will mostly wait for tokens"
        )

    if config.dispatch.max_retries == 0:
        messages.append("dispatch.max_retries is 0; transient failures will not be retried")

    if config.circuit_breaker.threshold < config.dispatch.worker_count:
        messages.append(
            f"circuit_breaker.threshold ({config.circuit_breaker.threshold}) is below "
            f"dispatch.worker_count ({config.dispatch.worker_count}); one bad round can open the circuit"
        )

    if config.validation.min_length < 8:
        messages.append(
            f"validation.min_length ({config.validation.min_length}) accepts very short identifiers"
        )

    if config.registry.dry_run and not config.registry.enabled:
        messages.append("registry.dry_run has no effect while registry.enabled is false")

    return messages


def emit_warnings(messages: List[str]) -> None:
    """Emit each message as a UserWarning."""
    for message in messages:
        warnings.warn(message, UserWarning, stacklevel=2)
