"""Structured logging helpers for the delivery engine."""

import logging
from typing import Optional, Union


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that stamps a component name on every record.

    Fields passed through ``extra`` at the call site win over the adapter's
    defaults, so a caller may still override ``component`` for a single line.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Return a module logger, optionally bound to a component.

    Args:
        name: Logger name (usually ``__name__``)
        component: Component label added to every record (e.g. "dispatch")

    Returns:
        Plain logger, or a ComponentLoggerAdapter when component is given

    Example:
        >>> logger = get_logger(__name__, component="engine")
        >>> logger.info("Send started", extra={"event": "engine.send.started"})
    """
    logger = logging.getLogger(name)
    if component:
        return ComponentLoggerAdapter(logger, {"component": component})
    return logger
