"""Scoped logging context.

Fields bound here (request_id, batch_id, attempt, ...) are merged into every
log record emitted while the scope is active. The context lives in a
ContextVar, so it follows the call chain but NOT new threads; dispatch
workers re-enter the caller's context through ``copy_log_context``.
"""

from contextlib import contextmanager
from contextvars import Context, ContextVar, Token, copy_context
from typing import Any, Dict, Iterator

_log_context: ContextVar[Dict[str, Any]] = ContextVar("push_engine_log_context", default={})


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the fields currently bound to the log context."""
    return dict(_log_context.get())


def push_log_context(**fields: Any) -> Token:
    """Bind additional fields on top of the current context.

    Returns:
        Token for pop_log_context()
    """
    return _log_context.set({**_log_context.get(), **fields})


def pop_log_context(token: Token) -> None:
    """Restore the context that was active before the matching push."""
    _log_context.reset(token)


def clear_log_context() -> None:
    """Drop every bound field. Mostly for tests."""
    _log_context.set({})


@contextmanager
def bind_log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """Bind fields for the duration of a ``with`` block.

    Example:
        >>> with bind_log_context(request_id="r-1"):
        ...     logger.info("Planning batches")  # carries request_id
    """
    token = push_log_context(**fields)
    try:
        yield get_log_context()
    finally:
        pop_log_context(token)


def copy_log_context() -> Context:
    """Snapshot the current context for use in another thread.

    Example:
        >>> ctx = copy_log_context()
        >>> threading.Thread(target=ctx.run, args=(worker_loop,)).start()
    """
    return copy_context()
