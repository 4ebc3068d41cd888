"""Batch push-notification delivery engine.

Fans a notification payload out to many device registration identifiers
through a push provider, with batching, bounded concurrency, rate limiting,
circuit breaking, retry/backoff and registry reconciliation.
"""

__version__ = "1.0.0"
