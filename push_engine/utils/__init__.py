"""Shared utilities."""

from .timestamps import format_utc, utc_now

__all__ = ["format_utc", "utc_now"]
