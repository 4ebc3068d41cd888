"""Test helper utilities for push delivery engine tests."""

from .clock import FakeClock
from .providers import ProviderCall, ScriptedProvider, token_id
from .registry import InMemoryRegistryUpdater

__all__ = ["FakeClock", "ProviderCall", "ScriptedProvider", "InMemoryRegistryUpdater", "token_id"]
