"""Lifecycle state storage."""

from airdaemon.state.store import InMemoryStateStore, JsonStateStore, StateStore

__all__ = ["InMemoryStateStore", "JsonStateStore", "StateStore"]
