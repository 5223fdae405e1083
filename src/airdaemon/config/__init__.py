"""Configuration loading for airdaemon."""

from airdaemon.config.loader import ConfigLoader

__all__ = ["ConfigLoader"]
