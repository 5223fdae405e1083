"""Command-line interface for airdaemon."""
