"""CLI commands for airdaemon."""
