"""Data models for airdaemon."""
