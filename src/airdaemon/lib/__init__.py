"""Shared helpers: errors, logging and path safety."""
