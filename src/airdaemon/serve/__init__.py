"""HTTP server exposing the daemon operations."""

__all__: list[str] = []
