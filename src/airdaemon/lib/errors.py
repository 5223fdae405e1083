"""Custom exception hierarchy for airdaemon operations.

Every error carries a stable ``category`` string. The HTTP layer maps error
classes to status codes in one place (see ``airdaemon.serve.middleware``),
so components raise these without knowing about transport details.
"""

from __future__ import annotations


class AirDaemonError(Exception):
    """Base exception for all airdaemon errors.

    All airdaemon-specific exceptions inherit from this class, enabling
    centralized exception handling at the HTTP and CLI boundaries.

    Attributes:
        category: Stable, machine-readable error category
        message: Human-readable error message
    """

    category = "fatal"

    def __init__(self, message: str) -> None:
        """Initialize the error with a human-readable message.

        Args:
            message: Descriptive error message
        """
        self.message = message
        super().__init__(message)


class ConfigError(AirDaemonError):
    """Exception raised for configuration errors.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    category = "config"

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        super().__init__(message)

    def __str__(self) -> str:
        return f"Configuration error in '{self.field}': {self.message}"


class ValidationError(AirDaemonError):
    """Raised for malformed identifiers, names or request bodies.

    Validation happens before any side effect.
    """

    category = "validation"


class NotFoundError(AirDaemonError):
    """Raised when a container, archive, volume or state record is absent."""

    category = "not_found"


class OutsideRootError(AirDaemonError):
    """Raised when a path would resolve outside of its designated root.

    Attributes:
        root: The root directory the path had to stay inside
        target: The untrusted path that was rejected
    """

    category = "outside_root"

    def __init__(self, root: str, target: str) -> None:
        """Create an error for a rejected path.

        Args:
            root: Root directory that bounds the lookup
            target: The rejected relative path
        """
        self.root = root
        self.target = target
        super().__init__("Attempting to access outside of the allowed directory")


class SizeLimitExceededError(AirDaemonError):
    """Raised when an archive grows beyond the configured byte cap."""

    category = "size_limit_exceeded"

    def __init__(self, limit: int) -> None:
        """Create an error for the exceeded limit.

        Args:
            limit: The byte cap that was exceeded
        """
        self.limit = limit
        super().__init__("Archive size exceeds maximum limit")


class OperationTimeoutError(AirDaemonError):
    """Raised when a bounded operation does not finish in time."""

    category = "timeout"

    def __init__(self, operation: str, timeout: float) -> None:
        """Create a timeout error.

        Args:
            operation: Name of the operation that timed out
            timeout: The bound in seconds
        """
        self.operation = operation
        self.timeout = timeout
        super().__init__(
            f"The {operation} operation timed out after {timeout:g} seconds"
        )


class PartialFailureError(AirDaemonError):
    """Raised when some sub-operations of a fan-out failed.

    Attributes:
        failed: Identifiers of the sub-operations that failed
        total: Number of sub-operations that were attempted
    """

    category = "partial_failure"

    def __init__(self, message: str, failed: list[str], total: int) -> None:
        """Create a partial failure report.

        Args:
            message: Summary message, normally including the failure count
            failed: Identifiers of the failed sub-operations
            total: Number of attempted sub-operations
        """
        self.failed = failed
        self.total = total
        super().__init__(message)


class StateStoreError(AirDaemonError):
    """Raised when the state document cannot be read or written."""

    category = "state_store"


class DeploymentError(AirDaemonError):
    """Raised when a deployment step fails.

    Attributes:
        operation: The deployment phase that failed
        message: Human-readable error message
    """

    category = "deployment"

    def __init__(self, operation: str, message: str) -> None:
        """Create a deployment error with context.

        Args:
            operation: Phase or operation name (e.g. ``pull``, ``install``)
            message: Descriptive error message
        """
        self.operation = operation
        super().__init__(message)


class DockerNotAvailableError(DeploymentError):
    """Raised when the Docker daemon cannot be reached."""

    def __init__(self, operation: str) -> None:
        """Create an error for an unreachable Docker daemon."""
        super().__init__(
            operation=operation,
            message=(
                "Docker is not available. Ensure the Docker daemon is running "
                "and the socket path is correct."
            ),
        )


class RuntimeClientError(AirDaemonError):
    """Raised for unclassified failures reported by the container runtime."""

    category = "runtime"


class ContainerStateError(ValidationError):
    """Raised when a container is already in the requested state."""


class ArchiveError(AirDaemonError):
    """Raised when an archive cannot be written, read or extracted."""

    category = "archive"
