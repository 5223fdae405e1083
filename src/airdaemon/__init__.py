"""airdaemon - Host-side control daemon for game-server containers.

airdaemon deploys containers from a request, keeps a persistent record of
each instance's lifecycle state, runs templated install scripts against
the instance volume, and manages point-in-time archives of volumes.

Main features:
- Deployment lifecycle tracked in a JSON state document
- Install-script download with ``{{key}}`` placeholder substitution
- Zip archives of volumes with download, delete and rollback
- Path-safe handling of every caller-supplied identifier
"""

from airdaemon.config.loader import ConfigLoader
from airdaemon.lib.errors import AirDaemonError, ConfigError, ValidationError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AirDaemonError",
    "ConfigLoader",
    "ConfigError",
    "ValidationError",
]
