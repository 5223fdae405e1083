"""Default configuration values for airdaemon."""

# Maximum cumulative size of a single archive (5 GiB)
MAX_ARCHIVE_SIZE = 5 * 1024 * 1024 * 1024

DEFAULT_DAEMON_CONFIG: dict[str, int | float | str] = {
    "host": "127.0.0.1",
    "port": 3002,
    "volumes_dir": "volumes",
    "archives_dir": "archives",
    "state_file": "states.json",
    "docker_socket": "/var/run/docker.sock",
    "container_data_path": "/app/data",
    "network_mode": "host",
    "max_archive_size": MAX_ARCHIVE_SIZE,
    "archive_stat_concurrency": 4,
    "install_concurrency": 8,
    "purge_concurrency": 4,
    "download_timeout": 30.0,  # seconds
    "power_timeout": 5.0,  # seconds
}

# Files that are never treated as text during install-script substitution
BINARY_ARCHIVE_EXTENSIONS = frozenset({".jar", ".war", ".zip", ".gz", ".tgz"})

# Chunk size used when streaming archives back to callers
DOWNLOAD_CHUNK_SIZE = 64 * 1024
