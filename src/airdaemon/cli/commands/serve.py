"""CLI command for running the daemon HTTP server.

Implements the 'airdaemon serve' command.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from airdaemon.lib.errors import ConfigError
from airdaemon.lib.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML configuration file",
)
@click.option(
    "--host",
    "-h",
    type=str,
    default=None,
    help="Host to bind to (default: 127.0.0.1 for local-only access)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to listen on (default: 3002)",
)
@click.option(
    "--debug/--no-debug",
    default=False,
    help="Enable debug logging",
)
def serve(
    config_path: Path | None,
    host: str | None,
    port: int | None,
    debug: bool,
) -> None:
    """Start the daemon HTTP server.

    Settings are resolved from command-line options, then the YAML file
    given with --config, then AIRDAEMON_* environment variables.

    Example:

        airdaemon serve

        airdaemon serve --config /etc/airdaemon.yaml --port 3002
    """
    setup_logging(verbose=debug, quiet=False)
    logger.info(
        f"Serve command invoked: config={config_path}, "
        f"host={host}, port={port}, debug={debug}"
    )

    try:
        from airdaemon.config.loader import ConfigLoader

        config = ConfigLoader().load(
            config_path=config_path, overrides={"host": host, "port": port}
        )
        logger.debug(f"Resolved configuration: {config.model_dump()}")

        import uvicorn

        from airdaemon.serve.server import DaemonServer

        server = DaemonServer(config, debug=debug)
        app = server.create_app()
        _display_startup_info(config.host, config.port, config.volumes_dir)
        uvicorn.run(
            app,
            host=config.host,
            port=config.port,
            log_level="debug" if debug else "info",
        )

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Invalid configuration", fg="red", err=True)
        click.echo(f"  {str(e)}", err=True)
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Server interrupted by user (Ctrl+C)")
        click.secho("Server stopped.", fg="yellow")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        click.secho(f"Error: {str(e)}", fg="red", err=True)
        sys.exit(1)


def _display_startup_info(host: str, port: int, volumes_dir: Path) -> None:
    click.echo()
    click.secho("=" * 60, fg="cyan")
    click.secho("  airdaemon", fg="cyan", bold=True)
    click.secho("=" * 60, fg="cyan")
    click.echo()
    click.echo(f"  URL:      http://{host}:{port}")
    click.echo(f"  Volumes:  {volumes_dir}")
    click.echo()
    click.secho("  Press Ctrl+C to stop", fg="yellow")
    click.secho("=" * 60, fg="cyan")
    click.echo()
