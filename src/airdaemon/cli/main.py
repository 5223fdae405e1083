"""Entry point for the airdaemon command."""

from __future__ import annotations

import click

from airdaemon import __version__
from airdaemon.cli.commands.serve import serve


@click.group()
@click.version_option(__version__, prog_name="airdaemon")
def main() -> None:
    """airdaemon - control game-server containers on this host."""


main.add_command(serve)


if __name__ == "__main__":
    main()
