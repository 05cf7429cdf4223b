"""CLI interface for manofwar.

Command-line entry point for the media server.
"""

import logging
import sys
from pathlib import Path

import click

from manofwar.config import (
    HOST_ENV,
    MEDIA_DIR_ENV,
    PORT_ENV,
    PREFIX_ENV,
    TIMEOUT_ENV,
    CliSettings,
    Config,
)


@click.group()
def cli() -> None:
    """manofwar - serve a media directory over HTTP."""


@cli.command()
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help=f"Port to listen on (default: 8080, env: {PORT_ENV})",
)
@click.option(
    "--media-dir",
    "--mediadir",
    "-m",
    "media_dir",
    type=click.Path(path_type=Path),
    default=None,
    help=f"Directory containing media files (default: ./media, env: {MEDIA_DIR_ENV})",
)
@click.option(
    "--host",
    default=None,
    help=f"Host to bind to (default: 0.0.0.0, env: {HOST_ENV})",
)
@click.option(
    "--prefix",
    default=None,
    help=f"URL prefix for media files (default: /media/, env: {PREFIX_ENV})",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help=f"Per-request timeout in seconds (default: none, env: {TIMEOUT_ENV})",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable debug logging",
)
def serve(
    port: int | None,
    media_dir: Path | None,
    host: str | None,
    prefix: str | None,
    timeout: float | None,
    verbose: bool,
) -> None:
    """Start the media server.

    Environment variables take precedence over the matching options.
    """
    from manofwar.server import run_server

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cli_settings = CliSettings(
        host=host,
        port=port,
        media_dir=media_dir,
        prefix=prefix,
        request_timeout=timeout,
    )
    try:
        config = Config.load(cli_settings)
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(f"Starting server on {config.server.host}:{config.server.port}")
    click.echo(f"Media directory: {config.media.root_dir}")
    click.echo(f"URL prefix: {config.media.prefix}")
    if config.media.request_timeout is not None:
        click.echo(f"Request timeout: {config.media.request_timeout}s")

    try:
        run_server(config)
    except OSError as e:
        click.echo(
            click.style(
                f"Error: cannot listen on {config.server.host}:{config.server.port}: {e}",
                fg="red",
            ),
            err=True,
        )
        sys.exit(1)


if __name__ == "__main__":
    cli()
