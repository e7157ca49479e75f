"""Command-line interface for the SOCKS proxy server.

This module provides the main command-line interface for the proxy server, handling:
- Command-line argument parsing
- Configuration file loading and overrides
- Logging setup
- Error reporting

The CLI is built using Typer. Every option can also be set through a
``SOCKS5_RELAY_*`` environment variable.

Example:
    # Run from command line:
    $ socks5-relay serve --port 1080
    $ curl -v --proxy 'socks5h://localhost:1080' example.com
"""

from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from socks5_relay import __version__
from socks5_relay.core.exceptions import ConfigError
from socks5_relay.core.proxy import load_config, run_server
from socks5_relay.core.utils.log_config import DEFAULT_LOG_FILE, configure_logging

console = Console()
app = typer.Typer(help="Minimal SOCKS5 proxy (no-auth CONNECT over TCP)")


def _show_version(value: bool) -> None:
    if value:
        console.print(f"[cyan]SOCKS5 Relay v{__version__}[/cyan]")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_show_version,
        is_eager=True,
        help="Show version information and exit",
    ),
):
    """Minimal SOCKS5 proxy."""


@app.command(name="serve")
def serve(
    host: str | None = typer.Option(None, "--host", envvar="SOCKS5_RELAY_HOST", help="Address to listen on"),
    port: int | None = typer.Option(None, "--port", "-p", envvar="SOCKS5_RELAY_PORT", help="Port to listen on"),
    buffer_size: int | None = typer.Option(
        None, "--buffer-size", envvar="SOCKS5_RELAY_BUFFER_SIZE", help="Relay chunk size in bytes"
    ),
    nameserver: list[str] | None = typer.Option(
        None, "--nameserver", "-n", help="Nameserver to use instead of the system resolver (repeatable)"
    ),
    config_file: Path | None = typer.Option(
        None, "--config", "-c", envvar="SOCKS5_RELAY_CONFIG", help="TOML file with a [socks5_relay] table"
    ),
    log_file: Path | None = typer.Option(None, "--log-file", envvar="SOCKS5_RELAY_LOG_FILE", help="Rotating log file"),
    debug: bool = typer.Option(
        default=False,
        help="Enable debug logging",
    ),
):
    """Start the SOCKS proxy server."""
    try:
        config = (
            load_config(config_file)
            .merged(
                host=host,
                port=port,
                buffer_size=buffer_size,
                nameservers=nameserver,
                log_file=log_file,
                log_level="DEBUG" if debug else None,
            )
            .validate()
        )
    except ConfigError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(2) from e

    if debug and config.log_file is None:
        config = config.merged(log_file=DEFAULT_LOG_FILE)
    configure_logging(config.log_level, config.log_file)

    logger.info("Starting SOCKS proxy server")
    try:
        run_server(config)
    except OSError as e:
        logger.error(f"Could not start server on {config.host}:{config.port}: {e}")
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1) from e


if __name__ == "__main__":
    app()
