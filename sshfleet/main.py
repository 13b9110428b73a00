"""
Main entry point for sshfleet.

This module provides the command-line interface: starting the tunnels for
an environment file, validating such a file and writing a sample one.
"""

import asyncio
import logging
import sys
from typing import Optional

import typer

from .application.orchestrator import run_tunnels
from .infrastructure.config.loader import ConfigLoader
from .infrastructure.logging.setup import setup_logging

cli = typer.Typer(
    name="sshfleet",
    help="Forward remote services from many SSH hosts to local ports"
)

logger = logging.getLogger(__name__)


@cli.command()
def start(
    ctx: typer.Context,
    config_file: Optional[str] = typer.Option(
        None, "--file", "-f", help="File containing environment hosts and endpoints. (required)"
    ),
    username: Optional[str] = typer.Option(
        None, "--user", "-u", help="SSH user name to use when connecting to the hosts. (required)"
    ),
    known_hosts: Optional[str] = typer.Option(
        None, "--known-hosts", help="Verify host keys against this known_hosts file"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level"
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Enable debug logging"
    )
) -> None:
    """Open SSH sessions and forward every configured endpoint."""

    if not config_file or not username:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    config_loader = ConfigLoader()
    try:
        config = config_loader.load_config(config_file)
    except (OSError, ValueError) as e:
        typer.echo(f"Failed to load config: {e}", err=True)
        raise typer.Exit(code=1)

    config.ssh.username = username
    if known_hosts:
        config.ssh.known_hosts_path = known_hosts
    if log_level:
        config.logging.level = log_level.upper()
    if debug:
        config.logging.level = "DEBUG"

    setup_logging(config.logging)

    try:
        asyncio.run(run_tunnels(config))
    except KeyboardInterrupt:
        logger.info("Interrupted, closing tunnels")


@cli.command()
def validate_config(
    config_file: str = typer.Argument(...,
                                      help="Configuration file to validate")
) -> None:
    """Validate a configuration file."""

    config_loader = ConfigLoader()

    try:
        config = config_loader.load_config(config_file)
    except (OSError, ValueError) as e:
        typer.echo(f"Configuration validation failed: {e}", err=True)
        sys.exit(1)

    typer.echo(f"Configuration file {config_file} is valid")
    typer.echo(f"Environment: {config.environment or '<unnamed>'}")
    for host in config.hosts:
        typer.echo(f"  {host.name} <{host.address}>")
        for endpoint in host.endpoints:
            typer.echo(f"    {endpoint.name}: {endpoint.local} -> {endpoint.remote}")
    typer.echo(f"{len(config.hosts)} host(s), {config.endpoint_count} endpoint(s)")


@cli.command()
def init_config(
    output: str = typer.Option(
        "sshfleet.json", "--output", "-o", help="Output configuration file"
    ),
    format: str = typer.Option(
        "json", "--format", help="Configuration format (json/yaml)"
    )
) -> None:
    """Write a sample configuration file."""

    config_loader = ConfigLoader()

    try:
        config_loader.save_config(config_loader.sample_config(), output, format)
    except ValueError as e:
        typer.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)

    typer.echo(f"Sample configuration saved to {output}")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
