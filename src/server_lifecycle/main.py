"""Command-line entry point for the server lifecycle controller.

Starts an application server, waits for it to become operational and stops
it again when the process exits or the user interrupts.
"""

import asyncio
import sys
import traceback
from typing import Optional, Tuple

import click
import structlog

from . import __version__
from .config.exceptions import ConfigurationError
from .config.logging import configure_logging, sanitize_log_data
from .config.settings import settings
from .management import (
    HttpConnectionInfo,
    LifecycleError,
    ServerController,
    ServerInfo,
)

logger = structlog.get_logger()


def handle_cli_error(error: Exception, ctx: Optional[click.Context] = None):
    """Global CLI error handler."""
    if isinstance(error, LifecycleError):
        click.echo(f"Error: {error.message}", err=True)
        if error.suggestion:
            click.echo(f"Suggestion: {error.suggestion}", err=True)
    elif isinstance(error, ConfigurationError):
        click.echo(f"Error: {error}", err=True)
    else:
        verbose = bool(ctx and ctx.obj and ctx.obj.get("verbose"))
        click.echo(f"Unexpected error: {error}", err=True)
        if verbose:
            click.echo(traceback.format_exc(), err=True)
        else:
            click.echo("Run with --verbose for detailed error information", err=True)

    sys.exit(1)


def connection_options(command):
    """Options describing the management connection."""
    options = [
        click.option("--host", default="127.0.0.1", show_default=True,
                     help="Management interface host"),
        click.option("--port", default=9990, show_default=True, type=int,
                     help="Management interface port"),
        click.option("--protocol", default="http", show_default=True,
                     type=click.Choice(["http", "https"]),
                     help="Management interface protocol"),
        click.option("--username", help="Management user"),
        click.option("--password", help="Management user password"),
    ]
    for option in reversed(options):
        command = option(command)
    return command


@click.group()
@click.version_option(version=__version__, prog_name="server-lifecycle")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log warnings and errors")
@click.option("--json-logs/--console-logs", default=None,
              help="Log format (default: from LOG_JSON_FORMAT)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, json_logs: Optional[bool]):
    """Start, supervise and stop an application server process."""
    if verbose and quiet:
        raise click.BadParameter("Cannot use both --verbose and --quiet options")

    level = settings.logging.level
    if verbose:
        level = "DEBUG"
    elif quiet:
        level = "WARNING"

    configure_logging(
        level=level,
        log_file=settings.get_log_file_path(),
        json_logs=settings.logging.json_format if json_logs is None else json_logs,
    )

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option("--server-home", required=True,
              type=click.Path(exists=True, file_okay=False),
              help="Application server installation directory")
@click.option("--java-home", help="Java installation used to run the server")
@click.option("--modules-dir",
              help="';' separated module directories (default: SERVER_HOME/modules)")
@click.option("--jvm-arg", "jvm_args", multiple=True, help="Extra JVM argument (repeatable)")
@click.option("--server-config", help="Server configuration file, e.g. standalone-full.xml")
@click.option("--properties-file", help="Properties file loaded at startup")
@click.option("--startup-timeout", default=60.0, show_default=True, type=float,
              help="Seconds to wait for the server to start")
@connection_options
@click.pass_context
def run(
    ctx: click.Context,
    server_home: str,
    java_home: Optional[str],
    modules_dir: Optional[str],
    jvm_args: Tuple[str, ...],
    server_config: Optional[str],
    properties_file: Optional[str],
    startup_timeout: float,
    host: str,
    port: int,
    protocol: str,
    username: Optional[str],
    password: Optional[str],
):
    """Start the server and supervise it until it exits or is interrupted.

    \b
    Examples:
      server-lifecycle run --server-home /opt/wildfly
      server-lifecycle run --server-home /opt/wildfly --jvm-arg=-Xmx1g \\
          --server-config standalone-full.xml --startup-timeout 120
    """
    try:
        connection = HttpConnectionInfo(host, port, protocol, username, password)
        server_info = ServerInfo.of(
            connection,
            java_home,
            server_home,
            modules_dir,
            jvm_args or None,
            server_config,
            properties_file,
            startup_timeout,
        )
        logger.debug(
            "Resolved server configuration",
            server=server_info.to_dict(),
            connection=sanitize_log_data(connection.to_dict()),
        )

        exit_code = asyncio.run(_run_command(server_info))
    except KeyboardInterrupt:
        click.echo("Interrupted", err=True)
        sys.exit(130)
    except Exception as error:
        handle_cli_error(error, ctx)
    else:
        sys.exit(exit_code)


@cli.command()
@connection_options
@click.pass_context
def status(
    ctx: click.Context,
    host: str,
    port: int,
    protocol: str,
    username: Optional[str],
    password: Optional[str],
):
    """Print the state reported by the server's management interface."""
    connection = HttpConnectionInfo(host, port, protocol, username, password)
    try:
        server_state = asyncio.run(connection.read_server_state())
    except LifecycleError as error:
        handle_cli_error(error, ctx)
    else:
        click.echo(server_state)


def exit_status(exit_code: Optional[int]) -> int:
    """Map a process exit code to a shell exit status.

    A process ended by signal N reports ``-N``, which the shell spells
    ``128 + N``.
    """
    if exit_code is None:
        return 0
    if exit_code < 0:
        return 128 - exit_code
    return exit_code


async def _run_command(
    server_info: ServerInfo, controller: Optional[ServerController] = None
) -> int:
    """Run the server until it exits; returns the shell exit status."""
    controller = controller or ServerController(settings.lifecycle)

    start_outcome = await controller.start_and_wait(server_info)
    if not start_outcome.succeeded:
        click.echo(f"Server failed to start ({start_outcome.cause.value})", err=True)
        start_outcome.raise_for_failure()

    click.echo(f"Server started (pid {controller.handle.pid})", err=True)

    try:
        await controller.wait_for_exit()
    finally:
        stop_outcome = await asyncio.shield(controller.stop())
        click.echo(f"Server {stop_outcome.state.value}", err=True)
        # A failed stop is reported even when supervision was interrupted
        stop_outcome.raise_for_failure()

    return exit_status(stop_outcome.exit_code)


if __name__ == "__main__":
    cli()
