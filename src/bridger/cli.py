"""Bridger CLI - Command line interface."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any

import click
import structlog
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from bridger.core.config import ClientConfig, apply_overrides, load_config, validate_config
from bridger.core.exceptions import BridgerError, ConfigError, format_error_for_user

console = Console()

BANNER = """
 ___  ___ ___ ___   ___ ___ ___
| _ )| _ \\_ _|   \\ / __| __| _ \\
| _ \\|   /| || |) | (_ | _||   /
|___/|_|_\\___|___/ \\___|___|_|_\\
   Your private server, reachable
"""


def configure_logging(level: str) -> None:
    """Configure structlog for console output at the given level."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
    )


@click.group(invoke_without_command=True)
@click.option(
    "--config", "-c",
    "config_file",
    type=click.Path(exists=True),
    help="Path to YAML or TOML config file (default: ./config.yaml if present)",
)
@click.option("--local-host", help="Base URL of the local server, e.g. http://localhost:8080")
@click.option("--cloud-websocket", help="WebSocket URL of the cloud broker")
@click.option("--local-id", help="Identity to register with (generated when empty)")
@click.option(
    "--reconnect-delay",
    type=float,
    default=None,
    help="Seconds to wait before reconnecting (default: 5)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log level (default: info, use --verbose for debug)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--metrics-port", type=int, default=None, help="Serve Prometheus metrics on this port")
@click.pass_context
def main(
    ctx: click.Context,
    config_file: str | None,
    local_host: str | None,
    cloud_websocket: str | None,
    local_id: str | None,
    reconnect_delay: float | None,
    log_level: str | None,
    verbose: bool,
    metrics_port: int | None,
):
    """Bridger - expose a private HTTP server through an outbound tunnel.

    Settings come from command line options, then environment variables
    (LOCAL_HOST, CLOUD_WEBSOCKET, LOCAL_ID, ...), then the config file.

    Examples:

        bridger --local-host http://localhost:8080 --cloud-websocket wss://broker.example.com/ws

        LOCAL_HOST=http://localhost:3000 CLOUD_WEBSOCKET=wss://broker.example.com/ws bridger

        bridger --config config.yaml

    Use 'bridger COMMAND --help' for more info on specific commands.
    """
    overrides: dict[str, Any] = {
        "local_host": local_host,
        "cloud_websocket": cloud_websocket,
        "local_id": local_id,
        "reconnect_delay": reconnect_delay,
        "log_level": "debug" if verbose else log_level,
    }
    try:
        cfg = apply_overrides(load_config(config_file), overrides)
    except (OSError, ValueError) as e:
        console.print(f"[red]Failed to load config: {escape(format_error_for_user(e))}[/red]")
        sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg

    if ctx.invoked_subcommand is None:
        try:
            validate_config(cfg)
        except ConfigError as e:
            console.print(Panel(f"[red]{e.message}[/red]", title=f"Error: {e.code}", border_style="red"))
            sys.exit(1)

        _run_with_signal_handling(cfg, metrics_port)


def _run_with_signal_handling(config: ClientConfig, metrics_port: int | None = None) -> None:
    """Run the supervisor on a fresh event loop until SIGINT or SIGTERM.

    The first signal cancels the client and lets sessions close their sockets.
    A second signal exits at once.
    """
    configure_logging(config.log_level)

    if metrics_port is not None:
        from bridger.observability.metrics import serve_metrics

        serve_metrics(metrics_port)
        console.print(f"Metrics: http://127.0.0.1:{metrics_port}/metrics", style="dim")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    client = loop.create_task(start_client(config))
    stopping = False

    def on_signal(signum: int, frame: object) -> None:
        nonlocal stopping
        if stopping:
            console.print("\n[red]Second signal, exiting now.[/red]")
            sys.exit(1)
        stopping = True
        console.print(f"\n[yellow]{signal.Signals(signum).name} received, closing tunnel...[/yellow]")
        client.cancel()

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)

    try:
        loop.run_until_complete(client)
    except asyncio.CancelledError:
        console.print("[green]Tunnel closed.[/green]")
    finally:
        leftover = asyncio.all_tasks(loop)
        for task in leftover:
            task.cancel()
        loop.run_until_complete(asyncio.gather(*leftover, return_exceptions=True))
        loop.close()


async def start_client(config: ClientConfig) -> None:
    """Resolve the identity once and keep the tunnel up until cancelled.

    Args:
        config: Validated client configuration
    """
    from bridger.client.supervisor import SessionSupervisor
    from bridger.core.identity import IdentityProvider

    identity = IdentityProvider(config.local_id)
    supervisor = SessionSupervisor(config, identity)

    console.print(BANNER, style="cyan")
    console.print(
        Panel(
            f"[bold]Broker:[/bold] [cyan]{config.cloud_websocket}[/cyan]\n"
            f"[bold]Forwarding to:[/bold] {config.local_host}\n"
            f"[bold]X-Private-Server-ID:[/bold] {identity.resolve()}",
            title="Bridger",
            border_style="green",
        )
    )
    console.print("\nPress Ctrl+C to stop.\n", style="dim")

    await supervisor.run()


@main.command()
def version():
    """Show version information."""
    from bridger import __version__

    console.print(BANNER, style="cyan")
    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.group()
def config():
    """View and validate configuration settings.

    Examples:

        bridger config show            # Show effective settings

        bridger config validate        # Check required settings
    """
    pass


@config.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def config_show(ctx: click.Context, json_output: bool):
    """Show the effective configuration.

    Values come from options, environment variables, the config file or defaults.
    """
    cfg: ClientConfig = ctx.obj["config"]
    display = cfg.to_display_dict()

    if json_output:
        import json
        click.echo(json.dumps(display, indent=2))
        return

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Env Variable", style="dim")

    for key, value in display.items():
        value_str = str(value) if value not in (None, "") else "[dim]unset[/dim]"
        table.add_row(key, value_str, key.upper())

    console.print(table)


@config.command("validate")
@click.pass_context
def config_validate(ctx: click.Context):
    """Validate the configuration.

    Checks that the local server and broker addresses are set.
    """
    cfg: ClientConfig = ctx.obj["config"]
    try:
        validate_config(cfg)
    except BridgerError as e:
        console.print(f"[red]ERROR - {e.message}[/red]")
        sys.exit(1)

    if not cfg.local_id.strip():
        console.print("[yellow]![/yellow] local_id is empty, a new identity is generated on every start")
    console.print("[green]OK - Configuration is valid[/green]")


if __name__ == "__main__":
    main()
