"""CLI command: ltfw run — start the reconciliation service in the foreground."""

from __future__ import annotations

import signal
import sys

import click
from rich.console import Console
from rich.table import Table

from ltfw.config import LtfwConfig, load_config, resolve_config_path
from ltfw.daemon.service import FirewallService
from ltfw.errors import ConfigError, FirewallNotReadyError

console = Console(stderr=True)


@click.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Watch listening sockets and block the ones not allowed."""
    quiet = ctx.obj.get("quiet", False)
    config_path = resolve_config_path(ctx.obj.get("config_path"))

    try:
        config = load_config(config_path)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    service = FirewallService(config)
    try:
        service.start()
    except FirewallNotReadyError as exc:
        console.print(f"[red]{exc}, exiting[/red]")
        sys.exit(1)

    if not quiet:
        _print_banner(config, str(config_path))

    def _signal_handler(signum: int, frame: object) -> None:
        if not quiet:
            console.print("\n[dim]Stopping...[/dim]")
        service.stop()

    previous = {
        sig: signal.signal(sig, _signal_handler)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        service.wait()
    except KeyboardInterrupt:
        service.stop()
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    if not quiet:
        console.print("[bold]Light Touch Firewall[/bold] stopped")


def _print_banner(config: LtfwConfig, config_path: str) -> None:
    console.print(
        f"[bold]Light Touch Firewall[/bold] started, checking every "
        f"[cyan]{config.every}[/cyan] seconds..."
    )
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()

    table.add_row("Config", config_path)
    table.add_row("Verdict", config.drop_or_reject.target)
    table.add_row("Chain", f"{config.table}/{config.chain}")
    table.add_row("Close IPs", ", ".join(sorted(config.close_ips)) or "-")
    table.add_row("Protected ports", ", ".join(sorted(config.protected_ports)) or "-")
    console.print(table)
