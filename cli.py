#!/usr/bin/env python3
"""Command-line interface for Security Group Member Adder."""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from config import Config
from exchange_client import ExchangeClient, ExchangeError
from menu import run as run_menu
from run_log import RunLogger

app = typer.Typer(
    name="sgadd",
    help="Add users to a mail-enabled security group in Exchange Online",
    no_args_is_help=True,
)
console = Console()


def setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S'
    )


# ============================================================================
# Add Members
# ============================================================================


@app.command("run")
def run(
    simulate: bool = typer.Option(False, "--simulate", "-s", help="Show what would be added without changing anything"),
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Group identity (skips the prompt)"),
    log_dir: Optional[Path] = typer.Option(None, "--log-dir", help="Directory for run logs"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show PowerShell debug output"),
):
    """Pick a group, then add a user, a list of users, or a CSV of users."""
    setup_logging(verbose)

    console.print(Panel("Security Group Member Adder", style="bold blue"))
    log = RunLogger(log_dir or Config.LOG_DIR, console=console)

    if not run_menu(ExchangeClient(), log, simulate=simulate, console=console, group=group):
        raise typer.Exit(1)


# ============================================================================
# Diagnostics
# ============================================================================


@app.command("check")
def check(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show PowerShell debug output"),
):
    """Verify configuration, the Exchange module, and the connection."""
    setup_logging(verbose)
    console.print(Panel("Security Group Member Adder - Connection Test", style="bold blue"))

    # Test 1: Configuration
    console.print("\n[bold]1. Checking configuration...[/bold]")
    try:
        Config.validate()
    except ValueError as e:
        console.print(f"   [red]✗[/red] Configuration error: {e}")
        raise typer.Exit(1)
    if Config.uses_certificate():
        console.print("   [green]✓[/green] Certificate sign-in configured")
        console.print(f"   [dim]App ID: {Config.EXCHANGE_APP_ID[:8]}...[/dim]")
        console.print(f"   [dim]Organization: {Config.EXCHANGE_ORGANIZATION}[/dim]")
    else:
        console.print("   [green]✓[/green] Interactive sign-in will be used")

    client = ExchangeClient()

    # Test 2: Module
    console.print(f"\n[bold]2. Checking {Config.EXCHANGE_MODULE} module...[/bold]")
    try:
        installed = client.check_module_installed()
    except ExchangeError as e:
        console.print(f"   [red]✗[/red] {e}")
        raise typer.Exit(1)
    if not installed:
        console.print(f"   [red]✗[/red] {Config.EXCHANGE_MODULE} is not installed")
        console.print(f"   [yellow]Run: Install-Module {Config.EXCHANGE_MODULE} -Scope CurrentUser[/yellow]")
        raise typer.Exit(1)
    console.print("   [green]✓[/green] Module installed")

    # Test 3: Connection
    console.print("\n[bold]3. Testing connection...[/bold]")
    try:
        client.import_module()
        client.connect()
        console.print("   [green]✓[/green] Connected to Exchange Online")
    except ExchangeError as e:
        console.print(f"   [red]✗[/red] Connection failed: {e}")
        raise typer.Exit(1)
    finally:
        try:
            if client.connected:
                client.disconnect()
        except ExchangeError as e:
            console.print(f"   [yellow]Disconnect failed: {e}[/yellow]")
        finally:
            client.close()

    console.print("\n[bold green]All checks passed.[/bold green]")
    console.print("\nYou can now add members:")
    console.print("  [cyan]sgadd run[/cyan]              - Add members to a group")
    console.print("  [cyan]sgadd run --simulate[/cyan]   - Preview without making changes")


if __name__ == "__main__":
    app()
