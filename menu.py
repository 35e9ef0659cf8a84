"""Interactive menu: pick a group, then add users one of four ways."""

from typing import Callable, Optional

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from csv_users import extract_users
from exchange_client import ExchangeClient, ExchangeError
from membership import add_user, add_users, load_members, summarize
from run_log import RunLogger
from session import SetupError, exchange_session

MENU_CHOICES = {
    "1": "Add a single user",
    "2": "Add multiple users (comma separated)",
    "3": "Add users from a CSV file",
    "4": "View current members",
}


def split_identifiers(text: str) -> list[str]:
    """Split comma separated input, trimming and dropping empty entries."""
    return [part.strip() for part in (text or "").split(",") if part.strip()]


def show_members(console: Console, members: set, group: str):
    """Print the cached member addresses."""
    table = Table(title=f"Members of {group} ({len(members)})")
    table.add_column("Address", style="green")
    for address in sorted(members):
        table.add_row(address)
    console.print(table)


def _prompt(console: Console) -> Callable:
    def ask(prompt: str, **kwargs) -> str:
        kwargs.setdefault("show_default", False)
        return Prompt.ask(prompt, console=console, **kwargs)
    return ask


def dispatch(
    choice: str,
    client: ExchangeClient,
    log: RunLogger,
    group: str,
    members: set,
    simulate: bool,
    console: Console,
    ask: Callable,
) -> Optional[dict]:
    """Run one menu choice. Returns batch results, or None if nothing ran."""
    choice = (choice or "").strip()

    if choice == "1":
        identifier = ask("Enter the user's email or UPN", default="")
        outcome = add_user(client, log, identifier, group, members, simulate)
        return {outcome.value: [identifier.strip()]}

    if choice == "2":
        text = ask("Enter emails or UPNs, separated by commas", default="")
        results = add_users(client, log, split_identifiers(text), group, members, simulate)
        log.info(summarize(results))
        return results

    if choice == "3":
        path = ask("Enter the path to the CSV file", default="").strip().strip('"')
        users = extract_users(path, log)
        if not users:
            log.warn("No users to process")
            return None
        results = add_users(client, log, users, group, members, simulate)
        log.info(summarize(results))
        return results

    if choice == "4":
        show_members(console, members, group)
        ask("Press Enter to continue", default="")
        return None

    log.error(f"Invalid choice: {choice!r}")
    return None


def run(
    client: ExchangeClient,
    log: RunLogger,
    simulate: bool = False,
    console: Optional[Console] = None,
    ask: Optional[Callable] = None,
    group: Optional[str] = None,
) -> bool:
    """One full run. Returns False if setup failed before any processing."""
    console = console or log.console
    ask = ask or _prompt(console)

    if simulate:
        log.simulate("Simulate mode: no changes will be made")
    log.info(f"Logging to {log.path}")

    try:
        with exchange_session(client, log):
            group = (group or ask("Enter the group identity (name or email)", default="")).strip()
            if not group:
                raise SetupError("No group identity provided")

            try:
                members = load_members(client, log, group)
            except ExchangeError as e:
                raise SetupError(f"Could not load members of {group}: {e}") from e

            console.print()
            for key, label in MENU_CHOICES.items():
                console.print(f"  [cyan]{key}[/cyan]. {label}")
            choice = ask("Choose an option", default="")

            dispatch(choice, client, log, group, members, simulate, console, ask)
    except SetupError as e:
        log.error(str(e))
        return False

    log.info("Done")
    return True
