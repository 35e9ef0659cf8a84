"""Group membership cache and the add-member operation."""

import logging
from enum import Enum
from typing import Iterable

from exchange_client import ExchangeClient, ExchangeMember
from run_log import RunLogger

logger = logging.getLogger(__name__)


class AddOutcome(Enum):
    """Result of processing one identifier."""

    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    SIMULATED = "simulated"
    ADDED = "added"
    FAILED = "failed"


def member_keys(member: ExchangeMember) -> set[str]:
    """Lowercased addresses a member is known by (primary and legacy)."""
    keys = set()
    for address in (member.primary_smtp, member.legacy_address):
        address = (address or "").strip()
        if address:
            keys.add(address.lower())
    return keys


def load_members(client: ExchangeClient, log: RunLogger, group: str) -> set[str]:
    """Build the set of current member addresses for ``group``.

    Listing errors are not caught here: without the current members,
    duplicates cannot be skipped.
    """
    members = set()
    for member in client.get_members(group):
        members |= member_keys(member)

    log.info(f"Loaded {len(members)} member address(es) for {group}")
    return members


def add_user(
    client: ExchangeClient,
    log: RunLogger,
    identifier: str,
    group: str,
    members: set,
    simulate: bool = False,
) -> AddOutcome:
    """Add one user to the group unless already a member.

    ``members`` is updated after a successful add so a repeat later in the
    same batch is skipped. Simulate mode never touches it.
    """
    identifier = (identifier or "").strip()
    if not identifier:
        return AddOutcome.IGNORED

    key = identifier.lower()
    if key in members:
        log.warn(f"{identifier} is already a member of {group}, skipping")
        return AddOutcome.DUPLICATE

    if simulate:
        log.simulate(f"Would add {identifier} to {group}")
        return AddOutcome.SIMULATED

    try:
        client.add_member(group, identifier)
    except Exception as e:
        log.error(f"Failed to add {identifier} to {group}: {e}")
        return AddOutcome.FAILED

    members.add(key)
    log.info(f"Added {identifier} to {group}")
    return AddOutcome.ADDED


def add_users(
    client: ExchangeClient,
    log: RunLogger,
    identifiers: Iterable[str],
    group: str,
    members: set,
    simulate: bool = False,
) -> dict:
    """Add identifiers in order; returns them grouped by outcome value."""
    results = {outcome.value: [] for outcome in AddOutcome}

    for identifier in identifiers:
        outcome = add_user(client, log, identifier, group, members, simulate)
        results[outcome.value].append(identifier)

    logger.debug(f"Batch results: {results}")
    return results


def summarize(results: dict) -> str:
    """One-line summary of :func:`add_users` results."""
    parts = [
        f"{len(results[outcome.value])} {outcome.value}"
        for outcome in AddOutcome
        if outcome is not AddOutcome.IGNORED and results.get(outcome.value)
    ]
    return "Summary: " + (", ".join(parts) if parts else "nothing to do")
