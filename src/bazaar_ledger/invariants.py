"""Consistency checks over a ledger snapshot.

These are read-only and meant for tests, audits and host health checks;
operations never call them.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Union

from .config import MAX_RATE_PERCENT, is_integer
from .exceptions import InvariantViolation
from .models import LedgerSnapshot

if TYPE_CHECKING:
    from .engine import MarketplaceLedger

logger = logging.getLogger(__name__)


def find_violations(snapshot: LedgerSnapshot) -> List[str]:
    """Return a description of every invariant the snapshot breaks."""
    violations: List[str] = []

    for kind, balances in (("service", snapshot.service_balances), ("token", snapshot.token_balances)):
        for account, balance in balances.items():
            if not is_integer(balance):
                violations.append(f"non-integer {kind} balance for {account}: {balance!r}")
            elif balance < 0:
                violations.append(f"negative {kind} balance for {account}: {balance}")
    for account, listing in snapshot.listings.items():
        if not is_integer(listing.quantity):
            violations.append(f"non-integer listing quantity for {account}: {listing.quantity!r}")
            continue
        if listing.quantity < 0:
            violations.append(f"negative listing quantity for {account}: {listing.quantity}")
        if listing.quantity > 0 and (not is_integer(listing.unit_cost) or listing.unit_cost <= 0):
            violations.append(f"non-positive listing cost for {account}: {listing.unit_cost!r}")

    count = snapshot.global_service_count
    limit = snapshot.config["global_service_limit"]
    if not is_integer(count):
        violations.append(f"non-integer global service count: {count!r}")
    elif count < 0:
        violations.append(f"negative global service count: {count}")
    elif count > limit:
        violations.append(f"global service count {count} exceeds limit {limit}")

    if snapshot.config["unit_cost"] <= 0:
        violations.append(f"non-positive unit cost: {snapshot.config['unit_cost']}")
    for name in ("fee_rate_percent", "refund_rate_percent"):
        rate = snapshot.config[name]
        if not 0 <= rate <= MAX_RATE_PERCENT:
            violations.append(f"{name} out of range: {rate}")

    return violations


def listing_accounting_matches(snapshot: LedgerSnapshot) -> bool:
    """
    Whether the global counter equals the sum of listing quantities.

    Holds across any sequence of add/remove listing operations. Purchases
    reduce a listing without touching the counter and refunds reduce the
    counter without touching a listing, so after either the two can differ.
    """
    return snapshot.global_service_count == snapshot.listed_total


def assert_invariants(source: Union[LedgerSnapshot, "MarketplaceLedger"]) -> None:
    """Raise ``InvariantViolation`` if the ledger state is inconsistent."""
    snapshot = source if isinstance(source, LedgerSnapshot) else source.snapshot()
    violations = find_violations(snapshot)
    if violations:
        logger.error("Ledger invariants violated: %s", violations)
        raise InvariantViolation(violations)
