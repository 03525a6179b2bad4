"""Ledger value types: listings, events and state snapshots."""
from __future__ import annotations

import hashlib
import json
import uuid
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class Listing:
    """A seller's advertised quantity and unit price."""

    quantity: int = 0
    unit_cost: int = 0

    @classmethod
    def empty(cls) -> "Listing":
        return cls(0, 0)

    @property
    def is_empty(self) -> bool:
        return self.quantity == 0

    def to_dict(self) -> Dict[str, int]:
        return {"quantity": self.quantity, "unit_cost": self.unit_cost}


class EventType(str, Enum):
    """Kind of committed state transition."""
    UNIT_COST_UPDATED = "unit_cost_updated"
    FEE_RATE_UPDATED = "fee_rate_updated"
    REFUND_RATE_UPDATED = "refund_rate_updated"
    GLOBAL_LIMIT_UPDATED = "global_limit_updated"
    USER_LIMIT_UPDATED = "user_limit_updated"
    SERVICES_ISSUED = "services_issued"
    TOKENS_DEPOSITED = "tokens_deposited"
    LISTING_ADDED = "listing_added"
    LISTING_REMOVED = "listing_removed"
    SERVICE_PURCHASED = "service_purchased"
    REFUND_ISSUED = "refund_issued"


@dataclass
class LedgerEvent:
    """
    Journal entry for one committed operation.

    Entries are chained: each carries the hash of its predecessor, so any
    edit to an earlier entry breaks every later ``entry_hash``.
    """
    event_type: EventType
    actor: str
    sequence: int
    payload: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:16]}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Hash chain for tamper evidence
    previous_hash: Optional[str] = None
    entry_hash: Optional[str] = None

    def compute_hash(self) -> str:
        """Compute hash including previous entry for chain."""
        data = json.dumps({
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "actor": self.actor,
            "sequence": self.sequence,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
            "previous_hash": self.previous_hash or "",
        }, sort_keys=True)
        return hashlib.sha256(data.encode()).hexdigest()

    def copy(self) -> "LedgerEvent":
        """Detached copy; edits to it never reach the ledger's journal."""
        return replace(self, payload=deepcopy(self.payload))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "actor": self.actor,
            "sequence": self.sequence,
            "payload": dict(self.payload),
            "created_at": self.created_at.isoformat(),
            "previous_hash": self.previous_hash,
            "entry_hash": self.entry_hash,
        }


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time copy of every piece of observable ledger state."""

    owner: str
    config: Mapping[str, int]
    service_balances: Mapping[str, int]
    token_balances: Mapping[str, int]
    listings: Mapping[str, Listing]
    global_service_count: int

    @property
    def listed_total(self) -> int:
        return sum(listing.quantity for listing in self.listings.values())

    @property
    def total_token_supply(self) -> int:
        return sum(self.token_balances.values())

    @property
    def total_service_supply(self) -> int:
        return sum(self.service_balances.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "config": dict(self.config),
            "service_balances": dict(self.service_balances),
            "token_balances": dict(self.token_balances),
            "listings": {k: v.to_dict() for k, v in self.listings.items()},
            "global_service_count": self.global_service_count,
        }
