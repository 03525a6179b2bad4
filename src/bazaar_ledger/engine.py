"""
Marketplace ledger engine.

Holds per-account service balances, token balances and listings, plus the
global service counter, and applies the marketplace's state transitions:

- Owner-only configuration (unit cost, fee rate, refund rate, limits)
- Listing services for sale and withdrawing them
- Purchasing listed services with a platform fee paid to the owner
- Refunding held services against the owner's token balance

Each operation is atomic: writes are staged in a ``_Transition`` and
committed in one step under the instance lock, after every precondition has
passed. A rejected operation raises a ``LedgerError`` subclass and leaves the
ledger exactly as it was.

Example usage:

    ledger = MarketplaceLedger("owner", LedgerConfig(unit_cost=150))
    ledger.issue_services("owner", "seller", 10)
    ledger.deposit_tokens("owner", "buyer", 1000)
    ledger.add_listing("seller", quantity=5, unit_cost=100)
    ledger.purchase_service("buyer", seller="seller", quantity=2)
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .config import (
    LedgerConfig,
    LedgerSettings,
    is_integer,
    load_settings,
    validate_limit,
    validate_rate,
    validate_unit_cost,
)
from .exceptions import (
    InsufficientFunds,
    InvalidCost,
    InvalidQuantity,
    LedgerError,
    LimitExceeded,
    RefundFailure,
    SelfTransaction,
    Unauthorized,
)
from .fees import PurchaseQuote, calculate_refund, quote_purchase
from .logging_config import caller_context
from .models import EventType, LedgerEvent, LedgerSnapshot, Listing

logger = logging.getLogger(__name__)


class _Transition:
    """
    Pending writes for a single operation.

    Reads go through the pending writes first, so an account that appears on
    both sides of a transfer (e.g. the owner buying a listing) sees its own
    earlier debit.
    """

    def __init__(self, ledger: "MarketplaceLedger"):
        self._ledger = ledger
        self.service_balances: Dict[str, int] = {}
        self.token_balances: Dict[str, int] = {}
        self.listings: Dict[str, Listing] = {}
        self.global_service_count = ledger._global_service_count

    def service_balance(self, account: str) -> int:
        if account in self.service_balances:
            return self.service_balances[account]
        return self._ledger._service_balances.get(account, 0)

    def token_balance(self, account: str) -> int:
        if account in self.token_balances:
            return self.token_balances[account]
        return self._ledger._token_balances.get(account, 0)

    def listing(self, account: str) -> Listing:
        if account in self.listings:
            return self.listings[account]
        return self._ledger._listings.get(account, Listing.empty())

    def credit_services(self, account: str, amount: int) -> None:
        self.service_balances[account] = self.service_balance(account) + amount

    def debit_services(self, account: str, amount: int) -> None:
        available = self.service_balance(account)
        if available < amount:
            raise InsufficientFunds(account, "service balance", amount, available)
        self.service_balances[account] = available - amount

    def credit_tokens(self, account: str, amount: int) -> None:
        self.token_balances[account] = self.token_balance(account) + amount

    def debit_tokens(self, account: str, amount: int) -> None:
        available = self.token_balance(account)
        if available < amount:
            raise InsufficientFunds(account, "token balance", amount, available)
        self.token_balances[account] = available - amount

    def set_listing(self, account: str, listing: Listing) -> None:
        self.listings[account] = listing

    def adjust_service_count(self, delta: int, limit: int) -> None:
        """
        Apply a signed delta to the global service counter.

        Increments past ``limit`` raise ``LimitExceeded`` and leave the staged
        counter untouched. Decrements larger than the counter clamp it at 0.
        """
        current = self.global_service_count
        if delta >= 0:
            if current + delta > limit:
                raise LimitExceeded(delta, current, limit)
            self.global_service_count = current + delta
            return

        decrement = -delta
        if decrement > current:
            logger.warning(
                "Global service counter clamped at 0: decrement=%d, counter=%d",
                decrement,
                current,
            )
            self.global_service_count = 0
        else:
            self.global_service_count = current - decrement


class MarketplaceLedger:
    """
    Service marketplace ledger.

    All mutating operations take the authenticated caller identity as their
    first argument; the ledger never infers it. Absent accounts read as zero
    balances and an empty listing.
    """

    def __init__(
        self,
        owner: str,
        config: Optional[LedgerConfig] = None,
        *,
        service_balances: Optional[Mapping[str, int]] = None,
        token_balances: Optional[Mapping[str, int]] = None,
    ):
        if not owner:
            raise ValueError("owner identity is required")

        self._owner = owner
        self._config = replace(config) if config is not None else LedgerConfig()

        self._service_balances: Dict[str, int] = self._genesis(service_balances)
        self._token_balances: Dict[str, int] = self._genesis(token_balances)
        self._listings: Dict[str, Listing] = {}
        self._global_service_count: int = 0

        self._events: List[LedgerEvent] = []
        self._last_event_hash: Optional[str] = None

        # One exclusive section per operation
        self._lock = threading.RLock()

        logger.info(
            "MarketplaceLedger initialized: owner=%s unit_cost=%d fee_rate=%d%% refund_rate=%d%%",
            owner,
            self._config.unit_cost,
            self._config.fee_rate_percent,
            self._config.refund_rate_percent,
        )

    @classmethod
    def from_settings(cls, settings: Optional[LedgerSettings] = None, **kwargs: Any) -> "MarketplaceLedger":
        """Build a ledger whose owner and configuration come from settings."""
        settings = settings or load_settings()
        return cls(settings.owner_id, LedgerConfig.from_settings(settings), **kwargs)

    @staticmethod
    def _genesis(balances: Optional[Mapping[str, int]]) -> Dict[str, int]:
        result: Dict[str, int] = {}
        for account, amount in (balances or {}).items():
            if not is_integer(amount) or amount < 0:
                raise InvalidQuantity(amount, "must be a non-negative integer")
            result[account] = amount
        return result

    # ==================== Internals ====================

    @contextmanager
    def _operation(self, caller: str, name: str) -> Iterator[None]:
        with self._lock, caller_context(caller):
            try:
                yield
            except LedgerError as e:
                logger.info("Rejected %s by %s: %s", name, caller, e.code)
                raise

    def _require_owner(self, caller: str, operation: str) -> None:
        if caller != self._owner:
            raise Unauthorized(caller, operation)

    def _record_event(self, event_type: EventType, actor: str, payload: Dict[str, Any]) -> LedgerEvent:
        event = LedgerEvent(
            event_type=event_type,
            actor=actor,
            sequence=len(self._events) + 1,
            payload=payload,
            previous_hash=self._last_event_hash,
        )
        event.entry_hash = event.compute_hash()
        self._last_event_hash = event.entry_hash
        self._events.append(event)
        return event.copy()

    def _commit(
        self,
        transition: _Transition,
        event_type: EventType,
        actor: str,
        payload: Dict[str, Any],
    ) -> LedgerEvent:
        self._service_balances.update(transition.service_balances)
        self._token_balances.update(transition.token_balances)
        for account, listing in transition.listings.items():
            if listing.is_empty:
                self._listings.pop(account, None)
            else:
                self._listings[account] = listing
        self._global_service_count = transition.global_service_count
        return self._record_event(event_type, actor, payload)

    def _update_config(
        self,
        caller: str,
        field_name: str,
        value: int,
        event_type: EventType,
    ) -> LedgerEvent:
        old_value = getattr(self._config, field_name)
        setattr(self._config, field_name, value)
        logger.info("Configuration updated: %s %d -> %d", field_name, old_value, value)
        return self._record_event(event_type, caller, {"old": old_value, "new": value})

    # ==================== Configuration ====================

    def set_unit_cost(self, caller: str, cost: int) -> LedgerEvent:
        """Set the global unit cost used to value refunds."""
        with self._operation(caller, "set_unit_cost"):
            self._require_owner(caller, "set_unit_cost")
            validate_unit_cost(cost)
            return self._update_config(caller, "unit_cost", cost, EventType.UNIT_COST_UPDATED)

    def set_fee_rate(self, caller: str, rate: int) -> LedgerEvent:
        with self._operation(caller, "set_fee_rate"):
            self._require_owner(caller, "set_fee_rate")
            validate_rate("fee_rate_percent", rate)
            return self._update_config(caller, "fee_rate_percent", rate, EventType.FEE_RATE_UPDATED)

    def set_refund_rate(self, caller: str, rate: int) -> LedgerEvent:
        with self._operation(caller, "set_refund_rate"):
            self._require_owner(caller, "set_refund_rate")
            validate_rate("refund_rate_percent", rate)
            return self._update_config(caller, "refund_rate_percent", rate, EventType.REFUND_RATE_UPDATED)

    def set_global_service_limit(self, caller: str, limit: int) -> LedgerEvent:
        """Set the global service cap; it may not drop below the current counter."""
        with self._operation(caller, "set_global_service_limit"):
            self._require_owner(caller, "set_global_service_limit")
            validate_limit("global_service_limit", limit, minimum=self._global_service_count)
            return self._update_config(caller, "global_service_limit", limit, EventType.GLOBAL_LIMIT_UPDATED)

    def set_user_listing_limit(self, caller: str, limit: int) -> LedgerEvent:
        # Stored and readable only; add_listing does not consult it.
        with self._operation(caller, "set_user_listing_limit"):
            self._require_owner(caller, "set_user_listing_limit")
            validate_limit("user_listing_limit", limit)
            return self._update_config(caller, "user_listing_limit", limit, EventType.USER_LIMIT_UPDATED)

    # ==================== Issuance ====================

    def issue_services(self, caller: str, account: str, quantity: int) -> LedgerEvent:
        """Credit newly created service units to ``account``."""
        with self._operation(caller, "issue_services"):
            self._require_owner(caller, "issue_services")
            if not is_integer(quantity) or quantity <= 0:
                raise InvalidQuantity(quantity)

            tx = _Transition(self)
            tx.credit_services(account, quantity)
            event = self._commit(tx, EventType.SERVICES_ISSUED, caller, {
                "account": account,
                "quantity": quantity,
            })
            logger.info("Services issued: account=%s quantity=%d", account, quantity)
            return event

    def deposit_tokens(self, caller: str, account: str, amount: int) -> LedgerEvent:
        """Credit newly created token units to ``account``."""
        with self._operation(caller, "deposit_tokens"):
            self._require_owner(caller, "deposit_tokens")
            if not is_integer(amount) or amount <= 0:
                raise InvalidQuantity(amount)

            tx = _Transition(self)
            tx.credit_tokens(account, amount)
            event = self._commit(tx, EventType.TOKENS_DEPOSITED, caller, {
                "account": account,
                "amount": amount,
            })
            logger.info("Tokens deposited: account=%s amount=%d", account, amount)
            return event

    # ==================== Listings ====================

    def add_listing(self, caller: str, quantity: int, unit_cost: int) -> LedgerEvent:
        """
        List ``quantity`` more units at ``unit_cost``.

        The caller's total listed quantity may not exceed their service
        balance. Listing reserves units logically without debiting them. The
        new unit cost replaces the price of units already listed.

        Raises:
            InvalidQuantity: quantity is not a positive integer
            InvalidCost: unit_cost is not a positive integer
            InsufficientFunds: service balance below the new listed total
            LimitExceeded: the global service cap would be exceeded
        """
        with self._operation(caller, "add_listing"):
            if not is_integer(quantity) or quantity <= 0:
                raise InvalidQuantity(quantity)
            if not is_integer(unit_cost) or unit_cost <= 0:
                raise InvalidCost(unit_cost)

            tx = _Transition(self)
            current = tx.listing(caller)
            new_total = current.quantity + quantity
            balance = tx.service_balance(caller)
            if balance < new_total:
                raise InsufficientFunds(caller, "service balance", new_total, balance)

            tx.adjust_service_count(quantity, self._config.global_service_limit)
            tx.set_listing(caller, Listing(new_total, unit_cost))

            event = self._commit(tx, EventType.LISTING_ADDED, caller, {
                "seller": caller,
                "quantity": quantity,
                "unit_cost": unit_cost,
                "listed": new_total,
            })
            logger.info(
                "Listing added: seller=%s quantity=%d unit_cost=%d listed=%d",
                caller,
                quantity,
                unit_cost,
                new_total,
            )
            return event

    def remove_listing(self, caller: str, quantity: int) -> LedgerEvent:
        """Withdraw ``quantity`` units from the caller's listing, keeping its price."""
        with self._operation(caller, "remove_listing"):
            if not is_integer(quantity) or quantity < 0:
                raise InvalidQuantity(quantity, "must be a non-negative integer")

            tx = _Transition(self)
            current = tx.listing(caller)
            if current.quantity < quantity:
                raise InsufficientFunds(caller, "listed quantity", quantity, current.quantity)

            tx.adjust_service_count(-quantity, self._config.global_service_limit)
            remaining = current.quantity - quantity
            tx.set_listing(caller, Listing(remaining, current.unit_cost))

            event = self._commit(tx, EventType.LISTING_REMOVED, caller, {
                "seller": caller,
                "quantity": quantity,
                "listed": remaining,
            })
            logger.info("Listing removed: seller=%s quantity=%d listed=%d", caller, quantity, remaining)
            return event

    # ==================== Trading ====================

    def purchase_service(self, caller: str, seller: str, quantity: int) -> LedgerEvent:
        """
        Buy ``quantity`` units from ``seller``'s listing.

        The buyer pays the listing price plus the platform fee. The seller
        receives the price, the owner receives the fee, and the units move
        from the seller's balance to the buyer's. The global service counter
        is left unchanged.

        Raises:
            InvalidQuantity: quantity is not a positive integer
            SelfTransaction: caller is the seller
            InsufficientFunds: listing, seller balance or buyer tokens too low
        """
        with self._operation(caller, "purchase_service"):
            if not is_integer(quantity) or quantity <= 0:
                raise InvalidQuantity(quantity)
            if caller == seller:
                raise SelfTransaction(caller)

            tx = _Transition(self)
            listing = tx.listing(seller)
            if listing.quantity < quantity:
                raise InsufficientFunds(seller, "listed quantity", quantity, listing.quantity)
            seller_services = tx.service_balance(seller)
            if seller_services < quantity:
                raise InsufficientFunds(seller, "service balance", quantity, seller_services)

            quote = quote_purchase(quantity, listing.unit_cost, self._config.fee_rate_percent)
            buyer_tokens = tx.token_balance(caller)
            if buyer_tokens < quote.total_charge:
                raise InsufficientFunds(caller, "token balance", quote.total_charge, buyer_tokens)

            tx.debit_services(seller, quantity)
            tx.set_listing(seller, Listing(listing.quantity - quantity, listing.unit_cost))
            tx.debit_tokens(caller, quote.total_charge)
            tx.credit_services(caller, quantity)
            tx.credit_tokens(seller, quote.total_price)
            tx.credit_tokens(self._owner, quote.fee)

            event = self._commit(tx, EventType.SERVICE_PURCHASED, caller, {
                "buyer": caller,
                "seller": seller,
                **quote.to_dict(),
            })
            logger.info(
                "Service purchased: buyer=%s seller=%s quantity=%d price=%d fee=%d",
                caller,
                seller,
                quantity,
                quote.total_price,
                quote.fee,
            )
            return event

    def request_refund(self, caller: str, quantity: int) -> LedgerEvent:
        """
        Return ``quantity`` held units to the owner for tokens.

        The refund is valued at the *current* global unit cost and refund
        rate, not the price originally paid, and is funded from the owner's
        token balance. Refunded units go to the owner's service balance.

        Raises:
            InvalidQuantity: quantity is not a positive integer
            InsufficientFunds: caller holds fewer than ``quantity`` units
            RefundFailure: owner's token balance cannot cover the refund
        """
        with self._operation(caller, "request_refund"):
            if not is_integer(quantity) or quantity <= 0:
                raise InvalidQuantity(quantity)

            tx = _Transition(self)
            held = tx.service_balance(caller)
            if held < quantity:
                raise InsufficientFunds(caller, "service balance", quantity, held)

            refund_value = calculate_refund(
                quantity, self._config.unit_cost, self._config.refund_rate_percent
            )
            owner_tokens = tx.token_balance(self._owner)
            if owner_tokens < refund_value:
                raise RefundFailure(self._owner, refund_value, owner_tokens)

            tx.debit_services(caller, quantity)
            tx.debit_tokens(self._owner, refund_value)
            tx.credit_tokens(caller, refund_value)
            tx.credit_services(self._owner, quantity)
            tx.adjust_service_count(-quantity, self._config.global_service_limit)

            event = self._commit(tx, EventType.REFUND_ISSUED, caller, {
                "account": caller,
                "quantity": quantity,
                "unit_cost": self._config.unit_cost,
                "refund_value": refund_value,
            })
            logger.info(
                "Refund issued: account=%s quantity=%d refund_value=%d",
                caller,
                quantity,
                refund_value,
            )
            return event

    # ==================== Read-only accessors ====================

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def unit_cost(self) -> int:
        return self._config.unit_cost

    @property
    def fee_rate(self) -> int:
        return self._config.fee_rate_percent

    @property
    def refund_rate(self) -> int:
        return self._config.refund_rate_percent

    @property
    def global_service_limit(self) -> int:
        return self._config.global_service_limit

    @property
    def user_listing_limit(self) -> int:
        return self._config.user_listing_limit

    @property
    def global_service_count(self) -> int:
        return self._global_service_count

    def service_balance(self, account: str) -> int:
        with self._lock:
            return self._service_balances.get(account, 0)

    def token_balance(self, account: str) -> int:
        with self._lock:
            return self._token_balances.get(account, 0)

    def listing(self, account: str) -> Listing:
        with self._lock:
            return self._listings.get(account, Listing.empty())

    def listed_total(self) -> int:
        """Sum of all listing quantities."""
        with self._lock:
            return sum(listing.quantity for listing in self._listings.values())

    def total_token_supply(self) -> int:
        with self._lock:
            return sum(self._token_balances.values())

    def quote_purchase(self, seller: str, quantity: int) -> PurchaseQuote:
        """Price ``quantity`` units of ``seller``'s listing at current rates."""
        with self._lock:
            listing = self._listings.get(seller, Listing.empty())
            return quote_purchase(quantity, listing.unit_cost, self._config.fee_rate_percent)

    def quote_refund(self, quantity: int) -> int:
        with self._lock:
            return calculate_refund(quantity, self._config.unit_cost, self._config.refund_rate_percent)

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                owner=self._owner,
                config=self._config.to_dict(),
                service_balances=dict(self._service_balances),
                token_balances=dict(self._token_balances),
                listings=dict(self._listings),
                global_service_count=self._global_service_count,
            )

    @property
    def events(self) -> Tuple[LedgerEvent, ...]:
        """Copies of the journal entries, oldest first."""
        with self._lock:
            return tuple(event.copy() for event in self._events)

    def verify_event_chain(self) -> bool:
        """Check every event's hash and its link to the previous event."""
        with self._lock:
            previous: Optional[str] = None
            for event in self._events:
                if event.previous_hash != previous or event.compute_hash() != event.entry_hash:
                    logger.warning("Event chain broken at sequence %d", event.sequence)
                    return False
                previous = event.entry_hash
            return True
