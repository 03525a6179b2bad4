"""
Bazaar Ledger - state-transition engine for a peer-to-peer service marketplace.

Accounts list service units for sale, other accounts buy them paying a
platform fee to the owner, and holders can later refund units against the
owner's token balance.

Example usage:

    from bazaar_ledger import MarketplaceLedger, LedgerConfig

    ledger = MarketplaceLedger("owner", LedgerConfig(unit_cost=150, fee_rate_percent=3))
    ledger.issue_services("owner", "seller", 10)
    ledger.deposit_tokens("owner", "buyer", 1000)
    ledger.add_listing("seller", quantity=5, unit_cost=100)
    ledger.purchase_service("buyer", seller="seller", quantity=2)

    ledger.token_balance("buyer")   # 794
    ledger.listing("seller")        # Listing(quantity=3, unit_cost=100)
"""
from .config import LedgerConfig, LedgerSettings, load_settings

from .exceptions import (
    LedgerError,
    Unauthorized,
    InvalidCost,
    InvalidQuantity,
    InvalidRate,
    InvalidLimit,
    InsufficientFunds,
    SelfTransaction,
    LimitExceeded,
    RefundFailure,
    InvariantViolation,
)

from .fees import PurchaseQuote, calculate_platform_fee, calculate_refund, quote_purchase

from .models import EventType, LedgerEvent, LedgerSnapshot, Listing

from .engine import MarketplaceLedger

from .invariants import assert_invariants, find_violations, listing_accounting_matches

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "LedgerConfig",
    "LedgerSettings",
    "load_settings",
    # Exceptions
    "LedgerError",
    "Unauthorized",
    "InvalidCost",
    "InvalidQuantity",
    "InvalidRate",
    "InvalidLimit",
    "InsufficientFunds",
    "SelfTransaction",
    "LimitExceeded",
    "RefundFailure",
    "InvariantViolation",
    # Fees
    "PurchaseQuote",
    "calculate_platform_fee",
    "calculate_refund",
    "quote_purchase",
    # Models
    "EventType",
    "LedgerEvent",
    "LedgerSnapshot",
    "Listing",
    # Engine
    "MarketplaceLedger",
    # Invariants
    "assert_invariants",
    "find_violations",
    "listing_accounting_matches",
]
