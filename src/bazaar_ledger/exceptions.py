"""Failure taxonomy for the marketplace ledger.

Every rejected operation raises exactly one of these. The raised instance
carries a machine-readable ``code`` so a host can surface it as a tagged
failure without inspecting the message.

Usage:
    from bazaar_ledger.exceptions import LedgerError, InsufficientFunds

    try:
        ledger.purchase_service("buyer", seller="seller", quantity=2)
    except InsufficientFunds as e:
        return {"ok": False, **e.to_dict()}

A rejected operation never leaves partial writes behind.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""

    code: str = "LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class Unauthorized(LedgerError):
    """Caller is not the owner on an owner-only operation."""

    code = "UNAUTHORIZED"

    def __init__(self, caller: str, operation: str):
        super().__init__(
            f"{caller} is not allowed to {operation}",
            details={"caller": caller, "operation": operation},
        )


class InvalidCost(LedgerError):
    """Unit cost must be a positive integer."""

    code = "INVALID_COST"

    def __init__(self, cost: Any):
        super().__init__(
            f"Unit cost must be a positive integer, got {cost!r}",
            details={"cost": str(cost)},
        )


class InvalidQuantity(LedgerError):
    """Quantity outside the accepted range."""

    code = "INVALID_QUANTITY"

    def __init__(self, quantity: Any, reason: str = "must be a positive integer"):
        super().__init__(
            f"Quantity {reason}, got {quantity!r}",
            details={"quantity": str(quantity), "reason": reason},
        )


class InvalidRate(LedgerError):
    """Fee or refund rate outside 0..100 percent."""

    code = "INVALID_RATE"

    def __init__(self, name: str, rate: Any):
        super().__init__(
            f"{name} must be an integer between 0 and 100 percent, got {rate!r}",
            details={"rate_name": name, "rate": str(rate)},
        )


class InvalidLimit(LedgerError):
    """Limit below current usage, or negative."""

    code = "INVALID_LIMIT"

    def __init__(self, name: str, limit: Any, minimum: int):
        super().__init__(
            f"{name} must be an integer of at least {minimum}, got {limit!r}",
            details={"limit_name": name, "limit": str(limit), "minimum": minimum},
        )


class InsufficientFunds(LedgerError):
    """A balance, listing or quantity sufficiency check failed."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, account: str, resource: str, required: int, available: int):
        super().__init__(
            f"Insufficient {resource} for {account}: required {required}, available {available}",
            details={
                "account": account,
                "resource": resource,
                "required": required,
                "available": available,
            },
        )


class SelfTransaction(LedgerError):
    """Buyer and seller are the same account."""

    code = "SELF_TRANSACTION"

    def __init__(self, account: str):
        super().__init__(
            f"{account} cannot purchase from its own listing",
            details={"account": account},
        )


class LimitExceeded(LedgerError):
    """The global service cap would be exceeded."""

    code = "LIMIT_EXCEEDED"

    def __init__(self, requested: int, current: int, limit: int):
        super().__init__(
            f"Listing {requested} more services would exceed the global limit of {limit} "
            f"(current: {current})",
            details={"requested": requested, "current": current, "limit": limit},
        )


class RefundFailure(LedgerError):
    """The owner's token balance cannot fund the refund."""

    code = "REFUND_FAILURE"

    def __init__(self, owner: str, refund_value: int, available: int):
        super().__init__(
            f"Owner {owner} cannot fund refund of {refund_value}: available {available}",
            details={"owner": owner, "refund_value": refund_value, "available": available},
        )


class InvariantViolation(LedgerError):
    """Raised by the invariant checker, never by an operation."""

    code = "INVARIANT_VIOLATION"

    def __init__(self, violations: list[str]):
        super().__init__(
            f"{len(violations)} ledger invariant(s) violated: " + "; ".join(violations),
            details={"violations": list(violations)},
        )
        self.violations = list(violations)
