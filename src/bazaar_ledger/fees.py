"""Platform fee and refund calculation.

Both are pure functions of configuration and quantity:

  purchase of 2 units at 100 each, fee rate 3%:
    total_price = 200, fee = 200 * 3 // 100 = 6, buyer is charged 206

  refund of 2 units, current unit cost 150, refund rate 85%:
    refund = 2 * 150 * 85 // 100 = 255

Refunds are valued at the *current* global unit cost, not at the price the
buyer paid. Changing the unit cost between a purchase and its refund changes
the refund value.

All arithmetic is integer floor division; no rounding adjustment is applied.
"""

from __future__ import annotations

from dataclasses import dataclass

PERCENT_DENOMINATOR = 100


@dataclass(frozen=True)
class PurchaseQuote:
    """Price breakdown for a purchase."""

    quantity: int
    unit_cost: int
    total_price: int  # credited to the seller
    fee: int  # credited to the owner

    @property
    def total_charge(self) -> int:
        return self.total_price + self.fee

    def to_dict(self) -> dict[str, int]:
        return {
            "quantity": self.quantity,
            "unit_cost": self.unit_cost,
            "total_price": self.total_price,
            "fee": self.fee,
            "total_charge": self.total_charge,
        }


def calculate_platform_fee(total_price: int, fee_rate_percent: int) -> int:
    """Fee charged on top of ``total_price``."""
    return total_price * fee_rate_percent // PERCENT_DENOMINATOR


def calculate_refund(quantity: int, unit_cost: int, refund_rate_percent: int) -> int:
    """Tokens paid out for returning ``quantity`` units at ``unit_cost``."""
    return quantity * unit_cost * refund_rate_percent // PERCENT_DENOMINATOR


def quote_purchase(quantity: int, unit_cost: int, fee_rate_percent: int) -> PurchaseQuote:
    """Price ``quantity`` units of a listing priced at ``unit_cost``."""
    total_price = quantity * unit_cost
    return PurchaseQuote(
        quantity=quantity,
        unit_cost=unit_cost,
        total_price=total_price,
        fee=calculate_platform_fee(total_price, fee_rate_percent),
    )
