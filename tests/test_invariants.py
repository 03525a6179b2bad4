"""Tests for bazaar_ledger.invariants."""
from __future__ import annotations

import pytest

from bazaar_ledger import (
    InvariantViolation,
    LedgerConfig,
    LedgerSnapshot,
    Listing,
    MarketplaceLedger,
    assert_invariants,
    find_violations,
    listing_accounting_matches,
)

OWNER = "owner"


def make_snapshot(**overrides) -> LedgerSnapshot:
    values = {
        "owner": OWNER,
        "config": LedgerConfig(global_service_limit=10).to_dict(),
        "service_balances": {"seller": 5},
        "token_balances": {"buyer": 100},
        "listings": {"seller": Listing(3, 20)},
        "global_service_count": 3,
    }
    values.update(overrides)
    return LedgerSnapshot(**values)


class TestFindViolations:
    """Tests for find_violations."""

    def test_consistent_snapshot(self):
        assert find_violations(make_snapshot()) == []

    def test_negative_balances(self):
        snapshot = make_snapshot(
            service_balances={"seller": -1},
            token_balances={"buyer": -2},
        )

        violations = find_violations(snapshot)

        assert len(violations) == 2
        assert any("service balance" in v for v in violations)
        assert any("token balance" in v for v in violations)

    def test_counter_over_limit(self):
        snapshot = make_snapshot(global_service_count=11)

        assert find_violations(snapshot) == ["global service count 11 exceeds limit 10"]

    def test_negative_counter(self):
        assert "negative global service count: -1" in find_violations(
            make_snapshot(global_service_count=-1)
        )

    def test_bad_listing(self):
        snapshot = make_snapshot(listings={"seller": Listing(-1, 0), "other": Listing(2, 0)})

        violations = find_violations(snapshot)

        assert any("negative listing quantity" in v for v in violations)
        assert any("non-positive listing cost for other" in v for v in violations)

    def test_non_integer_state(self):
        snapshot = make_snapshot(
            service_balances={"seller": 2.5},
            token_balances={"buyer": "100"},
            listings={"seller": Listing(2.5, 20)},
            global_service_count=2.5,
        )

        violations = find_violations(snapshot)

        assert "non-integer service balance for seller: 2.5" in violations
        assert "non-integer token balance for buyer: '100'" in violations
        assert "non-integer listing quantity for seller: 2.5" in violations
        assert "non-integer global service count: 2.5" in violations

    def test_bool_counter_flagged(self):
        assert find_violations(make_snapshot(global_service_count=True)) == [
            "non-integer global service count: True"
        ]

    def test_bad_config(self):
        config = {**LedgerConfig().to_dict(), "unit_cost": 0, "fee_rate_percent": 200}

        violations = find_violations(make_snapshot(config=config))

        assert any("unit cost" in v for v in violations)
        assert any("fee_rate_percent" in v for v in violations)


class TestAssertInvariants:
    """Tests for assert_invariants."""

    def test_accepts_ledger(self):
        ledger = MarketplaceLedger(OWNER)
        ledger.issue_services(OWNER, "seller", 3)
        ledger.add_listing("seller", quantity=3, unit_cost=10)

        assert_invariants(ledger)

    def test_raises_on_violation(self):
        with pytest.raises(InvariantViolation) as exc_info:
            assert_invariants(make_snapshot(global_service_count=50))

        assert exc_info.value.violations == ["global service count 50 exceeds limit 10"]


class TestListingAccounting:
    """Tests for listing_accounting_matches."""

    def test_matches_after_add_and_remove(self):
        ledger = MarketplaceLedger(OWNER)
        ledger.issue_services(OWNER, "a", 10)
        ledger.issue_services(OWNER, "b", 10)
        ledger.add_listing("a", quantity=4, unit_cost=10)
        ledger.add_listing("b", quantity=6, unit_cost=12)
        ledger.remove_listing("a", 1)

        snapshot = ledger.snapshot()
        assert snapshot.global_service_count == 9
        assert listing_accounting_matches(snapshot)

    def test_purchase_leaves_counter_ahead_of_listings(self):
        ledger = MarketplaceLedger(OWNER)
        ledger.issue_services(OWNER, "seller", 5)
        ledger.deposit_tokens(OWNER, "buyer", 1000)
        ledger.add_listing("seller", quantity=5, unit_cost=10)
        ledger.purchase_service("buyer", seller="seller", quantity=2)

        snapshot = ledger.snapshot()
        assert snapshot.global_service_count == 5
        assert snapshot.listed_total == 3
        assert not listing_accounting_matches(snapshot)
        assert find_violations(snapshot) == []
