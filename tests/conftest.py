"""
Pytest configuration for bazaar-ledger tests.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
if str(package_src) not in sys.path:
    sys.path.insert(0, str(package_src))

from bazaar_ledger import LedgerConfig, MarketplaceLedger, load_settings  # noqa: E402

OWNER = "owner"
SELLER = "seller"
BUYER = "buyer"


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; reset between tests."""
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


@pytest.fixture
def config():
    """Configuration used across the scenario tests."""
    return LedgerConfig(
        unit_cost=150,
        fee_rate_percent=3,
        refund_rate_percent=85,
        global_service_limit=100,
        user_listing_limit=50,
    )


@pytest.fixture
def ledger(config):
    """Fresh ledger owned by OWNER."""
    return MarketplaceLedger(OWNER, config)


@pytest.fixture
def funded_ledger(ledger):
    """Seller holds 10 services, buyer holds 1000 tokens."""
    ledger.issue_services(OWNER, SELLER, 10)
    ledger.deposit_tokens(OWNER, BUYER, 1000)
    return ledger


@pytest.fixture
def listed_ledger(funded_ledger):
    """Seller has 5 units listed at 100."""
    funded_ledger.add_listing(SELLER, quantity=5, unit_cost=100)
    return funded_ledger
