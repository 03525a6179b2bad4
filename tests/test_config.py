"""Tests for bazaar_ledger.config."""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from bazaar_ledger import MarketplaceLedger
from bazaar_ledger.config import LedgerConfig, LedgerSettings, load_settings
from bazaar_ledger.exceptions import InvalidCost, InvalidLimit, InvalidRate


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate settings from the host environment and any .env file."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "OWNER_ID",
        "UNIT_COST",
        "FEE_RATE_PERCENT",
        "REFUND_RATE_PERCENT",
        "GLOBAL_SERVICE_LIMIT",
        "USER_LISTING_LIMIT",
        "LOG_LEVEL",
        "LOG_JSON",
    ):
        monkeypatch.delenv(f"BAZAAR_LEDGER_{name}", raising=False)
    return monkeypatch


class TestLedgerSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, clean_env):
        settings = LedgerSettings()

        assert settings.owner_id == "owner"
        assert settings.unit_cost == 100
        assert settings.fee_rate_percent == 3
        assert settings.refund_rate_percent == 85
        assert settings.log_level == "INFO"
        assert settings.log_json is True

    def test_env_override(self, clean_env):
        clean_env.setenv("BAZAAR_LEDGER_OWNER_ID", "treasury")
        clean_env.setenv("BAZAAR_LEDGER_UNIT_COST", "150")
        clean_env.setenv("BAZAAR_LEDGER_LOG_LEVEL", "debug")

        settings = LedgerSettings()

        assert settings.owner_id == "treasury"
        assert settings.unit_cost == 150
        assert settings.log_level == "DEBUG"

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "ledger.env"
        env_file.write_text("BAZAAR_LEDGER_FEE_RATE_PERCENT=7\n")

        settings = load_settings(str(env_file))

        assert settings.fee_rate_percent == 7

    @pytest.mark.parametrize(
        "name,value",
        [
            ("UNIT_COST", "0"),
            ("FEE_RATE_PERCENT", "101"),
            ("REFUND_RATE_PERCENT", "-1"),
            ("GLOBAL_SERVICE_LIMIT", "-5"),
            ("OWNER_ID", "   "),
        ],
    )
    def test_invalid_values_rejected(self, clean_env, name, value):
        clean_env.setenv(f"BAZAAR_LEDGER_{name}", value)

        with pytest.raises(ValidationError):
            LedgerSettings()

    def test_load_settings_cached(self, clean_env):
        assert load_settings() is load_settings()


class TestLedgerConfig:
    """Tests for the per-ledger configuration record."""

    def test_from_settings(self, clean_env):
        clean_env.setenv("BAZAAR_LEDGER_REFUND_RATE_PERCENT", "50")

        config = LedgerConfig.from_settings(LedgerSettings())

        assert config.refund_rate_percent == 50
        assert config.unit_cost == 100

    def test_to_dict(self):
        assert LedgerConfig().to_dict() == {
            "unit_cost": 100,
            "fee_rate_percent": 3,
            "refund_rate_percent": 85,
            "global_service_limit": 1_000_000,
            "user_listing_limit": 1_000,
        }

    @pytest.mark.parametrize(
        "kwargs,error",
        [
            ({"unit_cost": 0}, InvalidCost),
            ({"fee_rate_percent": 120}, InvalidRate),
            ({"refund_rate_percent": -3}, InvalidRate),
            ({"global_service_limit": -1}, InvalidLimit),
            ({"user_listing_limit": -1}, InvalidLimit),
            ({"unit_cost": 2.5}, InvalidCost),
            ({"fee_rate_percent": "3"}, InvalidRate),
            ({"refund_rate_percent": True}, InvalidRate),
            ({"global_service_limit": 10.0}, InvalidLimit),
            ({"user_listing_limit": None}, InvalidLimit),
        ],
    )
    def test_validation(self, kwargs, error):
        with pytest.raises(error):
            LedgerConfig(**kwargs)


class TestLedgerFromSettings:
    """Tests for MarketplaceLedger.from_settings."""

    def test_owner_and_config_from_settings(self, clean_env):
        clean_env.setenv("BAZAAR_LEDGER_OWNER_ID", "treasury")
        clean_env.setenv("BAZAAR_LEDGER_UNIT_COST", "150")

        ledger = MarketplaceLedger.from_settings()

        assert ledger.owner == "treasury"
        assert ledger.unit_cost == 150

    def test_explicit_settings_and_genesis(self, clean_env):
        settings = LedgerSettings(owner_id="root", fee_rate_percent=10)

        ledger = MarketplaceLedger.from_settings(settings, token_balances={"buyer": 5})

        assert ledger.owner == "root"
        assert ledger.fee_rate == 10
        assert ledger.token_balance("buyer") == 5
