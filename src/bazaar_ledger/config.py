"""Configuration surface for the marketplace ledger.

``LedgerSettings`` is read from the environment (``BAZAAR_LEDGER_*``) or a
``.env`` file and supplies defaults. ``LedgerConfig`` is the per-instance
record the ledger owns and the owner mutates at runtime.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import InvalidCost, InvalidLimit, InvalidRate

MAX_RATE_PERCENT = 100


class LedgerSettings(BaseSettings):
    """Process-level defaults for new ledger instances."""

    model_config = SettingsConfigDict(
        env_prefix="BAZAAR_LEDGER_",
        env_file=".env",
        extra="ignore",
    )

    owner_id: str = "owner"

    # Pricing
    unit_cost: int = Field(default=100, gt=0)
    fee_rate_percent: int = Field(default=3, ge=0, le=MAX_RATE_PERCENT)
    refund_rate_percent: int = Field(default=85, ge=0, le=MAX_RATE_PERCENT)

    # Limits
    global_service_limit: int = Field(default=1_000_000, ge=0)
    user_listing_limit: int = Field(default=1_000, ge=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_json: bool = True

    @field_validator("owner_id")
    @classmethod
    def owner_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("owner_id must not be blank")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.upper()
        return value


@lru_cache
def load_settings(env_file: str | None = None) -> LedgerSettings:
    """Load LedgerSettings once per process."""
    env_path = Path(env_file) if env_file else None
    return LedgerSettings(_env_file=env_path)


def is_integer(value: Any) -> bool:
    """Whether ``value`` is an ``int`` proper; ``bool`` does not count."""
    return isinstance(value, int) and not isinstance(value, bool)


def validate_unit_cost(cost: int) -> None:
    if not is_integer(cost) or cost <= 0:
        raise InvalidCost(cost)


def validate_rate(name: str, rate: int) -> None:
    if not is_integer(rate) or rate < 0 or rate > MAX_RATE_PERCENT:
        raise InvalidRate(name, rate)


def validate_limit(name: str, limit: int, minimum: int = 0) -> None:
    if not is_integer(limit) or limit < minimum:
        raise InvalidLimit(name, limit, minimum)


@dataclass
class LedgerConfig:
    """Mutable configuration owned by one ledger instance."""

    unit_cost: int = 100
    fee_rate_percent: int = 3
    refund_rate_percent: int = 85
    global_service_limit: int = 1_000_000
    user_listing_limit: int = 1_000

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise the matching taxonomy error for the first out-of-range field."""
        validate_unit_cost(self.unit_cost)
        validate_rate("fee_rate_percent", self.fee_rate_percent)
        validate_rate("refund_rate_percent", self.refund_rate_percent)
        validate_limit("global_service_limit", self.global_service_limit)
        validate_limit("user_listing_limit", self.user_listing_limit)

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> "LedgerConfig":
        return cls(
            unit_cost=settings.unit_cost,
            fee_rate_percent=settings.fee_rate_percent,
            refund_rate_percent=settings.refund_rate_percent,
            global_service_limit=settings.global_service_limit,
            user_listing_limit=settings.user_listing_limit,
        )

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
