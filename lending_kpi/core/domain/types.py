"""Core shared data models.

This module defines the canonical Pydantic models consumed by the revenue
attribution engine: reserve state, balance and fee-rate snapshots, the
per-chain dataset supplied by the data provider, and the per-reserve
context handed to the estimator. Token identifiers are normalized here
and nowhere else.
"""

# pylint: disable=missing-class-docstring,missing-function-docstring
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from lending_kpi.core.domain.ray_math import BPS

# Reserve factor occupies bits 64..79 of the reserve configuration bitmap.
FEE_RATE_CONFIGURATION_SHIFT = 64
FEE_RATE_CONFIGURATION_MASK = 0xFFFF


def normalize_token_id(value: str) -> str:
    """Canonical form of a token/account identifier (case-insensitive)."""
    normalized = value.strip().lower()
    if not normalized:
        raise ValueError("token id must be non-empty")
    return normalized


def fee_rate_from_configuration(configuration: int) -> int:
    """Extract the fee rate (basis points) from a reserve configuration bitmap."""
    return (configuration >> FEE_RATE_CONFIGURATION_SHIFT) & FEE_RATE_CONFIGURATION_MASK


TokenId = Annotated[str, AfterValidator(normalize_token_id)]
FeeRate = Annotated[int, Field(ge=0, le=BPS)]
UsdPrice = Annotated[Decimal, Field(ge=0)]
RawAmount = Annotated[int, Field(ge=0)]

_FROZEN = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class BalanceSnapshot(BaseModel):
    """User's scaled yield-token balance right after a balance change."""

    timestamp: int = Field(..., ge=0)
    scaled_balance: int = Field(..., ge=0)
    liquidity_index: int = Field(..., ge=0)

    model_config = _FROZEN


class FeeRateSnapshot(BaseModel):
    """Fee rate (basis points) in force from ``timestamp`` onwards."""

    timestamp: int = Field(..., ge=0)
    fee_rate: FeeRate

    model_config = _FROZEN


# ---------------------------------------------------------------------------
# Reserve state and per-chain dataset
# ---------------------------------------------------------------------------


class ReserveState(BaseModel):
    """State of one reserve at a given block.

    Either ``fee_rate`` or the raw ``configuration`` bitmap may be given;
    the fee rate is derived from the bitmap when only the latter is present.
    """

    reserve_token_id: TokenId
    reserve_token_decimals: int = Field(..., ge=0, le=255)
    yield_token_id: TokenId
    liquidity_index: int = Field(..., ge=0)
    fee_rate: FeeRate | None = None
    configuration: int | None = Field(default=None, ge=0)

    model_config = _FROZEN

    @model_validator(mode="before")
    @classmethod
    def _derive_fee_rate(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if data.get("fee_rate") is None and data.get("configuration") is not None:
            d = dict(data)
            d["fee_rate"] = fee_rate_from_configuration(int(d["configuration"]))
            return d
        return data

    @model_validator(mode="after")
    def _require_fee_rate(self) -> ReserveState:
        if self.fee_rate is None:
            raise ValueError("either fee_rate or configuration is required")
        return self


class ChainData(BaseModel):
    """Already-fetched data for one chain and one user over one window.

    Keys:
    - start_reserves / end_reserves / fee_rate_history / usd_prices:
      reserve token id
    - start_balances / balance_history: yield token id

    end_reserves is expected to be a superset of every reserve touched
    during the window.
    """

    start_reserves: dict[TokenId, ReserveState] = Field(default_factory=dict)
    end_reserves: dict[TokenId, ReserveState] = Field(default_factory=dict)
    fee_rate_history: dict[TokenId, tuple[FeeRateSnapshot, ...]] = Field(default_factory=dict)
    start_balances: dict[TokenId, RawAmount] = Field(default_factory=dict)
    balance_history: dict[TokenId, tuple[BalanceSnapshot, ...]] = Field(default_factory=dict)
    usd_prices: dict[TokenId, UsdPrice] = Field(default_factory=dict)

    model_config = _FROZEN

    @model_validator(mode="after")
    def _validate_reserve_keys(self) -> ChainData:
        for label, reserves in (("start_reserves", self.start_reserves), ("end_reserves", self.end_reserves)):
            for key, reserve in reserves.items():
                if key != reserve.reserve_token_id:
                    raise ValueError(
                        f"{label} key {key} does not match reserve_token_id {reserve.reserve_token_id}"
                    )
        return self


# ---------------------------------------------------------------------------
# Engine-internal bundles
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReserveContext:
    """Everything the estimator needs for one reserve over one window."""

    reserve_token_id: str
    reserve_token_decimals: int
    yield_token_id: str

    start_timestamp: int
    end_timestamp: int

    start_liquidity_index: int
    end_liquidity_index: int
    start_fee_rate: int
    fee_rate_history: tuple[FeeRateSnapshot, ...]

    start_scaled_balance: int
    balance_history: tuple[BalanceSnapshot, ...]


@dataclass(frozen=True, slots=True)
class Revenue:
    """Protocol share of the user's earnings in one reserve, in raw token units."""

    reserve_token_id: str
    reserve_token_decimals: int
    raw_revenue: int


def usd_price_from_oracle(price: int, base_currency_unit: int) -> Decimal:
    """USD price from a raw oracle reading.

    A zero base unit means the oracle did not exist at the queried block;
    the price is then reported as 0.
    """
    if base_currency_unit <= 0 or price <= 0:
        return Decimal(0)
    return Decimal(price) / Decimal(base_currency_unit)
