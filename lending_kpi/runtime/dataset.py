"""Replayable chain datasets.

A dataset file holds already-fetched per-chain data for one user and one
window, keyed by network id. It is the on-disk counterpart of what a live
data provider returns and is validated against
``core/schemas/chain_data.schema.json``.

Prices may be given either as decimal USD values or as raw oracle
readings ``{"price": ..., "base_currency_unit": ...}``. A reading with a
zero base unit comes from an oracle that is not deployed; the token is
then treated as having no price.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lending_kpi.core.domain.types import ChainData, normalize_token_id, usd_price_from_oracle
from lending_kpi.core.revenue.kpi_config import NetworkConfig

LOGGER = logging.getLogger(__name__)


def _normalize_price(value: Any) -> Any:
    """Oracle readings become decimal prices; an undeployed oracle yields None."""
    if isinstance(value, dict) and "base_currency_unit" in value:
        if int(value["base_currency_unit"]) <= 0:
            return None
        return usd_price_from_oracle(int(value["price"]), int(value["base_currency_unit"]))
    return value


class ChainDataset(BaseModel):
    """Per-network datasets for one user and one window."""

    user_address: str | None = Field(default=None, min_length=1)
    start_timestamp: int | None = Field(default=None, ge=0)
    end_timestamp_exclusive: int | None = Field(default=None, ge=0)
    chains: dict[str, ChainData] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("user_address")
    @classmethod
    def _normalize_user(cls, value: str | None) -> str | None:
        return None if value is None else normalize_token_id(value)

    @field_validator("chains", mode="before")
    @classmethod
    def _normalize_prices(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value

        chains: dict[str, Any] = {}
        for network_id, chain in value.items():
            if isinstance(chain, dict) and isinstance(chain.get("usd_prices"), dict):
                chain = dict(chain)
                prices: dict[str, Any] = {}
                for token, raw_price in chain["usd_prices"].items():
                    price = _normalize_price(raw_price)
                    if price is None:
                        LOGGER.warning(
                            "Oracle not deployed; price dropped",
                            extra={"network_id": network_id, "token": token},
                        )
                        continue
                    prices[token] = price
                chain["usd_prices"] = prices
            chains[network_id] = chain
        return chains

    @classmethod
    def from_json_obj(cls, obj: dict[str, Any]) -> ChainDataset:
        return cls.model_validate(obj)


def load_chain_dataset(path: str | Path) -> ChainDataset:
    """Load and validate a dataset file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)

    dataset = ChainDataset.from_json_obj(json.loads(path.read_text(encoding="utf-8")))

    LOGGER.info(
        "Dataset loaded",
        extra={"path": str(path), "chains": sorted(dataset.chains)},
    )
    return dataset


class InMemoryChainDataProvider:
    """ChainDataProvider serving pre-materialized datasets.

    Used to replay recorded data and as a fake in tests.
    """

    def __init__(
        self,
        chains: Mapping[str, ChainData],
        *,
        user_address: str | None = None,
    ) -> None:
        self._chains = dict(chains)
        self._user_address = None if user_address is None else normalize_token_id(user_address)
        self.requests: list[tuple[str, str, int, int]] = []

    @classmethod
    def from_dataset(cls, dataset: ChainDataset) -> InMemoryChainDataProvider:
        return cls(dataset.chains, user_address=dataset.user_address)

    def fetch_chain_data(
        self,
        *,
        network: NetworkConfig,
        user_address: str,
        start_timestamp: int,
        end_timestamp_exclusive: int,
    ) -> ChainData:
        user = normalize_token_id(user_address)
        if self._user_address is not None and user != self._user_address:
            raise LookupError(f"dataset was recorded for {self._user_address}, not {user}")

        if network.network_id not in self._chains:
            raise LookupError(f"no data for network {network.network_id}")

        self.requests.append((network.network_id, user, start_timestamp, end_timestamp_exclusive))
        return self._chains[network.network_id]
