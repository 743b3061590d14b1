"""KPI configuration model.

Describes which networks a user is queried on and how the aggregator
behaves around concurrency and partial failures.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class NetworkConfig(BaseModel):
    """One lending deployment on one chain.

    Addresses are informational for the engine; they are passed through to
    the data provider, which uses them to locate pool, configurator,
    oracle and subgraph.
    """

    network_id: str = Field(..., min_length=1)
    pool_address: str | None = Field(default=None, min_length=1)
    pool_configurator_address: str | None = Field(default=None, min_length=1)
    oracle_address: str | None = Field(default=None, min_length=1)
    subgraph_id: str | None = Field(default=None, min_length=1)

    model_config = ConfigDict(extra="forbid", frozen=True)


class KpiConfig(BaseModel):
    """Structured KPI configuration.

    JSON example:
        {
          "networks": [{"network_id": "ethereum-mainnet"}],
          "max_workers": 2,
          "allow_partial_results": false
        }
    """

    networks: list[NetworkConfig] = Field(..., min_length=1)

    # Upper bound for chains evaluated concurrently; 1 means sequential.
    max_workers: int = Field(default=1, ge=1)

    # When set, a failing (chain, reserve) pair is recorded and skipped
    # instead of aborting the whole query.
    allow_partial_results: bool = False

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_json_obj(cls, kpi_obj: dict[str, Any]) -> KpiConfig:
        """Create a KpiConfig instance from a JSON-compatible object."""
        return cls.model_validate(kpi_obj)

    @model_validator(mode="after")
    def validate_consistency(self) -> KpiConfig:
        """Reject duplicate network ids."""
        seen: set[str] = set()
        for network in self.networks:
            if network.network_id in seen:
                raise ValueError(f"duplicate network_id: {network.network_id}")
            seen.add(network.network_id)
        return self
