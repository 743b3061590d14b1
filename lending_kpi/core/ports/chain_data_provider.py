"""Chain data provider protocol.

This module defines the boundary between the revenue engine and the
collaborator that retrieves on-chain state and event history. The engine
never fetches anything itself; callers own the provider instance and pass
it in explicitly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from lending_kpi.core.domain.types import ChainData
    from lending_kpi.core.revenue.kpi_config import NetworkConfig


class ChainDataProvider(Protocol):
    """Source of fully materialized per-chain datasets."""

    def fetch_chain_data(
        self,
        *,
        network: NetworkConfig,
        user_address: str,
        start_timestamp: int,
        end_timestamp_exclusive: int,
    ) -> ChainData:
        """Return everything needed to attribute revenue on one chain.

        Timestamps are unix seconds. Reserve state at the end of the window
        is read at the last block before ``end_timestamp_exclusive``.
        """
