"""Public API for the lending_kpi package.

Only symbols imported here are considered part of the stable,
supported external interface.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ----------------------------------------------------------------------
# Engine API
# ----------------------------------------------------------------------
from lending_kpi.core.revenue.aggregator import (
    ChainRevenue,
    KpiResult,
    ReserveFailure,
    ReserveRevenueAggregator,
    ReserveRevenueBreakdown,
    calculate_kpi,
    total_revenue_usd,
)
from lending_kpi.core.revenue.estimator import (
    estimate_protocol_revenue,
    revenue_in_reserve,
)

# ----------------------------------------------------------------------
# Domain Types and math
# ----------------------------------------------------------------------
from lending_kpi.core.domain.errors import (
    DivisionGuardViolation,
    HistoryOutOfWindowError,
    InvalidWindowError,
    MissingPriceError,
    MissingReserveStateError,
    NonMonotonicHistoryError,
    RevenueKpiError,
)
from lending_kpi.core.domain.ray_math import RAY, ray_div, ray_mul
from lending_kpi.core.domain.segments import Segment, allocate_overlap, build_segments
from lending_kpi.core.domain.types import (
    BalanceSnapshot,
    ChainData,
    FeeRateSnapshot,
    ReserveContext,
    ReserveState,
    Revenue,
)

# ----------------------------------------------------------------------
# Config and ports
# ----------------------------------------------------------------------
from lending_kpi.core.ports.chain_data_provider import ChainDataProvider
from lending_kpi.core.revenue.kpi_config import KpiConfig, NetworkConfig

# ----------------------------------------------------------------------
# Public API definition
# ----------------------------------------------------------------------

__all__ = [
    # Engine
    "ReserveRevenueAggregator",
    "calculate_kpi",
    "total_revenue_usd",
    "revenue_in_reserve",
    "estimate_protocol_revenue",
    "KpiResult",
    "ChainRevenue",
    "ReserveRevenueBreakdown",
    "ReserveFailure",

    # Math and segments
    "RAY",
    "ray_mul",
    "ray_div",
    "Segment",
    "build_segments",
    "allocate_overlap",

    # Domain types
    "BalanceSnapshot",
    "FeeRateSnapshot",
    "ReserveState",
    "ChainData",
    "ReserveContext",
    "Revenue",

    # Errors
    "RevenueKpiError",
    "InvalidWindowError",
    "NonMonotonicHistoryError",
    "HistoryOutOfWindowError",
    "MissingPriceError",
    "MissingReserveStateError",
    "DivisionGuardViolation",

    # Config and ports
    "KpiConfig",
    "NetworkConfig",
    "ChainDataProvider",

    # Version
    "__version__",
]

# ----------------------------------------------------------------------
# Package version
# ----------------------------------------------------------------------

try:
    __version__ = version("lending-kpi")
except PackageNotFoundError:
    __version__ = "0.0.0"
