"""Reserve and chain level revenue aggregation.

Runs the per-reserve estimator for every reserve present at the end of the
window, converts raw token revenue to USD with the end-of-window price and
sums the result across reserves and across configured chains.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, localcontext
from typing import TYPE_CHECKING, Iterable, Mapping

from lending_kpi.core.domain.errors import (
    InvalidWindowError,
    MissingPriceError,
    RevenueKpiError,
)
from lending_kpi.core.domain.types import ReserveContext, Revenue, normalize_token_id
from lending_kpi.core.events.event_bus import EventBus
from lending_kpi.core.events.events import (
    ChainRevenueEvent,
    ReserveFailureEvent,
    ReserveRevenueEvent,
)
from lending_kpi.core.revenue.estimator import revenue_in_reserve

if TYPE_CHECKING:
    from lending_kpi.core.domain.types import ChainData
    from lending_kpi.core.ports.chain_data_provider import ChainDataProvider
    from lending_kpi.core.revenue.kpi_config import KpiConfig, NetworkConfig

LOGGER = logging.getLogger(__name__)

# Enough digits for 256-bit raw amounts times an oracle price.
USD_PRECISION = 96


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReserveRevenueBreakdown:
    network_id: str
    reserve_token_id: str
    reserve_token_decimals: int
    raw_revenue: int
    usd_price: Decimal
    revenue_usd: Decimal


@dataclass(frozen=True, slots=True)
class ReserveFailure:
    """A (chain, reserve) pair skipped because its input was malformed."""

    network_id: str
    reserve_token_id: str
    error: RevenueKpiError


@dataclass(frozen=True, slots=True)
class ChainRevenue:
    network_id: str
    revenue_usd: Decimal
    reserves: tuple[ReserveRevenueBreakdown, ...]
    failures: tuple[ReserveFailure, ...] = ()


@dataclass(frozen=True, slots=True)
class KpiResult:
    """
    Protocol revenue attributable to one user over one window, in USD.

    ``kpi`` is the total; ``chains`` keeps the per-chain and per-reserve
    breakdown for diagnostics.
    """

    user_address: str
    start_timestamp: int
    end_timestamp_exclusive: int
    kpi: Decimal
    chains: tuple[ChainRevenue, ...]

    @property
    def reserves(self) -> list[ReserveRevenueBreakdown]:
        return [reserve for chain in self.chains for reserve in chain.reserves]

    @property
    def failures(self) -> list[ReserveFailure]:
        return [failure for chain in self.chains for failure in chain.failures]

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def to_unix_seconds(value: datetime | int) -> int:
    """Unix seconds (floored) for a datetime; naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() // 1)
    return int(value)


def validate_window(start_timestamp: int, end_timestamp_exclusive: int) -> None:
    if start_timestamp >= end_timestamp_exclusive:
        raise InvalidWindowError(
            f"window start {start_timestamp} must be < end {end_timestamp_exclusive}"
        )


def reserve_contexts(
    chain_data: ChainData,
    start_timestamp: int,
    end_timestamp_exclusive: int,
) -> list[ReserveContext]:
    """
    Build one ReserveContext per reserve known at the end of the window.

    A reserve absent at the start of the window starts with a zero index
    and a zero fee rate. The estimator rejects such a reserve when the user
    reports a positive start balance in it.
    """
    contexts: list[ReserveContext] = []

    for reserve_token_id, end_reserve in chain_data.end_reserves.items():
        start_reserve = chain_data.start_reserves.get(reserve_token_id)
        yield_token_id = end_reserve.yield_token_id

        contexts.append(
            ReserveContext(
                reserve_token_id=reserve_token_id,
                reserve_token_decimals=end_reserve.reserve_token_decimals,
                yield_token_id=yield_token_id,
                start_timestamp=start_timestamp,
                end_timestamp=end_timestamp_exclusive,
                start_liquidity_index=0 if start_reserve is None else start_reserve.liquidity_index,
                end_liquidity_index=end_reserve.liquidity_index,
                start_fee_rate=0 if start_reserve is None else int(start_reserve.fee_rate or 0),
                fee_rate_history=tuple(chain_data.fee_rate_history.get(reserve_token_id, ())),
                start_scaled_balance=chain_data.start_balances.get(yield_token_id, 0),
                balance_history=tuple(chain_data.balance_history.get(yield_token_id, ())),
            )
        )

    return contexts


def revenue_by_reserve(
    chain_data: ChainData,
    start_timestamp: int,
    end_timestamp_exclusive: int,
) -> list[Revenue]:
    """Revenue per reserve; reserves without revenue are omitted."""
    revenues: list[Revenue] = []
    for ctx in reserve_contexts(chain_data, start_timestamp, end_timestamp_exclusive):
        revenue = revenue_in_reserve(ctx)
        if revenue.raw_revenue > 0:
            revenues.append(revenue)
    return revenues


def revenue_to_usd(revenue: Revenue, usd_price: Decimal) -> Decimal:
    """Shift raw token units by the token decimals and apply the USD price."""
    with localcontext() as ctx:
        ctx.prec = USD_PRECISION
        return Decimal(revenue.raw_revenue).scaleb(-revenue.reserve_token_decimals) * usd_price


def price_for(revenue: Revenue, usd_prices: Mapping[str, Decimal]) -> Decimal:
    """End-of-window price of the revenue's reserve token.

    Raises:
        MissingPriceError: positive revenue and no price supplied.
    """
    price = usd_prices.get(revenue.reserve_token_id)
    if price is None:
        if revenue.raw_revenue > 0:
            raise MissingPriceError(revenue.reserve_token_id)
        return Decimal(0)
    return price


def total_revenue_usd(
    revenues: Iterable[Revenue],
    usd_prices: Mapping[str, Decimal],
) -> Decimal:
    """Sum of USD revenue over reserves."""
    total = Decimal(0)
    with localcontext() as ctx:
        ctx.prec = USD_PRECISION
        for revenue in revenues:
            total += revenue_to_usd(revenue, price_for(revenue, usd_prices))
    return total


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class ReserveRevenueAggregator:
    """Attributes protocol revenue to a user across reserves and chains.

    The aggregator holds no per-query state. The data provider is owned by
    the caller; the aggregator only asks it for fully materialized
    datasets.
    """

    def __init__(
        self,
        config: KpiConfig,
        provider: ChainDataProvider,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config
        self._provider = provider
        self._event_bus = event_bus if event_bus is not None else EventBus()

    def revenue_in_chain_data(
        self,
        *,
        network_id: str,
        user_address: str,
        chain_data: ChainData,
        start_timestamp: int,
        end_timestamp_exclusive: int,
    ) -> ChainRevenue:
        """Attribute revenue on one chain from an already fetched dataset."""
        reserves: list[ReserveRevenueBreakdown] = []
        failures: list[ReserveFailure] = []
        total = Decimal(0)

        for ctx in reserve_contexts(chain_data, start_timestamp, end_timestamp_exclusive):
            try:
                revenue = revenue_in_reserve(ctx)
                if revenue.raw_revenue <= 0:
                    continue
                price = price_for(revenue, chain_data.usd_prices)
                revenue_usd = revenue_to_usd(revenue, price)
            except RevenueKpiError as exc:
                if not self._config.allow_partial_results:
                    raise
                failures.append(self._record_failure(network_id, user_address, ctx, exc))
                continue

            with localcontext() as dctx:
                dctx.prec = USD_PRECISION
                total += revenue_usd

            reserves.append(
                ReserveRevenueBreakdown(
                    network_id=network_id,
                    reserve_token_id=revenue.reserve_token_id,
                    reserve_token_decimals=revenue.reserve_token_decimals,
                    raw_revenue=revenue.raw_revenue,
                    usd_price=price,
                    revenue_usd=revenue_usd,
                )
            )
            self._event_bus.emit(
                ReserveRevenueEvent(
                    network_id=network_id,
                    user_address=user_address,
                    reserve_token_id=revenue.reserve_token_id,
                    raw_revenue=revenue.raw_revenue,
                    revenue_usd=revenue_usd,
                )
            )

        self._event_bus.emit(
            ChainRevenueEvent(
                network_id=network_id,
                user_address=user_address,
                reserve_count=len(reserves),
                revenue_usd=total,
            )
        )

        return ChainRevenue(
            network_id=network_id,
            revenue_usd=total,
            reserves=tuple(reserves),
            failures=tuple(failures),
        )

    def revenue_in_network(
        self,
        network: NetworkConfig,
        user_address: str,
        start_timestamp: int,
        end_timestamp_exclusive: int,
    ) -> ChainRevenue:
        """Fetch one chain's dataset and attribute revenue on it."""
        chain_data = self._provider.fetch_chain_data(
            network=network,
            user_address=user_address,
            start_timestamp=start_timestamp,
            end_timestamp_exclusive=end_timestamp_exclusive,
        )

        LOGGER.info(
            "Chain data received",
            extra={
                "network_id": network.network_id,
                "user_address": user_address,
                "reserves": len(chain_data.end_reserves),
            },
        )

        return self.revenue_in_chain_data(
            network_id=network.network_id,
            user_address=user_address,
            chain_data=chain_data,
            start_timestamp=start_timestamp,
            end_timestamp_exclusive=end_timestamp_exclusive,
        )

    def calculate(
        self,
        *,
        user_address: str,
        start_timestamp: datetime | int,
        end_timestamp_exclusive: datetime | int,
    ) -> KpiResult:
        """Total USD protocol revenue attributable to ``user_address``."""
        start = to_unix_seconds(start_timestamp)
        end = to_unix_seconds(end_timestamp_exclusive)
        validate_window(start, end)

        user = normalize_token_id(user_address)
        networks = self._config.networks

        def run(network: NetworkConfig) -> ChainRevenue:
            return self.revenue_in_network(network, user, start, end)

        workers = min(self._config.max_workers, len(networks))
        if workers <= 1:
            chains = [run(network) for network in networks]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="kpi-chain") as pool:
                chains = list(pool.map(run, networks))

        kpi = Decimal(0)
        with localcontext() as ctx:
            ctx.prec = USD_PRECISION
            for chain in chains:
                kpi += chain.revenue_usd

        LOGGER.info(
            "KPI calculated",
            extra={
                "user_address": user,
                "start_timestamp": start,
                "end_timestamp_exclusive": end,
                "kpi": str(kpi),
                "chains": len(chains),
            },
        )

        return KpiResult(
            user_address=user,
            start_timestamp=start,
            end_timestamp_exclusive=end,
            kpi=kpi,
            chains=tuple(chains),
        )

    def _record_failure(
        self,
        network_id: str,
        user_address: str,
        ctx: ReserveContext,
        exc: RevenueKpiError,
    ) -> ReserveFailure:
        LOGGER.warning(
            "Reserve skipped: %s",
            exc,
            extra={
                "network_id": network_id,
                "reserve_token_id": ctx.reserve_token_id,
                "error_type": type(exc).__name__,
            },
        )
        self._event_bus.emit(
            ReserveFailureEvent(
                network_id=network_id,
                user_address=user_address,
                reserve_token_id=ctx.reserve_token_id,
                error_type=type(exc).__name__,
                message=str(exc),
            )
        )
        return ReserveFailure(
            network_id=network_id,
            reserve_token_id=ctx.reserve_token_id,
            error=exc,
        )


def calculate_kpi(
    *,
    provider: ChainDataProvider,
    config: KpiConfig,
    user_address: str,
    start_timestamp: datetime | int,
    end_timestamp_exclusive: datetime | int,
    event_bus: EventBus | None = None,
) -> KpiResult:
    """Convenience wrapper around :class:`ReserveRevenueAggregator`."""
    aggregator = ReserveRevenueAggregator(config, provider, event_bus=event_bus)
    return aggregator.calculate(
        user_address=user_address,
        start_timestamp=start_timestamp,
        end_timestamp_exclusive=end_timestamp_exclusive,
    )
