"""Per-reserve protocol revenue estimation.

The protocol keeps ``fee_rate`` of all interest accrued by a reserve and
depositors receive the remaining ``1 - fee_rate``. Given what a user
earned, the protocol's share attributable to that user is therefore
``earnings * fee_rate / (1 - fee_rate)``.

User earnings and fee rates are sampled independently and at irregular
times. Both histories are turned into segments over the same window and
earnings are allocated to fee-rate segments by overlap before the ratio is
applied.
"""

from __future__ import annotations

import logging
from typing import Sequence

from lending_kpi.core.domain.errors import (
    HistoryOutOfWindowError,
    MissingReserveStateError,
    NonMonotonicHistoryError,
)
from lending_kpi.core.domain.ray_math import RAY, bps_to_ray, ray_div, ray_mul
from lending_kpi.core.domain.segments import Segment, allocate_overlap, build_segments
from lending_kpi.core.domain.types import (
    BalanceSnapshot,
    FeeRateSnapshot,
    ReserveContext,
    Revenue,
)

LOGGER = logging.getLogger(__name__)


def _validate_history(
    history: Sequence[BalanceSnapshot] | Sequence[FeeRateSnapshot],
    *,
    start_timestamp: int,
    end_timestamp: int,
    label: str,
) -> None:
    previous: int | None = None
    for snapshot in history:
        ts = snapshot.timestamp
        if ts < start_timestamp or ts > end_timestamp:
            raise HistoryOutOfWindowError(
                f"{label} event at {ts} lies outside window [{start_timestamp}, {end_timestamp})"
            )
        if previous is not None and ts <= previous:
            raise NonMonotonicHistoryError(
                f"{label} timestamps must be strictly increasing ({previous} -> {ts})"
            )
        previous = ts


def user_earnings_segments(ctx: ReserveContext) -> list[Segment]:
    """Split the user's balance history into earnings segments.

    The value of a segment is what the balance held at its start earned
    until its end: ``bal * index_end - bal * index_start``.

    Raises:
        MissingReserveStateError: a start balance without a start index.
        NonMonotonicHistoryError: history out of order or outside the window.
    """
    _validate_history(
        ctx.balance_history,
        start_timestamp=ctx.start_timestamp,
        end_timestamp=ctx.end_timestamp,
        label="balance",
    )
    if ctx.start_liquidity_index == 0 and ctx.start_scaled_balance > 0:
        raise MissingReserveStateError(ctx.reserve_token_id, ctx.start_scaled_balance)

    start = BalanceSnapshot(
        timestamp=ctx.start_timestamp,
        scaled_balance=ctx.start_scaled_balance,
        liquidity_index=ctx.start_liquidity_index,
    )
    # Only the index of the closing snapshot is used.
    end = BalanceSnapshot(
        timestamp=ctx.end_timestamp,
        scaled_balance=0,
        liquidity_index=ctx.end_liquidity_index,
    )

    def earnings(current: BalanceSnapshot, following: BalanceSnapshot) -> int:
        balance_before = ray_mul(current.scaled_balance, current.liquidity_index)
        balance_after = ray_mul(current.scaled_balance, following.liquidity_index)
        return balance_after - balance_before

    return build_segments([start, *ctx.balance_history, end], earnings)


def fee_rate_segments(ctx: ReserveContext) -> list[Segment]:
    """Split the fee-rate history into segments valued at the rate in force."""
    _validate_history(
        ctx.fee_rate_history,
        start_timestamp=ctx.start_timestamp,
        end_timestamp=ctx.end_timestamp,
        label="fee rate",
    )

    start = FeeRateSnapshot(timestamp=ctx.start_timestamp, fee_rate=ctx.start_fee_rate)
    # Closing snapshot only bounds the last segment.
    end = FeeRateSnapshot(timestamp=ctx.end_timestamp, fee_rate=0)

    return build_segments(
        [start, *ctx.fee_rate_history, end],
        lambda current, _following: current.fee_rate,
    )


def estimate_protocol_revenue(user_earnings: int, fee_rate: int) -> int:
    """Protocol revenue implied by ``user_earnings`` at ``fee_rate`` (bps).

    Raises:
        DivisionGuardViolation: positive earnings under a 100% fee rate.
    """
    if user_earnings == 0:
        return 0

    protocol_share = bps_to_ray(fee_rate)
    user_share = RAY - protocol_share
    protocol_to_user_ratio = ray_div(protocol_share, user_share)
    return ray_mul(user_earnings, protocol_to_user_ratio)


def earnings_by_fee_rate_segment(
    earnings_segments: Sequence[Segment],
    rate_segments: Sequence[Segment],
) -> list[int]:
    """Sum of user earnings falling inside each fee-rate segment."""
    totals = [0] * len(rate_segments)
    for earning in earnings_segments:
        allocations = allocate_overlap(earning, rate_segments)
        for index, allocated in enumerate(allocations):
            totals[index] += allocated
    return totals


def revenue_in_reserve(ctx: ReserveContext) -> Revenue:
    """Protocol revenue attributable to the user in one reserve."""
    earnings_segments = user_earnings_segments(ctx)
    rate_segments = fee_rate_segments(ctx)

    earnings_per_rate = earnings_by_fee_rate_segment(earnings_segments, rate_segments)

    revenue = 0
    for rate_segment, earnings in zip(rate_segments, earnings_per_rate):
        revenue += estimate_protocol_revenue(earnings, rate_segment.value)

    LOGGER.debug(
        "Reserve revenue estimated",
        extra={
            "reserve_token_id": ctx.reserve_token_id,
            "earnings_segments": len(earnings_segments),
            "fee_rate_segments": len(rate_segments),
            "raw_revenue": revenue,
        },
    )

    return Revenue(
        reserve_token_id=ctx.reserve_token_id,
        reserve_token_decimals=ctx.reserve_token_decimals,
        raw_revenue=revenue,
    )
