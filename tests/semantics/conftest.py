"""Shared fixtures for semantic tests.

The worked scenario spans four days:

Reserve 1 (18 decimals, $1000):
- Day 1:   10 tokens, liquidity index +1%  -> earnings 0.1
- Day 2:   20 tokens, liquidity index +1%  -> earnings 0.2
- Day 3-4: 10 tokens, liquidity index +4%  -> earnings 0.4
- fee rate 20% on day 1, 60% on days 2-3, 80% on day 4
- protocol revenue 0.025 + 0.6 + 0.8 = 1.425

Reserve 2 (6 decimals, $1):
- 1000 tokens held throughout, liquidity index +40% -> earnings 400
- fee rate 20% on day 1, 50% on days 2-4
- protocol revenue 25 + 300 = 325
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from lending_kpi.core.domain.ray_math import RAY, ray_mul
from lending_kpi.core.domain.types import (
    BalanceSnapshot,
    ChainData,
    FeeRateSnapshot,
    ReserveState,
)

DAY = 86400


def liquidity_index(interest_pct: int) -> int:
    """Liquidity index after ``interest_pct`` percent of accrued interest."""
    return ray_mul(RAY, (100 + interest_pct) * RAY // 100)


@dataclass(frozen=True, slots=True)
class WorkedScenario:
    user_address: str
    start_timestamp: int
    end_timestamp_exclusive: int

    reserve_token_1: str
    reserve_token_2: str
    yield_token_1: str
    yield_token_2: str

    chain_data: ChainData


@pytest.fixture()
def worked_scenario() -> WorkedScenario:
    start = int(datetime(2025, 1, 1, tzinfo=timezone.utc).timestamp())
    end = start + 4 * DAY

    # Mixed-case ids exercise identifier normalization.
    reserve_token_1 = "0xABCDEF1234567890ABCDEF1234567890ABCDEF12"
    reserve_token_2 = "0x9876543210ABCDEF9876543210ABCDEF98765432"
    yield_token_1 = "0x1111111111111111111111111111111111111111"
    yield_token_2 = "0x2222222222222222222222222222222222222222"

    start_reserves = {
        reserve_token_1: ReserveState(
            reserve_token_id=reserve_token_1,
            reserve_token_decimals=18,
            yield_token_id=yield_token_1,
            liquidity_index=RAY,
            fee_rate=2000,
        ),
        reserve_token_2: ReserveState(
            reserve_token_id=reserve_token_2,
            reserve_token_decimals=6,
            yield_token_id=yield_token_2,
            liquidity_index=RAY,
            fee_rate=2000,
        ),
    }

    end_reserves = {
        reserve_token_1: ReserveState(
            reserve_token_id=reserve_token_1,
            reserve_token_decimals=18,
            yield_token_id=yield_token_1,
            liquidity_index=liquidity_index(6),
            fee_rate=8000,
        ),
        reserve_token_2: ReserveState(
            reserve_token_id=reserve_token_2,
            reserve_token_decimals=6,
            yield_token_id=yield_token_2,
            liquidity_index=liquidity_index(40),
            fee_rate=5000,
        ),
    }

    chain_data = ChainData(
        start_reserves=start_reserves,
        end_reserves=end_reserves,
        fee_rate_history={
            reserve_token_1: (
                FeeRateSnapshot(timestamp=start + DAY, fee_rate=6000),
                FeeRateSnapshot(timestamp=start + 3 * DAY, fee_rate=8000),
            ),
            reserve_token_2: (
                FeeRateSnapshot(timestamp=start + DAY, fee_rate=5000),
            ),
        },
        start_balances={
            yield_token_1: 10 * 10**18,
            yield_token_2: 1000 * 10**6,
        },
        balance_history={
            yield_token_1: (
                # balance increased
                BalanceSnapshot(
                    timestamp=start + DAY,
                    scaled_balance=20 * 10**18,
                    liquidity_index=liquidity_index(1),
                ),
                # balance decreased
                BalanceSnapshot(
                    timestamp=start + 2 * DAY,
                    scaled_balance=10 * 10**18,
                    liquidity_index=liquidity_index(2),
                ),
            ),
        },
        usd_prices={
            reserve_token_1: Decimal(1000),
            reserve_token_2: Decimal(1),
        },
    )

    return WorkedScenario(
        user_address="0x1234567890123456789012345678901234567890",
        start_timestamp=start,
        end_timestamp_exclusive=end,
        reserve_token_1=reserve_token_1.lower(),
        reserve_token_2=reserve_token_2.lower(),
        yield_token_1=yield_token_1,
        yield_token_2=yield_token_2,
        chain_data=chain_data,
    )
