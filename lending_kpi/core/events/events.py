"""
Domain event models.

These events represent immutable facts observed while attributing
revenue. They are consumed by loggers and monitoring pipelines.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class ReserveRevenueEvent:
    network_id: str
    user_address: str
    reserve_token_id: str

    raw_revenue: int
    revenue_usd: Decimal


@dataclass(frozen=True, slots=True)
class ReserveFailureEvent:
    network_id: str
    user_address: str
    reserve_token_id: str | None

    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class ChainRevenueEvent:
    network_id: str
    user_address: str

    reserve_count: int
    revenue_usd: Decimal


KpiEvent = ReserveRevenueEvent | ReserveFailureEvent | ChainRevenueEvent
