"""
Event sink interface.

A sink receives every ReserveRevenueEvent, ReserveFailureEvent and
ChainRevenueEvent emitted while a KPI query runs, in emission order.
Sinks are called under the bus lock and must not emit back into the bus.
"""
from __future__ import annotations

from typing import Protocol

from lending_kpi.core.events.events import KpiEvent


class EventSink(Protocol):
    def on_event(self, event: KpiEvent) -> None:
        """Consume a revenue attribution event."""
