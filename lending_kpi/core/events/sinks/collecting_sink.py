"""
In-memory sink keeping every event it receives.
"""
from __future__ import annotations

from typing import Any

from lending_kpi.core.events.events import KpiEvent


class CollectingEventSink:
    """Keeps emitted events in arrival order (diagnostics and tests)."""

    def __init__(self) -> None:
        self.events: list[KpiEvent] = []

    def on_event(self, event: KpiEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type[Any]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]
