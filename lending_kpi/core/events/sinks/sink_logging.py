"""
Logging event sink.
"""
from __future__ import annotations

import logging
from dataclasses import asdict

from lending_kpi.core.events.events import KpiEvent


class LoggingEventSink:
    """Logs domain events using the standard logging module."""

    def __init__(self, logger: logging.Logger, level: int = logging.INFO) -> None:
        self._logger = logger
        self._level = level

    def on_event(self, event: KpiEvent) -> None:
        self._logger.log(
            self._level,
            "kpi_event %s",
            type(event).__name__,
            extra={"event": asdict(event)},
        )
