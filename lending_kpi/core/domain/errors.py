"""Error taxonomy for the revenue attribution engine.

All errors signal malformed input from the data-fetching collaborator or a
broken internal invariant. They are never coerced to zero inside the
engine; callers decide whether to fail a query or degrade it.
"""

from __future__ import annotations


class RevenueKpiError(Exception):
    """Base class for all engine errors."""


class InvalidWindowError(RevenueKpiError, ValueError):
    """Raised when a window start is not strictly before its end."""


class NonMonotonicHistoryError(RevenueKpiError, ValueError):
    """Raised when a snapshot sequence is not ordered in time."""


class HistoryOutOfWindowError(NonMonotonicHistoryError):
    """Raised when a history event lies outside the queried window."""


class MissingReserveStateError(RevenueKpiError, LookupError):
    """Raised when a balance is held in a reserve with no start-of-window state."""

    def __init__(self, reserve_token_id: str, start_scaled_balance: int) -> None:
        super().__init__(
            f"Reserve {reserve_token_id} has no start-of-window state but the user "
            f"held a scaled balance of {start_scaled_balance}"
        )
        self.reserve_token_id = reserve_token_id


class MissingPriceError(RevenueKpiError, LookupError):
    """Raised when positive revenue was computed for a token without a USD price."""

    def __init__(self, reserve_token_id: str) -> None:
        super().__init__(f"No USD price supplied for reserve token {reserve_token_id}")
        self.reserve_token_id = reserve_token_id


class DivisionGuardViolation(RevenueKpiError, ZeroDivisionError):
    """Raised on a division by zero that should have been filtered earlier."""
