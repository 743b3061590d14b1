"""Time segmentation and overlap allocation.

A segment is a half-open interval ``[start_timestamp, end_timestamp)``
carrying a value derived from the two snapshots that bound it. Segment
sequences built here are contiguous and cover exactly the span between
the first and the last snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from operator import attrgetter
from typing import Callable, Sequence, TypeVar

from lending_kpi.core.domain.errors import NonMonotonicHistoryError
from lending_kpi.core.domain.ray_math import ray_div, ray_mul

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Segment:
    """Half-open time interval with an associated value."""

    start_timestamp: int
    end_timestamp: int
    value: int

    @property
    def duration(self) -> int:
        return self.end_timestamp - self.start_timestamp


def build_segments(
    snapshots: Sequence[T],
    transform: Callable[[T, T], int],
    *,
    timestamp: Callable[[T], int] = attrgetter("timestamp"),
) -> list[Segment]:
    """
    Turn ``n >= 2`` ordered snapshots into ``n - 1`` contiguous segments.

    Segment ``i`` spans ``[ts(snapshots[i]), ts(snapshots[i + 1]))`` and its
    value is ``transform(snapshots[i], snapshots[i + 1])``. Adjacent
    snapshots sharing a timestamp produce a zero-duration segment, which
    carries no weight in :func:`allocate_overlap`.

    Raises:
        ValueError: fewer than two snapshots.
        NonMonotonicHistoryError: a timestamp goes backwards.
    """
    if len(snapshots) < 2:
        raise ValueError("at least two snapshots are required to build segments")

    segments: list[Segment] = []
    for current, following in zip(snapshots, snapshots[1:]):
        start = timestamp(current)
        end = timestamp(following)
        if end < start:
            raise NonMonotonicHistoryError(
                f"snapshot timestamps go backwards ({start} -> {end})"
            )
        segments.append(
            Segment(
                start_timestamp=start,
                end_timestamp=end,
                value=transform(current, following),
            )
        )

    return segments


def calculate_overlap(start1: int, end1: int, start2: int, end2: int) -> int:
    """Length of the intersection of ``[start1, end1)`` and ``[start2, end2)``."""
    return max(0, min(end1, end2) - max(start1, start2))


def allocate_overlap(source: Segment, targets: Sequence[Segment]) -> list[int]:
    """
    Distribute ``source.value`` over ``targets`` by duration of intersection.

    Returns one allocation per target, in order. Sources with a
    non-positive value or zero duration allocate nothing.

    Each allocation is the difference of the cumulative portion of the
    source value at the two ends of the overlap, where
    ``portion(x) = value * (x - source.start) / duration`` in ray math.
    The portion is monotone and reaches exactly ``value`` at the source
    end, so allocations over non-overlapping targets never sum to more
    than ``value`` and sum to exactly ``value`` when the targets cover the
    source.
    """
    allocations = [0] * len(targets)

    duration = source.duration
    if source.value <= 0 or duration <= 0:
        return allocations

    def portion(ts: int) -> int:
        return ray_mul(source.value, ray_div(ts - source.start_timestamp, duration))

    for index, target in enumerate(targets):
        overlap = calculate_overlap(
            source.start_timestamp,
            source.end_timestamp,
            target.start_timestamp,
            target.end_timestamp,
        )
        if overlap <= 0:
            continue

        overlap_start = max(source.start_timestamp, target.start_timestamp)
        overlap_end = overlap_start + overlap
        allocations[index] = portion(overlap_end) - portion(overlap_start)

    return allocations
