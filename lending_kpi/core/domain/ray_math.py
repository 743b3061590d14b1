"""Ray fixed-point arithmetic.

Values are plain Python ints scaled by ``RAY`` (27 decimals). Products and
quotients are rounded half-up, i.e. ``floor(x + 1/2)``, so chains of
multiplications and divisions do not drift in one direction.
"""

from __future__ import annotations

from lending_kpi.core.domain.errors import DivisionGuardViolation

RAY: int = 10**27
HALF_RAY: int = RAY // 2

# 100% expressed in basis points.
BPS: int = 10_000


def ray_mul(a: int, b: int) -> int:
    """Multiply two ray values."""
    return (a * b + HALF_RAY) // RAY


def ray_div(a: int, b: int) -> int:
    """Divide two ray values.

    Raises:
        DivisionGuardViolation: if ``b`` is zero.
    """
    if b == 0:
        raise DivisionGuardViolation("ray_div by zero")
    if b < 0:
        a, b = -a, -b
    return (a * RAY + b // 2) // b


def to_ray(numerator: int, denominator: int) -> int:
    """Return ``numerator / denominator`` as a ray value."""
    return ray_div(numerator, denominator)


def bps_to_ray(bps: int) -> int:
    """Convert basis points to a ray fraction (10_000 bps == RAY)."""
    return to_ray(bps, BPS)
