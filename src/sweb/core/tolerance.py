"""
Tolerance-aware floating point comparisons.

All comparisons scale the tolerance with the magnitude of the operands so
that values of very different size (e.g. 1e-6 cm of flux and 1e3 cm of
storage) are compared sensibly.
"""
import math

from sweb.core.constants import TOLERANCE_ABS, TOLERANCE_REL


def tolerance(a: float, b: float = 0.0) -> float:
    """Comparison tolerance for a pair of values."""
    return max(TOLERANCE_ABS, TOLERANCE_REL * max(abs(a), abs(b)))


def eq(a: float, b: float) -> bool:
    return abs(a - b) <= tolerance(a, b)


def is_zero(a: float) -> bool:
    return abs(a) <= TOLERANCE_ABS


def gt(a: float, b: float) -> bool:
    return a - b > tolerance(a, b)


def lt(a: float, b: float) -> bool:
    return b - a > tolerance(a, b)


def ge(a: float, b: float) -> bool:
    return not lt(a, b)


def le(a: float, b: float) -> bool:
    return not gt(a, b)


def is_finite(a: float) -> bool:
    return a is not None and math.isfinite(a)
