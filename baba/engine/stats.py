"""Small statistics and linear-algebra helpers for the rating engine.

Everything here is a pure function over plain float sequences so it can be
tested on synthetic arrays, independent of how the corpus is stored.
"""

from __future__ import annotations

import math
from typing import Sequence

SINGULAR_TOLERANCE = 1e-12


class SingularSystemError(ValueError):
    """Raised when a linear system has no unique solution."""


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean of a non-empty sequence."""
    if not values:
        raise ValueError("mean of empty sequence")
    return math.fsum(values) / len(values)


def ols_slope(xs: Sequence[float], ys: Sequence[float], min_samples: int = 2) -> float:
    """Ordinary least squares slope of ys on xs.

    slope = Σ(x−x̄)(y−ȳ) / Σ(x−x̄)²; 0.0 when there are fewer than
    ``min_samples`` pairs or the xs have no spread.
    """
    if len(xs) != len(ys):
        raise ValueError("xs and ys differ in length")
    n = len(xs)
    if n < max(min_samples, 1):
        return 0.0
    mean_x = mean(xs)
    mean_y = mean(ys)
    num = 0.0
    den = 0.0
    for x, y in zip(xs, ys):
        dx = x - mean_x
        num += dx * (y - mean_y)
        den += dx * dx
    return num / den if den != 0 else 0.0


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float | None:
    """Pearson correlation, None with fewer than 2 points or zero variance."""
    if len(xs) != len(ys):
        raise ValueError("xs and ys differ in length")
    if len(xs) < 2:
        return None
    mean_x = mean(xs)
    mean_y = mean(ys)
    num = den_x = den_y = 0.0
    for x, y in zip(xs, ys):
        dx = x - mean_x
        dy = y - mean_y
        num += dx * dy
        den_x += dx * dx
        den_y += dy * dy
    if den_x == 0 or den_y == 0:
        return None
    return num / math.sqrt(den_x * den_y)


def percentile_cut_points(sorted_values: Sequence[float], percentiles: Sequence[int]) -> list[float]:
    """Cut points at the given percentiles of an ascending sequence.

    Uses the lower-index rule ``sorted[floor(n * p / 100)]``, so cut points
    are always observed values and never decrease. Empty input gives no cuts.
    """
    n = len(sorted_values)
    if n == 0:
        return []
    cuts = []
    for p in percentiles:
        idx = min(math.floor(n * p / 100), n - 1)
        cuts.append(sorted_values[idx])
    return cuts


def bin_index(value: float, cut_points: Sequence[float]) -> int:
    """Number of cut points the value is >= to (0 .. len(cut_points))."""
    return sum(1 for c in cut_points if value >= c)


def det3(m: Sequence[Sequence[float]]) -> float:
    """Determinant of a 3x3 matrix."""
    return (
        m[0][0] * (m[1][1] * m[2][2] - m[1][2] * m[2][1])
        - m[0][1] * (m[1][0] * m[2][2] - m[1][2] * m[2][0])
        + m[0][2] * (m[1][0] * m[2][1] - m[1][1] * m[2][0])
    )


def solve_3x3(
    matrix: Sequence[Sequence[float]],
    rhs: Sequence[float],
    tolerance: float = SINGULAR_TOLERANCE,
) -> tuple[float, float, float]:
    """Solve A·x = b for a 3x3 system with Cramer's rule.

    Raises SingularSystemError when |det(A)| <= tolerance.
    """
    if len(matrix) != 3 or any(len(row) != 3 for row in matrix) or len(rhs) != 3:
        raise ValueError("solve_3x3 needs a 3x3 matrix and 3 right-hand values")
    d = det3(matrix)
    if abs(d) <= tolerance:
        raise SingularSystemError(f"singular system (det={d:.3e})")

    solution = []
    for col in range(3):
        replaced = [
            [rhs[r] if c == col else matrix[r][c] for c in range(3)]
            for r in range(3)
        ]
        solution.append(det3(replaced) / d)
    return solution[0], solution[1], solution[2]


def fit_plane(
    xs: Sequence[float],
    ys: Sequence[float],
    zs: Sequence[float],
) -> tuple[float, float, float]:
    """Least squares fit of z ≈ a·x + b·y + c via the normal equations.

    Raises SingularSystemError for fewer than 3 points or collinear inputs.
    """
    if not (len(xs) == len(ys) == len(zs)):
        raise ValueError("xs, ys and zs differ in length")
    n = len(xs)
    if n < 3:
        raise SingularSystemError(f"need at least 3 points to fit a plane, got {n}")

    sx = math.fsum(xs)
    sy = math.fsum(ys)
    sz = math.fsum(zs)
    sxx = math.fsum(x * x for x in xs)
    syy = math.fsum(y * y for y in ys)
    sxy = math.fsum(x * y for x, y in zip(xs, ys))
    sxz = math.fsum(x * z for x, z in zip(xs, zs))
    syz = math.fsum(y * z for y, z in zip(ys, zs))

    matrix = [
        [sxx, sxy, sx],
        [sxy, syy, sy],
        [sx, sy, float(n)],
    ]
    return solve_3x3(matrix, [sxz, syz, sz])


def r_squared(actual: Sequence[float], predicted: Sequence[float]) -> float | None:
    """Coefficient of determination, None when actual has no variance."""
    if len(actual) != len(predicted):
        raise ValueError("actual and predicted differ in length")
    if not actual:
        return None
    mean_a = mean(actual)
    ss_res = math.fsum((a - p) ** 2 for a, p in zip(actual, predicted))
    ss_tot = math.fsum((a - mean_a) ** 2 for a in actual)
    if ss_tot == 0:
        return None
    return 1 - ss_res / ss_tot
