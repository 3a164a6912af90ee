"""
Array utilities for strong-motion processing.

Numerical building blocks shared by the correction stages: trapezoidal
integration, differentiation, polynomial trend fitting and removal, zero
crossing search, smoothing and summary statistics.

None of these functions raise on degenerate input. Functions returning arrays
return an empty array, functions returning an order or an index return a
negative sentinel, and in-place operations return ``False``/``-1`` and leave
their argument untouched.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import dataclasses
import logging
from typing import Optional

import numpy as np
from scipy import integrate as sp_integrate

log = logging.getLogger(__name__)

# smallest positive double, returned by find_subset_mean on invalid ranges
MIN_VALUE = float(np.nextafter(0.0, 1.0))

# order 2 is kept only if it lowers the residual sum of squares by this factor
BEST_FIT_IMPROVEMENT = 0.9

# central difference stencils: weights from x[i-k] to x[i+k] and divisor
_CENTRAL_DIFF_STENCILS = {
    3: (np.array([-1.0, 0.0, 1.0]), 2.0),
    5: (np.array([1.0, -8.0, 0.0, 8.0, -1.0]), 12.0),
    7: (np.array([-1.0, 9.0, -45.0, 0.0, 45.0, -9.0, 1.0]), 60.0),
    9: (np.array([3.0, -32.0, 168.0, -672.0, 0.0, 672.0, -168.0, 32.0, -3.0]), 840.0),
}


def _is_empty(x) -> bool:
    return x is None or len(x) == 0


def _is_mutable(x) -> bool:
    return isinstance(x, np.ndarray) and x.size > 0 and np.issubdtype(x.dtype, np.floating)


# =============================================================================
# INTEGRATION AND DIFFERENTIATION
# =============================================================================

def integrate(x: np.ndarray, dt: float, initial: float = 0.0) -> np.ndarray:
    """Trapezoidal integration with a given initial value.

    ``y[0] = initial`` and ``y[i] = y[i-1] + dt/2 * (x[i-1] + x[i])``.

    Parameters
    ----------
    x : np.ndarray
        Array to integrate.
    dt : float
        Sample interval (s).
    initial : float, optional
        Value of the integral at the first sample. Default is 0.

    Returns
    -------
    np.ndarray
        Integrated array, same length as `x`. Empty if `x` has fewer than two
        samples or `dt` is not positive.
    """
    if _is_empty(x) or len(x) < 2 or dt <= 0:
        return np.array([])
    x = np.asarray(x, dtype=float)
    return sp_integrate.cumulative_trapezoid(x, dx=dt, initial=0) + initial


def differentiate(x: np.ndarray, dt: float) -> np.ndarray:
    """Central difference derivative, one-sided at the two ends."""
    if _is_empty(x) or len(x) < 2 or dt <= 0:
        return np.array([])
    return np.gradient(np.asarray(x, dtype=float), dt, edge_order=1)


def central_diff(x: np.ndarray, dt: float, order: int) -> np.ndarray:
    """Central difference derivative with a 3, 5, 7 or 9 point stencil.

    Samples too close to the ends for the requested stencil use the widest
    stencil that fits, down to one-sided differences at the first and last
    sample.

    Returns
    -------
    np.ndarray
        Derivative of `x`, or an empty array for an unsupported order or
        degenerate input.
    """
    if order not in _CENTRAL_DIFF_STENCILS:
        return np.array([])
    result = differentiate(x, dt)
    if result.size == 0:
        return result
    x = np.asarray(x, dtype=float)
    n = len(x)
    for size in sorted(_CENTRAL_DIFF_STENCILS):
        if size > order:
            break
        half = size // 2
        if n <= 2 * half:
            break
        weights, divisor = _CENTRAL_DIFF_STENCILS[size]
        result[half:n - half] = np.correlate(x, weights, mode='valid') / (divisor * dt)
    return result


# =============================================================================
# TREND REMOVAL
# =============================================================================

def make_time_array(dt: float, n: int) -> np.ndarray:
    """Time axis ``i * dt`` for ``n`` samples, empty if either is zero."""
    if dt <= 0 or n <= 0:
        return np.array([])
    return np.arange(n) * dt


def remove_value(x: np.ndarray, value: float) -> bool:
    """Subtracts a constant from `x` in place."""
    if not _is_mutable(x):
        return False
    x -= value
    return True


def find_polynomial_trend(x: np.ndarray, order: int, dt: float) -> np.ndarray:
    """Least-squares polynomial coefficients of `x` against ``t = i * dt``.

    Coefficients are returned highest power first (``numpy.polyfit``
    convention). Orders 1 to 3 are supported; anything else, or degenerate
    input, gives an empty array.
    """
    if _is_empty(x) or dt <= 0 or order not in (1, 2, 3) or len(x) <= order:
        return np.array([])
    x = np.asarray(x, dtype=float)
    return np.polyfit(make_time_array(dt, len(x)), x, order)


def remove_polynomial_trend(x: np.ndarray, coefs: np.ndarray, dt: float) -> bool:
    """Subtracts the polynomial `coefs` evaluated at ``i * dt`` from `x`."""
    if not _is_mutable(x) or _is_empty(coefs) or dt <= 0:
        return False
    x -= np.polyval(coefs, make_time_array(dt, len(x)))
    return True


def find_linear_trend(x: np.ndarray, dt: float) -> np.ndarray:
    """Values of the least-squares line through `x`."""
    coefs = find_polynomial_trend(x, 1, dt)
    if coefs.size == 0:
        return coefs
    return np.polyval(coefs, make_time_array(dt, len(x)))


def remove_linear_trend(x: np.ndarray, dt: float) -> int:
    """Removes the least-squares line from `x` in place.

    Returns
    -------
    int
        1 on success, -1 on empty input or non-positive `dt`.
    """
    if not _is_mutable(x) or dt <= 0 or len(x) < 2:
        return -1
    remove_polynomial_trend(x, find_polynomial_trend(x, 1, dt), dt)
    return 1


def remove_linear_trend_from_subarray(x: np.ndarray, sub: np.ndarray, dt: float) -> bool:
    """Fits a line to `sub` and removes it from `x` in place.

    The line is evaluated on the time axis of `x`, so `sub` is typically a
    leading portion of `x` (e.g. the pre-event segment).
    """
    if not _is_mutable(x) or _is_empty(sub) or len(sub) < 2 or dt <= 0:
        return False
    return remove_polynomial_trend(x, find_polynomial_trend(sub, 1, dt), dt)


def find_trend_with_best_fit(x: np.ndarray, dt: float) -> np.ndarray:
    """Coefficients of the better of a linear and a quadratic trend.

    The quadratic is preferred only when it lowers the residual sum of squares
    by more than ``1 - BEST_FIT_IMPROVEMENT`` and the linear residual is above
    round-off level. Returns an empty array for degenerate input.
    """
    linear = find_polynomial_trend(x, 1, dt)
    if linear.size == 0:
        return linear
    quadratic = find_polynomial_trend(x, 2, dt)
    if quadratic.size == 0:
        return linear

    x = np.asarray(x, dtype=float)
    t = make_time_array(dt, len(x))
    rss1 = float(np.sum((x - np.polyval(linear, t)) ** 2))
    rss2 = float(np.sum((x - np.polyval(quadratic, t)) ** 2))
    floor = len(x) * (1e-10 * (1.0 + np.max(np.abs(x)))) ** 2
    if rss1 > floor and rss2 < BEST_FIT_IMPROVEMENT * rss1:
        return quadratic
    return linear


def remove_trend_with_best_fit(x: np.ndarray, dt: float) -> int:
    """Removes the best-fit trend in place and returns its order (-1 on failure)."""
    if not _is_mutable(x):
        return -1
    coefs = find_trend_with_best_fit(x, dt)
    if coefs.size == 0:
        return -1
    remove_polynomial_trend(x, coefs, dt)
    return len(coefs) - 1


# =============================================================================
# SEARCH AND STATISTICS
# =============================================================================

def find_subset_mean(x: np.ndarray, start: int, end: int) -> float:
    """Mean of ``x[start:end]`` or ``MIN_VALUE`` for an invalid range."""
    if _is_empty(x) or start < 0 or end > len(x) or start >= end:
        return MIN_VALUE
    return float(np.mean(x[start:end]))


def _crossing_mask(x: np.ndarray) -> np.ndarray:
    # pair (i, i+1) changes sign; a zero followed by a non-zero counts once
    a, b = x[:-1], x[1:]
    return ((a <= 0) & (b > 0)) | ((a >= 0) & (b < 0))


def find_zero_crossing(x: np.ndarray, from_index: int, direction: int) -> int:
    """Finds the nearest zero crossing from a starting index.

    Parameters
    ----------
    x : np.ndarray
        Array to search.
    from_index : int
        Index where the scan starts.
    direction : int
        0 scans toward increasing index, 1 toward decreasing index.

    Returns
    -------
    int
        Lower index ``i`` of the first pair ``(i, i+1)`` with a sign change
        met in the scan direction, -1 if there is none, -2 for an empty array,
        an out-of-range start or an unknown direction.
    """
    if _is_empty(x) or direction not in (0, 1) or not 0 <= from_index < len(x):
        return -2
    x = np.asarray(x, dtype=float)
    if len(x) < 2:
        return -1
    mask = _crossing_mask(x)
    if direction == 0:
        hits = np.flatnonzero(mask[from_index:])
        return int(hits[0] + from_index) if hits.size else -1
    hits = np.flatnonzero(mask[:from_index])
    return int(hits[-1]) if hits.size else -1


def correct_for_zero_initial_estimate(x: np.ndarray, index: int) -> bool:
    """Removes the mean of the leading segment ending at a zero crossing.

    The crossing nearest to `index` (scanning down) bounds the segment
    ``x[0:crossing + 1]``. Without a crossing the array is left unchanged and
    ``False`` is returned.
    """
    if not _is_mutable(x):
        return False
    index = min(max(int(index), 0), len(x) - 1)
    crossing = find_zero_crossing(x, index, 1)
    if crossing < 0:
        log.debug(f'No zero crossing before index {index}, initial estimate left unchanged.')
        return False
    x -= np.mean(x[:crossing + 1])
    return True


def root_mean_square(a: np.ndarray, b: np.ndarray) -> float:
    """RMS difference of two arrays, -1 for empty or mismatched input."""
    if _is_empty(a) or _is_empty(b) or len(a) != len(b):
        return -1.0
    diff = np.asarray(a, dtype=float) - np.asarray(b, dtype=float)
    return float(np.sqrt(np.mean(diff ** 2)))


def perform_3pt_smoothing(x: np.ndarray) -> np.ndarray:
    """Weighted 3 point smoothing (0.25, 0.5, 0.25); end samples are kept."""
    if _is_empty(x):
        return np.array([])
    x = np.asarray(x, dtype=float)
    smoothed = x.copy()
    if len(x) > 2:
        smoothed[1:-1] = 0.25 * x[:-2] + 0.5 * x[1:-1] + 0.25 * x[2:]
    return smoothed


# =============================================================================
# UNITS
# =============================================================================

def convert_units(x: np.ndarray, scale: float) -> np.ndarray:
    """Returns `x` multiplied by the unit conversion factor `scale`."""
    if _is_empty(x):
        return np.array([])
    return np.asarray(x, dtype=float) * scale


def counts_to_physical_values(counts: np.ndarray, scale: float) -> np.ndarray:
    """Converts integer sensor counts to physical values."""
    if _is_empty(counts):
        return np.array([])
    return np.asarray(counts, dtype=np.int64).astype(float) * scale


@dataclasses.dataclass(frozen=True)
class ArrayStats:
    """Peak (largest magnitude, signed), its index and the mean of an array."""
    peak: float
    peak_index: int
    mean: float

    @classmethod
    def of(cls, x: Optional[np.ndarray]) -> "ArrayStats":
        if _is_empty(x):
            return cls(0.0, 0, 0.0)
        x = np.asarray(x, dtype=float)
        index = int(np.argmax(np.abs(x)))
        return cls(float(x[index]), index, float(np.mean(x)))
