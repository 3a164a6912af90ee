"""
Quality checks on corrected velocity and displacement.

A corrected record is expected to start at rest and to end at rest without a
permanent offset: the mean velocity over a window at the start, and the mean
velocity and displacement over a window at the end, must stay below fixed
limits. The checks are pure functions of their inputs.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import dataclasses
import logging
import math
from typing import List, Optional

import numpy as np

from .arrayops import find_zero_crossing

log = logging.getLogger(__name__)

# shortest window (s) used for the boundary means
MIN_WINDOW_SECONDS = 0.25


@dataclasses.dataclass(frozen=True)
class QCThresholds:
    """Limits for initial velocity (cm/s), residual velocity (cm/s) and residual displacement (cm)."""
    init_velocity: float = 0.1
    resid_velocity: float = 0.1
    resid_displacement: float = 0.1


@dataclasses.dataclass(frozen=True)
class QCResult:
    """Values and outcome of a quality check.

    Metrics that were not evaluated are NaN and count as passed.
    """
    init_velocity: float = math.nan
    resid_velocity: float = math.nan
    resid_displacement: float = math.nan
    window: int = 0
    thresholds: QCThresholds = QCThresholds()

    def _ok(self, value: float, limit: float) -> bool:
        return math.isnan(value) or value <= limit

    @property
    def velocity_passed(self) -> bool:
        return (self._ok(self.init_velocity, self.thresholds.init_velocity)
                and self._ok(self.resid_velocity, self.thresholds.resid_velocity))

    @property
    def displacement_passed(self) -> bool:
        return self._ok(self.resid_displacement, self.thresholds.resid_displacement)

    @property
    def passed(self) -> bool:
        return self.velocity_passed and self.displacement_passed

    def failures(self) -> List[str]:
        """Names of the metrics above their limit."""
        checks = (("init_velocity", self.init_velocity, self.thresholds.init_velocity),
                  ("resid_velocity", self.resid_velocity, self.thresholds.resid_velocity),
                  ("resid_displacement", self.resid_displacement, self.thresholds.resid_displacement))
        return [name for name, value, limit in checks if not self._ok(value, limit)]

    def rank(self) -> float:
        """Sum of the evaluated metrics normalised by their limits."""
        total = 0.0
        for value, limit in ((self.init_velocity, self.thresholds.init_velocity),
                             (self.resid_velocity, self.thresholds.resid_velocity),
                             (self.resid_displacement, self.thresholds.resid_displacement)):
            if not math.isnan(value):
                total += value / limit if limit > 0 else value
        return total

    def merged(self, other: "QCResult") -> "QCResult":
        """Combines the metrics evaluated by two partial checks."""
        def pick(a, b):
            return b if math.isnan(a) else a
        return dataclasses.replace(
            self,
            init_velocity=pick(self.init_velocity, other.init_velocity),
            resid_velocity=pick(self.resid_velocity, other.resid_velocity),
            resid_displacement=pick(self.resid_displacement, other.resid_displacement),
            window=max(self.window, other.window))


class QualityGate:
    """Checks corrected histories against :class:`QCThresholds`.

    The gate holds only its thresholds; every evaluation returns a new
    :class:`QCResult`, so one gate can be shared between threads.
    """

    def __init__(self, thresholds: Optional[QCThresholds] = None):
        self.thresholds = thresholds or QCThresholds()

    @staticmethod
    def find_window(low_cut: float, dt: float, pick_index: int, length: int) -> int:
        """Number of samples averaged at each end of the record.

        A quarter of the pre-event span, at least ``MIN_WINDOW_SECONDS`` and at
        most one period of the low cutoff, never more than a quarter of the
        record and never less than one sample.
        """
        lower = int(round(MIN_WINDOW_SECONDS / dt))
        upper = max(lower, int(round(1.0 / (low_cut * dt))))
        window = min(max(pick_index // 4, lower), upper)
        return max(1, min(window, length // 4))

    @staticmethod
    def _initial_edge(x: np.ndarray, window: int) -> int:
        # end (exclusive) of the initial window, moved to the nearest zero crossing
        n = len(x)
        limit = max(1, n // 2)
        index = min(window, n - 1)
        candidates = [c for c in (find_zero_crossing(x, index, 0), find_zero_crossing(x, index, 1))
                      if 0 <= c < limit]
        if not candidates:
            return min(window, limit)
        crossing = min(candidates, key=lambda c: abs(c - index))
        return crossing + 1

    @staticmethod
    def _final_edge(x: np.ndarray, window: int) -> int:
        # start of the end window, moved to the nearest zero crossing
        n = len(x)
        index = max(n - window, 0)
        candidates = [c for c in (find_zero_crossing(x, index, 0), find_zero_crossing(x, index, 1))
                      if n // 2 <= c + 1 <= n - 1]
        if not candidates:
            return index
        crossing = min(candidates, key=lambda c: abs(c - index))
        return crossing + 1

    def evaluate_velocity(self, velocity: np.ndarray, low_cut: float, dt: float,
                          pick_index: int) -> QCResult:
        """Initial and residual velocity check."""
        v = np.asarray(velocity, dtype=float)
        if len(v) < 2:
            return QCResult(math.inf, math.inf, thresholds=self.thresholds)
        window = self.find_window(low_cut, dt, pick_index, len(v))
        init_edge = self._initial_edge(v, window)
        final_edge = self._final_edge(v, window)
        result = QCResult(
            init_velocity=abs(float(np.mean(v[:init_edge]))),
            resid_velocity=abs(float(np.mean(v[final_edge:]))),
            window=window,
            thresholds=self.thresholds,
        )
        log.debug(f'QC velocity: window={window}, initial={result.init_velocity:.4f}, '
                  f'residual={result.resid_velocity:.4f}')
        return result

    def evaluate_displacement(self, displacement: np.ndarray, low_cut: float, dt: float,
                              pick_index: int) -> QCResult:
        """Residual displacement check."""
        d = np.asarray(displacement, dtype=float)
        if len(d) < 2:
            return QCResult(resid_displacement=math.inf, thresholds=self.thresholds)
        window = self.find_window(low_cut, dt, pick_index, len(d))
        final_edge = self._final_edge(d, window)
        result = QCResult(
            resid_displacement=abs(float(np.mean(d[final_edge:]))),
            window=window,
            thresholds=self.thresholds,
        )
        log.debug(f'QC displacement: window={window}, residual={result.resid_displacement:.4f}')
        return result

    def evaluate(self, velocity: np.ndarray, displacement: np.ndarray, low_cut: float,
                 dt: float, pick_index: int) -> QCResult:
        """Velocity and displacement checks combined."""
        vel = self.evaluate_velocity(velocity, low_cut, dt, pick_index)
        return vel.merged(self.evaluate_displacement(displacement, low_cut, dt, pick_index))
