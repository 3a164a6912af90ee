"""
Adaptive baseline correction (ABC).

When a velocity record cannot be brought to rest by removing a single trend,
a piecewise baseline is fitted instead: a polynomial through the pre-event
segment, a polynomial through the tail of the record and a straight line
joining the two across the strong shaking. Every combination of polynomial
orders and tail break point is tried; each candidate is filtered, integrated
and quality checked, and the best-ranked passing candidate is kept.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import dataclasses
import logging
import math
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .arrayops import differentiate, make_time_array
from .config import V2Status
from .exceptions import FilterDesignError
from .filtering import FilterSpec, filter_and_integrate
from .qc import QCResult, QualityGate

log = logging.getLogger(__name__)


# =============================================================================
# BASELINE FUNCTION
# =============================================================================

def make_baseline(velocity: np.ndarray, dt: float, break1: int, break2: int,
                  order1: int, order3: int) -> np.ndarray:
    """Piecewise baseline through a velocity record.

    Parameters
    ----------
    velocity : np.ndarray
        Uncorrected velocity.
    dt : float
        Sample interval (s).
    break1 : int
        End of the first segment (event start).
    break2 : int
        Start of the third segment.
    order1, order3 : int
        Polynomial orders of the first and third segments.

    Returns
    -------
    np.ndarray
        Baseline, same length as `velocity`. With ``break1 <= order1 + 1``
        there is no first segment and the connecting line starts from zero at
        the first sample.
    """
    v = np.asarray(velocity, dtype=float)
    n = len(v)
    t = make_time_array(dt, n)
    baseline = np.zeros(n)

    tail = np.polyfit(t[break2:], v[break2:], order3)
    baseline[break2:] = np.polyval(tail, t[break2:])
    end_value = baseline[break2]

    if break1 > order1 + 1:
        head = np.polyfit(t[:break1], v[:break1], order1)
        baseline[:break1] = np.polyval(head, t[:break1])
        start_index, start_value = break1, float(np.polyval(head, t[break1]))
    else:
        start_index, start_value = 0, 0.0

    span = break2 - start_index
    if span > 0:
        baseline[start_index:break2] = start_value + (end_value - start_value) * np.arange(span) / span
    return baseline


# =============================================================================
# CANDIDATES
# =============================================================================

@dataclasses.dataclass(frozen=True)
class CandidateRecord:
    """One evaluated point of the search space."""
    index: int
    order1: int
    order3: int
    break1: int
    break2: int
    qc: QCResult

    @property
    def rank(self) -> float:
        return self.qc.rank()

    @property
    def passed(self) -> bool:
        return self.qc.passed


@dataclasses.dataclass(frozen=True)
class BaselineCandidate:
    """Selected baseline and the histories it produces."""
    record: CandidateRecord
    baseline: np.ndarray
    velocity: np.ndarray
    displacement: np.ndarray
    acceleration: np.ndarray
    initial_velocity: float
    initial_displacement: float
    calculated_taper: float
    config_taper: float


def break_candidates(n: int, dt: float, break1: int, order3: int,
                     interval: float, min_tail: float) -> List[int]:
    """Candidate starts of the third segment.

    Multiples of `interval` seconds after `break1` that leave at least
    `min_tail` seconds (and enough samples for an `order3` fit) to the end
    of the record.
    """
    step = max(1, int(round(interval / dt)))
    last = n - max(order3 + 2, int(round(min_tail / dt)))
    first = (break1 // step + 1) * step
    return list(range(first, last + 1, step))


class AdaptiveBaselineCorrector:
    """Searches for the piecewise velocity baseline that passes quality checks.

    Parameters
    ----------
    velocity : np.ndarray
        Uncorrected velocity (copied).
    dt : float
        Sample interval (s).
    start_index : int
        Event start, end of the first baseline segment.
    pick_index : int
        Event onset; sizes the quality check windows and anchors the filter
        start taper.
    filter_spec : FilterSpec
        Band-pass applied to each corrected velocity.
    taper_length : float
        Configured taper length (s).
    quality_gate : QualityGate
        Checks applied to each candidate.
    first_orders, third_orders : Sequence[int]
        Polynomial orders tried for the first and third segments.
    break_interval : float
        Spacing (s) of the third segment break points.
    min_tail : float
        Minimum span (s) of the third segment.
    differentiation : callable, optional
        ``f(x, dt)`` used to derive acceleration from velocity.
    """

    def __init__(self, velocity: np.ndarray, dt: float, start_index: int, pick_index: int,
                 filter_spec: FilterSpec, taper_length: float, quality_gate: QualityGate,
                 first_orders: Sequence[int] = (1, 2), third_orders: Sequence[int] = (1, 2),
                 break_interval: float = 1.0, min_tail: float = 2.0, differentiation=None):
        self.velocity = np.array(velocity, dtype=float)
        self.dt = dt
        self.start_index = int(start_index)
        self.pick_index = int(pick_index)
        self.filter_spec = filter_spec
        self.taper_length = taper_length
        self.quality_gate = quality_gate
        self.first_orders = tuple(first_orders)
        self.third_orders = tuple(third_orders)
        self.break_interval = break_interval
        self.min_tail = min_tail
        self.differentiation = differentiation or differentiate

        self.candidates: List[CandidateRecord] = []
        self.solution: Optional[BaselineCandidate] = None
        self.status: Optional[V2Status] = None

    @property
    def num_candidates(self) -> int:
        return len(self.candidates)

    @property
    def baseline(self) -> Optional[np.ndarray]:
        return None if self.solution is None else self.solution.baseline

    @property
    def calculated_taper(self) -> float:
        return 0.0 if self.solution is None else self.solution.calculated_taper

    @property
    def config_taper(self) -> float:
        return 0.0 if self.solution is None else self.solution.config_taper

    def search_space(self) -> Iterator[Tuple[int, int, int, int]]:
        """Yields ``(order1, order3, break1, break2)`` in enumeration order."""
        n = len(self.velocity)
        for order1 in self.first_orders:
            for order3 in self.third_orders:
                for break2 in break_candidates(n, self.dt, self.start_index, order3,
                                               self.break_interval, self.min_tail):
                    yield order1, order3, self.start_index, break2

    def _evaluate(self, order1: int, order3: int, break1: int, break2: int):
        baseline = make_baseline(self.velocity, self.dt, break1, break2, order1, order3)
        filtered = filter_and_integrate(self.velocity - baseline, self.dt, self.filter_spec,
                                        self.taper_length, self.pick_index)
        accel = self.differentiation(filtered.velocity, self.dt)
        qc = self.quality_gate.evaluate(filtered.velocity, filtered.displacement,
                                        self.filter_spec.low_cut, self.dt, self.pick_index)
        return baseline, filtered, accel, qc

    def find_fit(self) -> V2Status:
        """Runs the search.

        Returns
        -------
        V2Status
            ``V2Status.NOABC`` if no candidate passes, otherwise the status of
            the quality re-check of the promoted candidate (``GOOD`` or
            ``FAILQC``).

        Raises
        ------
        FilterDesignError
            If the filter cannot be designed for the sample interval.
        """
        if not self.filter_spec.validate(self.dt):
            raise FilterDesignError(f'Invalid ABC filter {self.filter_spec} for dt={self.dt}')

        self.candidates = []
        best: Optional[CandidateRecord] = None
        for order1, order3, break1, break2 in self.search_space():
            _, _, _, qc = self._evaluate(order1, order3, break1, break2)
            record = CandidateRecord(len(self.candidates), order1, order3, break1, break2, qc)
            self.candidates.append(record)
            if record.passed and (best is None or record.rank < best.rank):
                best = record

        log.info(f'ABC evaluated {self.num_candidates} candidate baselines.')
        if best is None:
            log.warning('ABC: no candidate baseline passed the quality checks.')
            self.status = V2Status.NOABC
            return self.status

        baseline, filtered, accel, _ = self._evaluate(best.order1, best.order3, best.break1, best.break2)
        self.solution = BaselineCandidate(
            record=best,
            baseline=baseline,
            velocity=filtered.velocity,
            displacement=filtered.displacement,
            acceleration=accel,
            initial_velocity=filtered.initial_velocity,
            initial_displacement=filtered.initial_displacement,
            calculated_taper=filtered.calculated_taper,
            config_taper=filtered.config_taper,
        )
        recheck = self.quality_gate.evaluate(filtered.velocity, filtered.displacement,
                                             self.filter_spec.low_cut, self.dt, self.pick_index)
        self.status = V2Status.GOOD if recheck.passed else V2Status.FAILQC
        log.info(f'ABC selected candidate {best.index}: orders ({best.order1}, {best.order3}), '
                 f'breaks ({best.break1}, {best.break2}), rank {best.rank:.3f}, status {self.status.value}.')
        return self.status

    def rank_table(self) -> np.ndarray:
        """Candidate ranks in enumeration order (inf for failed candidates)."""
        return np.array([c.rank if c.passed else math.inf for c in self.candidates])
