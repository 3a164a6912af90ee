import math

import numpy as np
import pytest

from conftest import DT, ONSET
from smcpy import arrayops
from smcpy.baseline import AdaptiveBaselineCorrector, break_candidates, make_baseline
from smcpy.config import V2Status
from smcpy.exceptions import FilterDesignError
from smcpy.filtering import FilterSpec
from smcpy.qc import QCThresholds, QualityGate

SPEC = FilterSpec(0.1, 20.0)


def _hinge_velocity(n=4000, break_index=2000, slope=0.5):
    t = np.arange(n) * DT
    return np.minimum(slope * t, slope * t[break_index])


class TestMakeBaseline:

    def test_hinge_is_reproduced(self):
        v = _hinge_velocity()
        baseline = make_baseline(v, DT, 500, 2000, 1, 1)
        np.testing.assert_allclose(baseline, v, atol=1e-8)

    def test_without_first_segment_line_starts_at_zero(self):
        v = _hinge_velocity()
        baseline = make_baseline(v, DT, 0, 2000, 1, 1)
        assert baseline[0] == 0.0
        np.testing.assert_allclose(baseline, v, atol=1e-8)

    def test_segments(self):
        t = np.arange(3000) * DT
        v = 0.1 * t ** 2
        baseline = make_baseline(v, DT, 600, 2000, 2, 2)
        np.testing.assert_allclose(baseline[:600], v[:600], atol=1e-8)
        np.testing.assert_allclose(baseline[2000:], v[2000:], atol=1e-8)
        # straight connector between the two segments
        assert np.allclose(np.diff(baseline[600:2000], 2), 0.0, atol=1e-10)

    def test_input_is_not_modified(self):
        v = _hinge_velocity()
        copy = v.copy()
        make_baseline(v, DT, 500, 2000, 2, 2)
        np.testing.assert_array_equal(v, copy)


class TestBreakCandidates:

    def test_grid(self):
        breaks = break_candidates(4000, DT, 500, 1, 1.0, 2.0)
        assert breaks[0] == 600
        assert breaks[-1] == 3800
        assert len(breaks) == 33
        assert all(b % 100 == 0 for b in breaks)

    def test_grid_is_absolute(self):
        assert break_candidates(4000, DT, 550, 1, 1.0, 2.0)[0] == 600

    def test_record_too_short(self):
        assert break_candidates(600, DT, 500, 1, 1.0, 2.0) == []


class TestAdaptiveBaselineCorrector:

    @pytest.fixture
    def drifting_velocity(self, drifting_burst):
        accel = drifting_burst.copy()
        arrayops.remove_value(accel, float(np.mean(accel[:ONSET])))
        return arrayops.integrate(accel, DT)

    def _corrector(self, velocity, gate=None, **kwargs):
        return AdaptiveBaselineCorrector(velocity, DT, ONSET, ONSET, SPEC, 2.0,
                                         gate or QualityGate(), **kwargs)

    def test_search_space_order(self, drifting_velocity):
        abc = self._corrector(drifting_velocity)
        space = list(abc.search_space())
        assert len(space) == 132
        assert space[0] == (1, 1, ONSET, 600)
        assert space[1] == (1, 1, ONSET, 700)
        assert space[-1] == (2, 2, ONSET, 3800)
        assert space == sorted(space)

    def test_drift_is_removed(self, drifting_velocity):
        abc = self._corrector(drifting_velocity)
        status = abc.find_fit()
        assert status is V2Status.GOOD
        assert abc.num_candidates == 132
        assert abc.solution is not None
        assert abc.solution.record.passed
        assert len(abc.solution.velocity) == len(drifting_velocity)
        assert len(abc.solution.acceleration) == len(drifting_velocity)
        assert abc.baseline is not None
        assert abc.calculated_taper > 0.0

    def test_filter_taper_starts_at_the_pick(self, drifting_velocity):
        abc = AdaptiveBaselineCorrector(drifting_velocity, DT, ONSET - 200, ONSET, SPEC, 2.0,
                                        QualityGate(), first_orders=(1,), third_orders=(1,))
        abc.find_fit()
        assert abc.calculated_taper == pytest.approx(ONSET * DT)

    def test_winner_has_the_lowest_rank(self, drifting_velocity):
        abc = self._corrector(drifting_velocity)
        abc.find_fit()
        ranks = abc.rank_table()
        best = abc.solution.record
        assert ranks[best.index] == np.min(ranks)
        # ties go to the earliest candidate
        assert best.index == int(np.argmin(ranks))

    def test_breaking_candidate_at_drift_end_passes(self, drifting_velocity):
        abc = self._corrector(drifting_velocity)
        abc.find_fit()
        record = next(c for c in abc.candidates
                      if (c.order1, c.order3, c.break2) == (1, 1, 2000))
        assert record.passed

    def test_no_candidate_passes(self, drifting_velocity):
        gate = QualityGate(QCThresholds(1e-12, 1e-12, 1e-12))
        abc = self._corrector(drifting_velocity, gate, first_orders=(1,), third_orders=(1,))
        assert abc.find_fit() is V2Status.NOABC
        assert abc.solution is None
        assert abc.baseline is None
        assert abc.num_candidates == 33
        assert all(math.isinf(r) for r in abc.rank_table())

    def test_input_is_copied(self, drifting_velocity):
        copy = drifting_velocity.copy()
        self._corrector(drifting_velocity, first_orders=(1,), third_orders=(1,)).find_fit()
        np.testing.assert_array_equal(drifting_velocity, copy)

    def test_invalid_filter_raises(self, drifting_velocity):
        abc = AdaptiveBaselineCorrector(drifting_velocity, DT, ONSET, ONSET, FilterSpec(0.1, 60.0),
                                        2.0, QualityGate())
        with pytest.raises(FilterDesignError):
            abc.find_fit()
