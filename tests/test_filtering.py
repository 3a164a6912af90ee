import numpy as np
import pytest

from smcpy.exceptions import FilterDesignError
from smcpy.filtering import ButterworthFilter, FilterSpec, filter_and_integrate


class TestFilterSpec:

    @pytest.mark.parametrize("low, high, dt, poles, valid", [
        (0.1, 20.0, 0.01, 2, True),
        (0.1, 49.9, 0.01, 2, True),
        (0.1, 50.0, 0.01, 2, False),
        (5.0, 5.0, 0.01, 2, False),
        (10.0, 5.0, 0.01, 2, False),
        (0.0, 5.0, 0.01, 2, False),
        (0.1, 20.0, 0.0, 2, False),
        (0.1, 20.0, 0.01, 0, False),
    ])
    def test_validate(self, low, high, dt, poles, valid):
        assert FilterSpec(low, high, poles).validate(dt) is valid


class TestButterworthFilter:

    def test_design_rejects_inverted_cutoffs(self):
        bp = ButterworthFilter()
        assert not bp.design(20.0, 0.1, 0.01, 2)
        assert not bp.designed

    def test_design_rejects_cutoff_above_nyquist(self):
        assert not ButterworthFilter().design(0.1, 60.0, 0.01, 2)

    def test_apply_without_design_raises(self):
        with pytest.raises(FilterDesignError):
            ButterworthFilter().apply(np.ones(100), 1.0)

    def test_zero_input_gives_zero_output(self):
        bp = ButterworthFilter()
        assert bp.design(0.1, 20.0, 0.01, 2)
        y = bp.apply(np.zeros(1000), 2.0, 100)
        assert np.all(y == 0.0)

    def test_output_is_padded(self):
        bp = ButterworthFilter()
        bp.design(0.1, 20.0, 0.01, 2)
        x = np.ones(1000)
        y = bp.apply(x, 2.0)
        assert bp.pad_length >= 2999
        assert len(y) == len(x) + 2 * bp.pad_length
        assert len(bp.unpad(y)) == len(x)

    def test_passband_sine_is_preserved(self):
        dt = 0.01
        t = np.arange(4000) * dt
        x = np.sin(2 * np.pi * 5.0 * t)
        bp = ButterworthFilter()
        bp.design(0.1, 20.0, dt, 2)
        y = bp.unpad(bp.apply(x, 2.0))
        middle = slice(1000, 3000)
        assert np.max(np.abs(y[middle] - x[middle])) < 0.02

    def test_stopband_sine_is_attenuated(self):
        dt = 0.005
        t = np.arange(8000) * dt
        x = np.sin(2 * np.pi * 45.0 * t)
        bp = ButterworthFilter()
        bp.design(0.1, 20.0, dt, 2)
        y = bp.unpad(bp.apply(x, 2.0))
        assert np.max(np.abs(y[2000:6000])) < 0.1

    def test_causal_filter_delays_the_response(self):
        dt = 0.01
        x = np.zeros(2000)
        x[1000] = 1.0
        causal = ButterworthFilter()
        causal.design(0.5, 10.0, dt, 2, causal=True)
        zero_phase = ButterworthFilter()
        zero_phase.design(0.5, 10.0, dt, 2)
        yc = causal.unpad(causal.apply(x, 0.0))
        yz = zero_phase.unpad(zero_phase.apply(x, 0.0))
        assert np.all(yc[:1000] == 0.0)
        assert np.max(np.abs(yz[:1000])) > 0.0

    def test_taper_lengths(self):
        bp = ButterworthFilter()
        bp.design(0.1, 20.0, 0.01, 2)
        bp.apply(np.ones(4000), 2.0, 300)
        assert bp.calculated_taper == pytest.approx(3.0)
        assert bp.config_taper == pytest.approx(2.0)

        bp.apply(np.ones(4000), 2.0, 1000)
        # half a period of the 0.1 Hz corner
        assert bp.calculated_taper == pytest.approx(5.0)

        bp.apply(np.ones(4000), 2.0)
        assert bp.calculated_taper == pytest.approx(2.0)

    def test_untapered_start(self):
        bp = ButterworthFilter()
        bp.design(0.1, 20.0, 0.01, 2)
        x = np.sin(2 * np.pi * 2.0 * np.arange(4000) * 0.01)
        tapered = bp.unpad(bp.apply(x, 2.0))
        untapered = bp.unpad(bp.apply(x, 2.0, 1000, taper_start=False))
        assert bp.calculated_taper == 0.0
        assert bp.config_taper == pytest.approx(2.0)
        assert np.max(np.abs(untapered[:50])) > 0.9
        assert np.max(np.abs(tapered[:50])) < 0.3

    def test_highpass_design(self):
        dt = 0.01
        t = np.arange(4000) * dt
        x = np.sin(2 * np.pi * 30.0 * t)
        hp = ButterworthFilter()
        assert hp.design(0.5, 20.0, dt, 2, bandpass=False)
        y = hp.unpad(hp.apply(x, 2.0))
        # 30 Hz is above the band-pass high cut but passes the high-pass
        assert np.max(np.abs(y[1000:3000])) > 0.95


class TestFilterAndIntegrate:

    def test_displacement_of_sine_velocity(self):
        dt = 0.01
        t = np.arange(6000) * dt
        f = 2.0
        velocity = np.sin(2 * np.pi * f * t)
        result = filter_and_integrate(velocity, dt, FilterSpec(0.1, 20.0), 2.0, 0)
        assert len(result.velocity) == len(velocity)
        assert len(result.displacement) == len(velocity)
        middle = slice(2000, 4000)
        expected = (1.0 - np.cos(2 * np.pi * f * t)) / (2 * np.pi * f)
        expected_ac = expected - np.mean(expected[middle])
        observed_ac = result.displacement - np.mean(result.displacement[middle])
        assert np.max(np.abs(observed_ac[middle] - expected_ac[middle])) < 0.01
        assert result.initial_velocity == result.velocity[0]
        assert result.initial_displacement == result.displacement[0]

    def test_invalid_spec_raises(self):
        with pytest.raises(FilterDesignError):
            filter_and_integrate(np.ones(100), 0.01, FilterSpec(0.1, 80.0), 2.0, 0)

    def test_short_input_raises(self):
        with pytest.raises(ValueError):
            filter_and_integrate(np.ones(1), 0.01, FilterSpec(0.1, 20.0), 2.0, 0)
