import numpy as np
import pytest

DT = 0.01
N_SAMPLES = 4000
ONSET = 500


def pulse(width: int, amplitude: float) -> np.ndarray:
    """One acceleration pulse with zero net velocity and displacement.

    Second derivative of a sin^4 displacement bump sampled over one period;
    it starts and ends at zero with zero slope.
    """
    theta = 2.0 * np.pi * np.arange(width) / width
    return amplitude * (np.cos(theta) - np.cos(2.0 * theta)) / 1.125


def burst_record(n=N_SAMPLES, dt=DT, onset=ONSET, duration=8.0, peak=200.0,
                 noise=0.002, seed=7) -> np.ndarray:
    """Quiet record with a burst of pulses starting exactly at `onset`."""
    rng = np.random.default_rng(seed)
    accel = noise * rng.standard_normal(n)
    end = onset + int(round(duration / dt))
    i = onset
    width = 20
    sign = 1.0
    while i + width <= end:
        amplitude = peak * np.exp(-(i - onset) * dt / 4.0)
        accel[i:i + width] += sign * pulse(width, amplitude)
        i += width
        width = int(rng.integers(15, 41))
        sign = rng.choice((-1.0, 1.0))
    return accel


def hinge_drift(n=N_SAMPLES, break_index=2000, level=0.5) -> np.ndarray:
    """Constant acceleration offset that stops at `break_index`."""
    drift = np.zeros(n)
    drift[:break_index] = level
    return drift


@pytest.fixture
def burst():
    return burst_record()


@pytest.fixture
def drifting_burst():
    return burst_record() + hinge_drift()
