"""
Ground motion intensity measures of corrected acceleration.

All functions take acceleration in cm/s^2. Metrics are only meaningful for
strong motion records, so :func:`compute_intensity_metrics` returns zeros
when the peak acceleration stays below the strong motion threshold.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import dataclasses
import logging
from typing import Tuple

import numpy as np
from scipy import integrate

from .config import FROM_G_CONVERSION
from .sdof import spectral_displacement

log = logging.getLogger(__name__)

HOUSNER_PERIODS = np.linspace(0.1, 2.5, 49)
HOUSNER_DAMPING = 0.05


@dataclasses.dataclass(frozen=True)
class IntensityMetrics:
    """Derived intensity measures of a corrected record.

    Attributes
    ----------
    bracketed_duration : float
        Time between first and last threshold exceedance (s).
    arias_intensity : float
        Arias intensity (m/s).
    housner_intensity : float
        Integral of the 5 % damped PSV over 0.1-2.5 s (cm).
    channel_rms : float
        RMS acceleration in the significant duration interval (cm/s^2).
    duration_interval : float
        5-95 % significant duration (s).
    cumulative_abs_velocity : float
        Integral of absolute acceleration (cm/s).
    strong_motion : bool
        Peak acceleration reached the strong motion threshold.
    """
    bracketed_duration: float = 0.0
    arias_intensity: float = 0.0
    housner_intensity: float = 0.0
    channel_rms: float = 0.0
    duration_interval: float = 0.0
    cumulative_abs_velocity: float = 0.0
    strong_motion: bool = False

    def as_dict(self):
        return dataclasses.asdict(self)


def is_strong_motion(accel: np.ndarray, threshold_percent_g: float) -> bool:
    """True if the peak acceleration reaches `threshold_percent_g`."""
    if accel is None or len(accel) == 0:
        return False
    return float(np.max(np.abs(accel))) >= threshold_percent_g * FROM_G_CONVERSION / 100.0


def bracketed_duration(accel: np.ndarray, dt: float, threshold_percent_g: float) -> float:
    """Time between the first and last exceedance of a threshold.

    Parameters
    ----------
    accel : np.ndarray
        Acceleration (cm/s^2).
    dt : float
        Sample interval (s).
    threshold_percent_g : float
        Threshold as a percentage of g.

    Returns
    -------
    float
        Duration (s), 0 if the threshold is never reached.
    """
    level = threshold_percent_g * FROM_G_CONVERSION / 100.0
    above = np.flatnonzero(np.abs(accel) >= level)
    if above.size == 0:
        return 0.0
    return float((above[-1] - above[0]) * dt)


def arias_intensity(accel: np.ndarray, dt: float) -> float:
    """Arias intensity in m/s."""
    a = np.asarray(accel, dtype=float) / 100.0
    return float(np.pi / (2.0 * FROM_G_CONVERSION / 100.0) * integrate.trapezoid(a ** 2, dx=dt))


def significant_duration(accel: np.ndarray, dt: float,
                         limits: Tuple[float, float] = (0.05, 0.95)) -> Tuple[float, int, int]:
    """Significant duration from the normalised Husid curve.

    Returns
    -------
    Tuple[float, int, int]
        Duration (s) and the indices where the Husid curve reaches the lower
        and upper limit.
    """
    a = np.asarray(accel, dtype=float)
    husid = integrate.cumulative_trapezoid(a ** 2, dx=dt, initial=0)
    total = husid[-1]
    if total <= 0:
        return 0.0, 0, 0
    husid /= total
    start = int(np.searchsorted(husid, limits[0]))
    end = min(int(np.searchsorted(husid, limits[1])), len(a) - 1)
    return float((end - start) * dt), start, end


def housner_intensity(accel: np.ndarray, dt: float) -> float:
    """Spectrum intensity: PSV (5 %) integrated over 0.1-2.5 s, in cm."""
    sd = spectral_displacement(HOUSNER_PERIODS, np.asarray(accel, dtype=float), HOUSNER_DAMPING, dt)
    psv = 2.0 * np.pi / HOUSNER_PERIODS * sd
    return float(integrate.trapezoid(psv, x=HOUSNER_PERIODS))


def cumulative_absolute_velocity(accel: np.ndarray, dt: float) -> float:
    """Cumulative absolute velocity, the integral of |a(t)|, in cm/s.

    Parameters
    ----------
    accel : np.ndarray
        Acceleration (cm/s^2).
    dt : float
        Sample interval (s).

    Returns
    -------
    float
        CAV (cm/s).
    """
    return float(integrate.trapezoid(np.abs(accel), dx=dt))


def compute_intensity_metrics(accel: np.ndarray, dt: float,
                              threshold_percent_g: float = 5.0) -> IntensityMetrics:
    """Intensity measures of a corrected acceleration record.

    Parameters
    ----------
    accel : np.ndarray
        Corrected acceleration (cm/s^2).
    dt : float
        Sample interval (s).
    threshold_percent_g : float, optional
        Strong motion threshold in percent of g. Default is 5.

    Returns
    -------
    IntensityMetrics
        All zeros with ``strong_motion=False`` below the threshold.
    """
    a = np.asarray(accel, dtype=float)
    if len(a) < 2 or not is_strong_motion(a, threshold_percent_g):
        log.info('Record below the strong motion threshold, intensity metrics not computed.')
        return IntensityMetrics()

    duration, start, end = significant_duration(a, dt)
    window = a[start:end + 1]
    metrics = IntensityMetrics(
        bracketed_duration=bracketed_duration(a, dt, threshold_percent_g),
        arias_intensity=arias_intensity(a, dt),
        housner_intensity=housner_intensity(a, dt),
        channel_rms=float(np.sqrt(np.mean(window ** 2))) if window.size else 0.0,
        duration_interval=duration,
        cumulative_abs_velocity=cumulative_absolute_velocity(a, dt),
        strong_motion=True,
    )
    log.info(f'Intensity: Arias={metrics.arias_intensity:.4f} m/s, '
             f'bracketed={metrics.bracketed_duration:.2f} s, '
             f'5-95% duration={metrics.duration_interval:.2f} s')
    return metrics
