"""
Butterworth band-pass filtering with tapering and zero padding.

The filter is designed as second-order sections and applied forward and
backward (zero phase) unless a causal filter is requested. Before filtering
the record is tapered with half-cosine windows and padded with zeros so that
the transient of the recursive filter does not land inside the record.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import dataclasses
import logging
from typing import Optional

import numpy as np
from scipy import signal

from .arrayops import integrate
from .exceptions import FilterDesignError

log = logging.getLogger(__name__)

# pad length in units of num_poles / low_cut periods
PAD_FACTOR = 1.5


@dataclasses.dataclass(frozen=True)
class FilterSpec:
    """Corner frequencies (Hz), roll-off and phase behaviour of a filter."""
    low_cut: float
    high_cut: float
    num_poles: int = 2
    causal: bool = False

    def validate(self, dt: float) -> bool:
        """True if the cutoffs are usable at sample interval `dt`."""
        if dt is None or not dt > 0 or self.num_poles < 1:
            return False
        nyquist = 0.5 / dt
        return 0.0 < self.low_cut < self.high_cut < nyquist


def _half_cosine(m: int) -> np.ndarray:
    """Rising half-cosine window of `m` samples (starts at 0)."""
    return 0.5 * (1.0 - np.cos(np.pi * np.arange(m) / m))


class ButterworthFilter:
    """Band-pass (or high-pass) Butterworth filter.

    Usage is two-step: :meth:`design` computes the coefficients for a sample
    interval and returns ``False`` when the cutoffs are not valid, then
    :meth:`apply` tapers, pads and filters an array. After :meth:`apply`,
    ``pad_length`` gives the number of zeros added on each side and the taper
    lengths actually used are available as ``calculated_taper`` (start of the
    record) and ``config_taper`` (end of the record).
    """

    def __init__(self):
        self.spec: Optional[FilterSpec] = None
        self.dt: Optional[float] = None
        self.sos: Optional[np.ndarray] = None
        self.pad_length = 0
        self.calculated_taper = 0.0
        self.config_taper = 0.0

    @property
    def designed(self) -> bool:
        return self.sos is not None

    def design(self, low_cut: float, high_cut: float, dt: float,
               num_poles: int = 2, bandpass: bool = True, causal: bool = False) -> bool:
        """Calculates the filter coefficients.

        Parameters
        ----------
        low_cut, high_cut : float
            Corner frequencies (Hz). Both are validated even for a high-pass.
        dt : float
            Sample interval (s).
        num_poles : int, optional
            Butterworth order. Default is 2.
        bandpass : bool, optional
            False designs a high-pass at `low_cut`. Default is True.
        causal : bool, optional
            True filters in the forward direction only. Default is False.

        Returns
        -------
        bool
            False if the cutoffs are invalid for the sample rate.
        """
        spec = FilterSpec(low_cut, high_cut, int(num_poles), causal)
        self.sos = None
        if not spec.validate(dt):
            log.warning(f'Invalid filter parameters: low={low_cut} Hz, high={high_cut} Hz, '
                        f'poles={num_poles}, dt={dt} s.')
            return False

        fs = 1.0 / dt
        if bandpass:
            self.sos = signal.butter(spec.num_poles, [spec.low_cut, spec.high_cut],
                                     btype='bandpass', output='sos', fs=fs)
        else:
            self.sos = signal.butter(spec.num_poles, spec.low_cut,
                                     btype='highpass', output='sos', fs=fs)
        self.spec = spec
        self.dt = dt
        return True

    def apply(self, x: np.ndarray, taper_length: float, event_index: int = 0,
              taper_start: bool = True) -> np.ndarray:
        """Tapers, pads and filters `x`.

        The start taper covers the pre-event span, at least the configured
        `taper_length` and, for low cutoffs, up to half a period of the low
        corner, but never more than `event_index` samples. The end taper is
        `taper_length`. Both are limited to half of the record.

        Parameters
        ----------
        x : np.ndarray
            Array to filter (not modified).
        taper_length : float
            Configured taper length (s).
        event_index : int, optional
            Index of the event start. 0 or less uses the configured taper at
            the start as well. Default is 0.
        taper_start : bool, optional
            False leaves the start of the record untapered, so the signal
            meets the zero padding unchanged. Used before event detection,
            where a rising taper would look like an arrival. Default is True.

        Returns
        -------
        np.ndarray
            Filtered array including ``pad_length`` samples of padding on each
            side.

        Raises
        ------
        FilterDesignError
            If the coefficients have not been calculated.
        """
        if self.sos is None:
            raise FilterDesignError('Filter coefficients have not been calculated')

        x = np.asarray(x, dtype=float)
        n = len(x)
        dt = self.dt
        spec = self.spec

        config_samples = min(int(round(taper_length / dt)), n // 2)
        if not taper_start:
            start_samples = 0
        elif event_index > 0:
            wanted = max(config_samples, int(round(0.5 / (spec.low_cut * dt))))
            start_samples = min(int(event_index), wanted, n // 2)
        else:
            start_samples = config_samples
        end_samples = config_samples

        tapered = x.copy()
        if start_samples > 0:
            tapered[:start_samples] *= _half_cosine(start_samples)
        if end_samples > 0:
            tapered[n - end_samples:] *= _half_cosine(end_samples)[::-1]

        pad = max(int(np.ceil(PAD_FACTOR * spec.num_poles / (spec.low_cut * dt))), end_samples)
        padded = np.concatenate((np.zeros(pad), tapered, np.zeros(pad)))

        y = signal.sosfilt(self.sos, padded)
        if not spec.causal:
            y = signal.sosfilt(self.sos, y[::-1])[::-1]

        self.pad_length = pad
        self.calculated_taper = start_samples * dt
        self.config_taper = end_samples * dt
        log.debug(f'Filtered {n} samples: pad={pad}, start taper={self.calculated_taper:.2f} s, '
                  f'end taper={self.config_taper:.2f} s.')
        return np.ascontiguousarray(y)

    def unpad(self, y: np.ndarray) -> np.ndarray:
        """Removes the padding added by the last :meth:`apply` call."""
        if self.pad_length == 0:
            return np.array(y, dtype=float)
        return np.array(y[self.pad_length:len(y) - self.pad_length], dtype=float)


@dataclasses.dataclass(frozen=True)
class FilterIntegrateResult:
    velocity: np.ndarray
    displacement: np.ndarray
    padded_velocity: np.ndarray
    initial_velocity: float
    initial_displacement: float
    calculated_taper: float
    config_taper: float
    pad_length: int


def filter_and_integrate(velocity: np.ndarray, dt: float, spec: FilterSpec,
                         taper_length: float, start_index: int) -> FilterIntegrateResult:
    """Band-pass filters a velocity record and integrates it to displacement.

    Integration runs over the padded filtered velocity so the displacement
    carries the initial value accumulated in the padding; both arrays are
    then trimmed back to the record window.

    Raises
    ------
    FilterDesignError
        If `spec` is not valid for `dt`.
    ValueError
        If the velocity has fewer than two samples.
    """
    velocity = np.asarray(velocity, dtype=float)
    if len(velocity) < 2:
        raise ValueError('At least two samples are needed to filter and integrate')

    bp = ButterworthFilter()
    if not bp.design(spec.low_cut, spec.high_cut, dt, spec.num_poles, causal=spec.causal):
        raise FilterDesignError('Invalid bandpass filter calculated parameters: '
                                f'{spec.low_cut}-{spec.high_cut} Hz at dt={dt} s')

    padded = bp.apply(velocity, taper_length, start_index)
    padded_disp = integrate(padded, dt)
    vel = bp.unpad(padded)
    disp = bp.unpad(padded_disp)
    return FilterIntegrateResult(
        velocity=vel,
        displacement=disp,
        padded_velocity=padded,
        initial_velocity=float(vel[0]),
        initial_displacement=float(disp[0]),
        calculated_taper=bp.calculated_taper,
        config_taper=bp.config_taper,
        pad_length=bp.pad_length,
    )
