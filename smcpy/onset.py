"""
Event onset (P-wave arrival) detection.

Two strategies are available and selected by :class:`OnsetMethod`:

- ``DE``: damping energy ratio. The record drives a heavily damped, short
  period oscillator and the power dissipated by its damper is monitored with
  short-term and long-term averages.
- ``AIC``: a recursive multi-band statistical picker (FilterPicker). Its
  recursive filter and statistics state is kept in a :class:`PickerMemory`
  owned by the caller, so independent records never share state.

Both return the sample index of the onset, or ``NO_PICK`` (0) when no event
is found.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import dataclasses
import enum
import logging
import math
from typing import Callable, Dict, List, Optional

import numpy as np

from .exceptions import ConfigurationError
from .sdof import sdof_response

log = logging.getLogger(__name__)

NO_PICK = 0

# peak-to-peak amplitude below which a record has no usable signal
FLAT_TOLERANCE = 1e-10

# smallest positive single precision value, used as a zero test on std devs
_FLOAT_MIN = 1.4e-45


class OnsetMethod(enum.Enum):
    DE = "DE"
    AIC = "AIC"


@dataclasses.dataclass(frozen=True)
class OnsetResult:
    pick_index: int
    start_index: int

    @property
    def found(self) -> bool:
        return self.pick_index > NO_PICK


def apply_buffer(pick_index: int, buffer_seconds: float, dt: float, length: int) -> int:
    """Moves the pick back by the onset buffer, clamped to the record."""
    start = pick_index - int(round(buffer_seconds / dt))
    return min(max(start, 0), max(length - 1, 0))


def is_flat(accel: np.ndarray) -> bool:
    """True if the mean-removed record has no measurable amplitude."""
    if accel is None or len(accel) < 3:
        return True
    x = np.asarray(accel, dtype=float)
    return bool(np.ptp(x - np.mean(x)) <= FLAT_TOLERANCE)


# =============================================================================
# DAMPING ENERGY PICKER
# =============================================================================

@dataclasses.dataclass(frozen=True)
class DampingEnergyParams:
    """Settings of the damping energy picker.

    ``period=None`` selects a 0.01 s oscillator for records sampled at 100 sps
    or faster and 0.1 s otherwise.
    """
    sta_length: float = 0.05
    lta_length: float = 2.0
    trigger_ratio: float = 10.0
    onset_ratio: float = 2.0
    water_level: float = 1e-4
    damping: float = 0.6
    period: Optional[float] = None


def _trailing_mean(x: np.ndarray, window: int) -> np.ndarray:
    """Mean of the last `window` samples ending at each index (expanding at the start)."""
    csum = np.concatenate(([0.0], np.cumsum(x)))
    idx = np.arange(len(x))
    first = np.maximum(idx + 1 - window, 0)
    return (csum[idx + 1] - csum[first]) / (idx + 1 - first)


def damping_energy_pick(accel: np.ndarray, dt: float,
                        params: DampingEnergyParams = DampingEnergyParams()) -> int:
    """Onset index from the damping energy of a short period oscillator.

    Parameters
    ----------
    accel : np.ndarray
        Filtered acceleration.
    dt : float
        Sample interval (s).
    params : DampingEnergyParams, optional
        Picker settings.

    Returns
    -------
    int
        Index where the short-term to long-term damping power ratio first
        rose above ``onset_ratio`` ahead of the trigger, or ``NO_PICK``.
    """
    if is_flat(accel):
        return NO_PICK
    x = np.asarray(accel, dtype=float)
    x = x - np.mean(x)

    period = params.period if params.period else (0.01 if dt <= 0.01 + 1e-9 else 0.1)
    wn = 2.0 * math.pi / period
    _, vel = sdof_response(x, dt, period, params.damping)
    power = 2.0 * params.damping * wn * vel ** 2

    n_sta = max(1, int(round(params.sta_length / dt)))
    n_lta = max(n_sta + 1, int(round(params.lta_length / dt)))
    floor = params.water_level * float(np.max(power))
    if floor <= 0.0:
        return NO_PICK

    ratio = _trailing_mean(power, n_sta) / (_trailing_mean(power, n_lta) + floor)
    hits = np.flatnonzero(ratio[n_sta:] >= params.trigger_ratio)
    if hits.size == 0:
        log.info('Damping energy ratio never reached the trigger level.')
        return NO_PICK

    trigger = int(hits[0]) + n_sta
    pick = trigger
    while pick > 0 and ratio[pick - 1] >= params.onset_ratio:
        pick -= 1
    log.debug(f'Damping energy trigger at {trigger}, onset at {pick}.')
    return pick


# =============================================================================
# FILTERPICKER (STATISTICAL) PICKER
# =============================================================================

@dataclasses.dataclass(frozen=True)
class FilterPickerParams:
    """Settings of the statistical picker.

    Parameters
    ----------
    filter_window : float
        Longest band period considered (s), rounded up to ``2^N dt``.
    long_term_window : float
        Decay time of the running statistics (s); triggering is disabled for
        this long at the start of a record.
    threshold1 : float
        Characteristic function level that starts a trigger.
    threshold2 : float
        Mean level the clipped characteristic function must sustain over
        `t_up_event` for the pick to be accepted.
    t_up_event : float
        Integration window after a trigger (s).
    """
    filter_window: float = 1.0
    long_term_window: float = 3.0
    threshold1: float = 10.0
    threshold2: float = 10.0
    t_up_event: float = 0.2


class PickData:
    """Pick produced by :func:`filter_picker`."""

    POLARITY_POS = 1
    POLARITY_NEG = -1
    POLARITY_UNKNOWN = 0

    def __init__(self, uncertainty_index: int, trigger_index: int, polarity: int,
                 strength: float, period: float):
        self.uncertainty_index = uncertainty_index
        self.trigger_index = trigger_index
        self.polarity = polarity
        self.strength = strength
        self.period = period

    def __repr__(self):
        return (f'PickData(uncertainty_index={self.uncertainty_index}, '
                f'trigger_index={self.trigger_index}, polarity={self.polarity}, '
                f'strength={self.strength:.3f}, period={self.period:.3f})')


class PickerMemory:
    """Recursive state of the statistical picker.

    Created from the first packet of a record; pass the same instance to
    successive :func:`filter_picker` calls to process a record in pieces.
    """

    def __init__(self, sample: np.ndarray, dt: float, params: FilterPickerParams):
        self.long_decay_factor = dt / params.long_term_window
        self.long_decay_const = 1.0 - self.long_decay_factor
        self.n_long_term_window = 1 + int(params.long_term_window / dt)
        self.index_enable_triggering = self.n_long_term_window
        self.enable_triggering = False
        self.n_total = -1

        num_previous = int(params.filter_window / dt)
        num_recursive = 1
        n_temp = 1
        while n_temp < num_previous:
            num_recursive += 1
            n_temp *= 2
        self.num_recursive = num_recursive

        self.x_rec = np.zeros(num_recursive)
        self.filtered = np.zeros((num_recursive, 3))
        self.mean_x_rec = np.zeros(num_recursive)
        self.mean_std_x_rec = np.zeros(num_recursive)
        self.mean_var_x_rec = np.zeros(num_recursive)

        # one-pole constants, band periods dt, 2 dt, 4 dt ...
        window = dt / (2.0 * math.pi) * 2.0 ** np.arange(num_recursive)
        self.period = window * 2.0 * math.pi
        self.low_pass_const = dt / (window + dt)
        self.high_pass_const = window / (window + dt)

        n_mean = min(self.n_long_term_window, len(sample))
        self.last_sample = float(np.mean(sample[:n_mean])) if n_mean > 0 else 0.0
        self.last_diff_sample = 0.0

        self.char_funct_last1 = 0.0
        self.uncertainty_at_up = math.inf
        self.uncertainty_threshold = 2.0
        self.max_uncertainty_threshold = params.threshold1 / 4.0
        self.min_uncertainty_threshold = 0.75
        self.max_allow_new_trigger_threshold = 2.0

        self.index_uncertainty: Optional[int] = None
        self.index_uncertainty_trigger: Optional[int] = None
        self.polarity_curvature = 0.0
        self.polarity_count = 0
        self.in_trigger_event = False
        self.integral_char_funct = 0.0
        self.integral_char_funct_pick = 0.0
        self.index_up_event: Optional[int] = None
        self.index_up_event_end: Optional[int] = None

        self.n_t_up_event = max(1, int(0.5 + params.t_up_event / dt) - 1)
        self.critical_integral = self.n_t_up_event * params.threshold2
        self.integral_clipped = 0.0
        self.under_threshold_since_last_trigger = False
        self.up_event_clipped = np.zeros(self.n_t_up_event)
        self.up_event_values = np.zeros(self.n_t_up_event)
        self.up_event_ptr = -1
        self.accepted_pick = False
        self.will_accept_pick = False
        self.pick_polarity = PickData.POLARITY_UNKNOWN
        self.trigger_band = -1

    def shift(self, length: int):
        """Rebases stored indices for the next packet."""
        def _shift(index):
            return None if index is None else index - length
        self.index_uncertainty = _shift(self.index_uncertainty)
        self.index_uncertainty_trigger = _shift(self.index_uncertainty_trigger)
        self.index_up_event = _shift(self.index_up_event)
        self.index_up_event_end = _shift(self.index_up_event_end)


def filter_picker(sample: np.ndarray, dt: float, params: FilterPickerParams = FilterPickerParams(),
                  memory: Optional[PickerMemory] = None) -> List[PickData]:
    """Runs the statistical picker over one packet of samples.

    Parameters
    ----------
    sample : np.ndarray
        Acceleration packet.
    dt : float
        Sample interval (s).
    params : FilterPickerParams, optional
        Picker settings.
    memory : PickerMemory, optional
        State carried from a previous packet. When given, the stored indices
        are rebased at the end of the packet so the same memory can be passed
        with the next one. When omitted a fresh state is used and discarded.

    Returns
    -------
    List[PickData]
        Accepted picks, indices relative to this packet.
    """
    sample = np.asarray(sample, dtype=float)
    keep_memory = memory is not None
    mem = memory if keep_memory else PickerMemory(sample, dt, params)

    picks = []
    max_char_funct = 5.0 * params.threshold1
    std_warning_pending = True

    for n in range(len(sample)):
        char_funct = 0.0
        char_funct_clipped = 0.0
        band = -1
        current = sample[n]
        current_diff = current - mem.last_sample

        for k in range(mem.num_recursive - 1, -1, -1):
            hp = mem.high_pass_const[k] * (mem.filtered[k, 0] + current_diff)
            diff2 = hp - mem.filtered[k, 0]
            mem.filtered[k, 0] = hp
            hp = mem.high_pass_const[k] * (mem.filtered[k, 1] + diff2)
            mem.filtered[k, 1] = hp
            lp = mem.filtered[k, 2] + mem.low_pass_const[k] * (hp - mem.filtered[k, 2])
            mem.filtered[k, 2] = lp

            mem.x_rec[k] = lp * lp
            if mem.mean_std_x_rec[k] <= _FLOAT_MIN:
                if mem.enable_triggering and std_warning_pending:
                    log.debug(f'Zero running deviation in band {k} after stabilisation.')
                    std_warning_pending = False
                continue
            test = (mem.x_rec[k] - mem.mean_x_rec[k]) / mem.mean_std_x_rec[k]
            clipped = test
            if clipped > max_char_funct:
                clipped = max_char_funct
                mem.x_rec[k] = max_char_funct * mem.mean_std_x_rec[k] + mem.mean_x_rec[k]
            if test > char_funct:
                char_funct = test
                char_funct_clipped = clipped
                band = k

        # 2 point smoothing of the characteristic function
        char_funct_uncertainty = (char_funct_clipped + mem.char_funct_last1) / 2.0
        up_uncertainty = (mem.char_funct_last1 < mem.uncertainty_threshold
                          and char_funct_clipped >= mem.uncertainty_threshold)
        if up_uncertainty:
            mem.uncertainty_at_up = char_funct_uncertainty
        mem.char_funct_last1 = char_funct_clipped

        if up_uncertainty or char_funct_uncertainty > mem.uncertainty_at_up:
            if up_uncertainty or mem.index_uncertainty is None:
                mem.index_uncertainty = n - 1
                mem.polarity_curvature = 0.0
                mem.polarity_count = 0
        elif not mem.in_trigger_event:
            mem.index_uncertainty = None

        curvature_increment = 0.0
        count_increment = 0
        if mem.index_uncertainty is not None and not mem.in_trigger_event:
            curvature_increment = current_diff - mem.last_diff_sample
            mem.polarity_curvature += curvature_increment
            count_increment = 1 if curvature_increment > 0.0 else -1
            mem.polarity_count += count_increment

        if not mem.enable_triggering:
            past_stabilisation = mem.n_total > mem.index_enable_triggering
            mem.n_total += 1
        else:
            past_stabilisation = True

        if past_stabilisation:
            mem.enable_triggering = True
            mem.up_event_ptr = (mem.up_event_ptr + 1) % mem.n_t_up_event
            mem.integral_clipped += char_funct_clipped - mem.up_event_clipped[mem.up_event_ptr]
            mem.up_event_clipped[mem.up_event_ptr] = char_funct_clipped
            mem.integral_char_funct += char_funct - mem.up_event_values[mem.up_event_ptr]
            mem.up_event_values[mem.up_event_ptr] = char_funct

            if mem.in_trigger_event:
                mem.integral_char_funct_pick = max(mem.integral_char_funct_pick, mem.integral_char_funct)
                if n > mem.index_up_event_end:
                    if mem.will_accept_pick:
                        mem.accepted_pick = True
                        mem.under_threshold_since_last_trigger = False
                    else:
                        mem.index_up_event_end = None
                    mem.will_accept_pick = False
                    mem.in_trigger_event = False
                elif not mem.will_accept_pick and mem.integral_clipped >= mem.critical_integral:
                    mem.will_accept_pick = True
            elif mem.under_threshold_since_last_trigger and char_funct_clipped >= params.threshold1:
                mem.in_trigger_event = True
                mem.trigger_band = band
                mem.integral_char_funct_pick = 0.0
                mem.index_up_event = n
                mem.index_up_event_end = n + mem.n_t_up_event
                mem.index_uncertainty_trigger = mem.index_uncertainty
                if mem.index_uncertainty_trigger is None:
                    mem.index_uncertainty_trigger = n - 1
                # a wide uncertainty window drops the last amplitude difference
                if n > mem.index_uncertainty_trigger + 1:
                    mem.polarity_curvature -= curvature_increment
                    mem.polarity_count -= count_increment
                mem.pick_polarity = PickData.POLARITY_UNKNOWN
                if mem.polarity_count != 0:
                    if mem.polarity_curvature > 0.0:
                        mem.pick_polarity = PickData.POLARITY_POS
                    elif mem.polarity_curvature < 0.0:
                        mem.pick_polarity = PickData.POLARITY_NEG
            elif char_funct_uncertainty < mem.max_allow_new_trigger_threshold:
                mem.under_threshold_since_last_trigger = True

        for k in range(mem.num_recursive):
            mem.mean_x_rec[k] = mem.mean_x_rec[k] * mem.long_decay_const + mem.x_rec[k] * mem.long_decay_factor
            dev = mem.x_rec[k] - mem.mean_x_rec[k]
            mem.mean_var_x_rec[k] = mem.mean_var_x_rec[k] * mem.long_decay_const + dev * dev * mem.long_decay_factor
            mem.mean_std_x_rec[k] = math.sqrt(mem.mean_var_x_rec[k])
            threshold = (mem.uncertainty_threshold * mem.long_decay_const
                         + 0.75 * char_funct_clipped * mem.long_decay_factor)
            mem.uncertainty_threshold = min(max(threshold, mem.min_uncertainty_threshold),
                                            mem.max_uncertainty_threshold)

        if mem.accepted_pick:
            picks.append(PickData(mem.index_uncertainty_trigger, mem.index_up_event,
                                  mem.pick_polarity, mem.integral_char_funct_pick / mem.critical_integral,
                                  float(mem.period[mem.trigger_band])))
        mem.accepted_pick = False
        mem.last_sample = current
        mem.last_diff_sample = current_diff

    if keep_memory:
        mem.shift(len(sample))
    return picks


def statistical_pick(accel: np.ndarray, dt: float,
                     params: FilterPickerParams = FilterPickerParams()) -> int:
    """Onset index from the first accepted statistical pick, or ``NO_PICK``."""
    if is_flat(accel):
        return NO_PICK
    picks = filter_picker(accel, dt, params)
    if not picks:
        log.info('Statistical picker found no event.')
        return NO_PICK
    first = picks[0]
    log.debug(f'Statistical picker: {len(picks)} pick(s), first {first}.')
    return min(max(first.uncertainty_index, NO_PICK), len(accel) - 1)


# =============================================================================
# DETECTOR
# =============================================================================

@dataclasses.dataclass(frozen=True)
class OnsetDetector:
    """Event onset detector for one of the :class:`OnsetMethod` strategies."""
    method: OnsetMethod = OnsetMethod.DE
    de_params: DampingEnergyParams = DampingEnergyParams()
    aic_params: FilterPickerParams = FilterPickerParams()

    @classmethod
    def from_name(cls, name: str, **kwargs) -> "OnsetDetector":
        try:
            method = OnsetMethod(str(name).upper())
        except ValueError:
            raise ConfigurationError(f"Unknown event onset method '{name}'") from None
        return cls(method, **kwargs)

    def locate(self, accel: np.ndarray, dt: float) -> int:
        """Onset sample index of the event in `accel`, ``NO_PICK`` if none."""
        if is_flat(accel):
            log.info('Record is flat, no event onset.')
            return NO_PICK
        return _STRATEGIES[self.method](self, accel, dt)

    def detect(self, accel: np.ndarray, dt: float, buffer_seconds: float = 0.0) -> OnsetResult:
        """Pick index and buffered start index."""
        pick = self.locate(accel, dt)
        if pick <= NO_PICK:
            return OnsetResult(NO_PICK, NO_PICK)
        return OnsetResult(pick, apply_buffer(pick, buffer_seconds, dt, len(accel)))


_STRATEGIES: Dict[OnsetMethod, Callable[[OnsetDetector, np.ndarray, float], int]] = {
    OnsetMethod.DE: lambda det, accel, dt: damping_energy_pick(accel, dt, det.de_params),
    OnsetMethod.AIC: lambda det, accel, dt: statistical_pick(accel, dt, det.aic_params),
}
