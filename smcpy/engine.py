"""
V1 -> V2 signal correction.

:class:`SignalCorrectionEngine` turns an uncorrected acceleration record into
corrected acceleration, velocity and displacement:

1. validate the record metadata and the filter designs,
2. convert the input to cm/s^2,
3. detect the event onset on a detrended, band-passed copy,
4. remove the pre-event mean and integrate to velocity,
5. remove the best-fit trend from a trial velocity and quality check it,
6. band-pass with magnitude dependent cutoffs, integrate to displacement and
   differentiate to acceleration, or fall back on adaptive baseline
   correction when the trial velocity fails,
7. summarise the arrays and, for good strong motion records, compute
   intensity measures.

The engine keeps no state between records; each call to
:meth:`SignalCorrectionEngine.process` works on its own copies.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import dataclasses
import enum
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from . import arrayops
from .arrayops import ArrayStats
from .baseline import AdaptiveBaselineCorrector
from .config import (DELTA_T_EPSILON, MAGNITUDE_EPSILON, MAGNITUDE_PRECEDENCE, NO_DATA_VALUE,
                     MagnitudeType, ProcessingConfig, V2Status, magnitude_cutoffs,
                     unit_conversion_factor)
from .exceptions import ConfigurationError, FilterDesignError
from .filtering import ButterworthFilter, FilterSpec, filter_and_integrate
from .intensity import IntensityMetrics, compute_intensity_metrics
from .onset import NO_PICK, OnsetDetector, apply_buffer
from .qc import QCResult, QCThresholds, QualityGate

log = logging.getLogger(__name__)


class ProcessingState(enum.Enum):
    """Stages of the correction chain, recorded in ``ProcessingResult.states``.

    ``START -> TRENDED -> FILTERED -> ONSET_FOUND | NOEVENT -> MEAN_REMOVED ->
    INTEGRATED -> QC1_PASS | QC1_FAIL -> (ABC_RUN -> ABC_PASS | ABC_NOABC) ->
    FINALIZED``. The terminal status is carried by ``ProcessingResult.status``.
    """
    START = "START"
    TRENDED = "TRENDED"
    FILTERED = "FILTERED"
    ONSET_FOUND = "ONSET_FOUND"
    NOEVENT = "NOEVENT"
    MEAN_REMOVED = "MEAN_REMOVED"
    INTEGRATED = "INTEGRATED"
    QC1_PASS = "QC1_PASS"
    QC1_FAIL = "QC1_FAIL"
    ABC_RUN = "ABC_RUN"
    ABC_PASS = "ABC_PASS"
    ABC_NOABC = "ABC_NOABC"
    FINALIZED = "FINALIZED"


# =============================================================================
# INPUT AND OUTPUT
# =============================================================================

@dataclasses.dataclass
class SmRecord:
    """One channel of uncorrected (V1) acceleration and its metadata.

    Parameters
    ----------
    accel : np.ndarray
        Acceleration samples in the configured data units.
    delta_t_ms : float
        Sample interval in milliseconds.
    moment_magnitude, local_magnitude, surface_magnitude, other_magnitude : float
        Event magnitudes; ``no_data`` (or None) marks a missing value.
    no_data : float
        Sentinel for missing real values.
    channel_id : str
        Free-form identifier carried to the result.
    """
    accel: np.ndarray
    delta_t_ms: float
    moment_magnitude: Optional[float] = NO_DATA_VALUE
    local_magnitude: Optional[float] = NO_DATA_VALUE
    surface_magnitude: Optional[float] = NO_DATA_VALUE
    other_magnitude: Optional[float] = NO_DATA_VALUE
    no_data: float = NO_DATA_VALUE
    channel_id: str = ""

    def magnitude(self, kind: MagnitudeType) -> Optional[float]:
        """Magnitude of the given type.

        Parameters
        ----------
        kind : MagnitudeType
            Magnitude scale to read.

        Returns
        -------
        float or None
            The stored value, which may be None or the ``no_data`` marker.
        """
        return {
            MagnitudeType.MOMENT: self.moment_magnitude,
            MagnitudeType.LOCAL: self.local_magnitude,
            MagnitudeType.SURFACE: self.surface_magnitude,
            MagnitudeType.OTHER: self.other_magnitude,
        }[kind]


@dataclasses.dataclass(frozen=True)
class BaselineInfo:
    """Adaptive baseline correction parameters of the selected candidate."""
    break1: int
    break2: int
    order1: int
    order3: int
    rank: float
    num_candidates: int
    baseline: np.ndarray


@dataclasses.dataclass(frozen=True)
class ProcessingResult:
    """Immutable outcome of one record correction.

    Arrays are read-only; they are None when no corrected histories exist
    (``NOEVENT`` and ``NOABC``).
    """
    status: V2Status
    channel_id: str
    dt: float
    accel: Optional[np.ndarray] = None
    velocity: Optional[np.ndarray] = None
    displacement: Optional[np.ndarray] = None
    accel_stats: ArrayStats = ArrayStats(0.0, 0, 0.0)
    velocity_stats: ArrayStats = ArrayStats(0.0, 0, 0.0)
    displacement_stats: ArrayStats = ArrayStats(0.0, 0, 0.0)
    pick_index: int = NO_PICK
    start_index: int = 0
    onset_method: str = ""
    magnitude: float = math.nan
    magnitude_type: Optional[MagnitudeType] = None
    low_cut: float = math.nan
    high_cut: float = math.nan
    qc: Optional[QCResult] = None
    abc: Optional[BaselineInfo] = None
    calculated_taper: float = 0.0
    config_taper: float = 0.0
    initial_velocity: float = 0.0
    initial_displacement: float = 0.0
    intensity: IntensityMetrics = IntensityMetrics()
    states: Tuple[str, ...] = ()

    @property
    def used_abc(self) -> bool:
        """True if the histories come from adaptive baseline correction."""
        return self.abc is not None

    def as_dict(self) -> Dict[str, Any]:
        """Plain dictionary of the result for downstream writers."""
        out = {
            'status': self.status.value,
            'channel_id': self.channel_id,
            'dt': self.dt,
            'accel': self.accel,
            'velocity': self.velocity,
            'displacement': self.displacement,
            'pick_index': self.pick_index,
            'start_index': self.start_index,
            'onset_method': self.onset_method,
            'magnitude': self.magnitude,
            'magnitude_type': self.magnitude_type.value if self.magnitude_type else None,
            'low_cut': self.low_cut,
            'high_cut': self.high_cut,
            'calculated_taper': self.calculated_taper,
            'config_taper': self.config_taper,
            'initial_velocity': self.initial_velocity,
            'initial_displacement': self.initial_displacement,
            'states': list(self.states),
        }
        for name in ('accel_stats', 'velocity_stats', 'displacement_stats'):
            out[name] = dataclasses.asdict(getattr(self, name))
        if self.qc is not None:
            out['qc'] = {'init_velocity': self.qc.init_velocity,
                         'resid_velocity': self.qc.resid_velocity,
                         'resid_displacement': self.qc.resid_displacement}
        if self.abc is not None:
            out['abc'] = {'break1': self.abc.break1, 'break2': self.abc.break2,
                          'order1': self.abc.order1, 'order3': self.abc.order3,
                          'num_candidates': self.abc.num_candidates}
        out['intensity'] = self.intensity.as_dict()
        return out


def _frozen(x: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if x is None:
        return None
    x = np.array(x, dtype=float)
    x.flags.writeable = False
    return x


# =============================================================================
# VALIDATION
# =============================================================================

def validate_delta_t(delta_t_ms: float, no_data: float = NO_DATA_VALUE) -> float:
    """Sample interval in seconds.

    Raises
    ------
    ConfigurationError
        If the interval is missing (the no-data value), non-positive or not a
        number.
    """
    try:
        value = float(delta_t_ms)
    except (TypeError, ValueError):
        raise ConfigurationError(f'Invalid sample interval {delta_t_ms!r}') from None
    if not math.isfinite(value) or abs(value - no_data) < DELTA_T_EPSILON or value <= 0.0:
        log.error(f'Invalid sample interval {delta_t_ms} ms.')
        raise ConfigurationError(f'Invalid sample interval {delta_t_ms} ms')
    return value * 0.001


def _valid_magnitude(value: Optional[float], no_data: float) -> bool:
    if value is None:
        return False
    try:
        value = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and abs(value - no_data) >= MAGNITUDE_EPSILON and value >= 0.0


def select_magnitude(record: SmRecord) -> Tuple[MagnitudeType, float]:
    """First valid magnitude in precedence order.

    Raises
    ------
    ConfigurationError
        If no magnitude is valid.
    """
    for kind in MAGNITUDE_PRECEDENCE:
        value = record.magnitude(kind)
        if _valid_magnitude(value, record.no_data):
            return kind, float(value)
    log.error('All event magnitudes are missing or invalid.')
    raise ConfigurationError('No valid event magnitude in the record')


# =============================================================================
# ENGINE
# =============================================================================

class SignalCorrectionEngine:
    """Runs the V1 -> V2 correction chain for single records.

    Parameters
    ----------
    config : ProcessingConfig, optional
        Processing parameters; defaults are used when omitted.
    """

    def __init__(self, config: Optional[ProcessingConfig] = None):
        self.config = config if config is not None else ProcessingConfig()
        self.quality_gate = QualityGate(QCThresholds(
            init_velocity=self.config.qc_initial_velocity,
            resid_velocity=self.config.qc_residual_velocity,
            resid_displacement=self.config.qc_residual_displacement,
        ))
        self.detector = OnsetDetector.from_name(self.config.event_onset_method)

    def _differentiate(self, x: np.ndarray, dt: float) -> np.ndarray:
        return arrayops.central_diff(x, dt, self.config.differentiation_order)

    def _validate(self, record: SmRecord):
        cfg = self.config
        dt = validate_delta_t(record.delta_t_ms, record.no_data)
        factor = unit_conversion_factor(cfg.data_unit_code)
        kind, magnitude = select_magnitude(record)
        low, high = magnitude_cutoffs(magnitude)

        accel = np.array(record.accel, dtype=float)
        if accel.ndim != 1 or len(accel) < 4:
            raise ConfigurationError('Acceleration must be a 1-D array of at least 4 samples')

        picking = ButterworthFilter()
        if not picking.design(cfg.bp_low_cutoff, cfg.bp_high_cutoff, dt, cfg.num_poles):
            raise FilterDesignError(f'Invalid pre-event filter {cfg.bp_low_cutoff}-{cfg.bp_high_cutoff} Hz '
                                    f'for dt={dt} s')
        spec = FilterSpec(low, high, cfg.num_poles)
        if not spec.validate(dt):
            raise FilterDesignError(f'Invalid bandpass filter calculated parameters: '
                                    f'{low}-{high} Hz for dt={dt} s')
        return dt, factor, kind, magnitude, spec, accel, picking

    def process(self, record: SmRecord) -> ProcessingResult:
        """Corrects one record.

        Parameters
        ----------
        record : SmRecord
            Uncorrected record; it is not modified.

        Returns
        -------
        ProcessingResult
            Corrected histories and status.

        Raises
        ------
        ConfigurationError
            Invalid sample interval, magnitudes, units or array.
        FilterDesignError
            Cutoffs not usable at the record's sample rate.
        """
        cfg = self.config
        states: List[str] = [ProcessingState.START.value]

        dt, factor, mag_type, magnitude, spec, accel, picking = self._validate(record)
        log.info(f"Processing channel '{record.channel_id}': {len(accel)} samples, dt={dt} s, "
                 f"{mag_type.value}={magnitude}.")

        common = dict(channel_id=record.channel_id, dt=dt, onset_method=cfg.event_onset_method,
                      magnitude=magnitude, magnitude_type=mag_type,
                      low_cut=spec.low_cut, high_cut=spec.high_cut)

        # units
        if factor != 1.0:
            accel = arrayops.convert_units(accel, factor)

        # event onset on a detrended, filtered copy with an untapered start
        work = accel.copy()
        arrayops.remove_linear_trend(work, dt)
        states.append(ProcessingState.TRENDED.value)
        padded = picking.apply(work, cfg.taper_length, taper_start=False)
        states.append(ProcessingState.FILTERED.value)
        pick = self.detector.locate(picking.unpad(padded), dt)
        if pick <= NO_PICK:
            log.warning(f"No event detected in channel '{record.channel_id}'.")
            states += [ProcessingState.NOEVENT.value, ProcessingState.FINALIZED.value]
            return ProcessingResult(status=V2Status.NOEVENT, states=tuple(states), **common)
        start = apply_buffer(pick, cfg.event_onset_buffer, dt, len(accel))
        states.append(ProcessingState.ONSET_FOUND.value)
        log.info(f'Event onset at sample {pick} ({pick * dt:.2f} s), start index {start}.')

        # pre-event mean
        if start > 0:
            arrayops.remove_value(accel, float(np.mean(accel[:start])))
        states.append(ProcessingState.MEAN_REMOVED.value)

        velocity = arrayops.integrate(accel, dt)
        arrayops.correct_for_zero_initial_estimate(velocity, start)
        trial = velocity.copy()
        order = arrayops.remove_trend_with_best_fit(trial, dt)
        states.append(ProcessingState.INTEGRATED.value)
        log.debug(f'Removed order {order} trend from the trial velocity.')

        qc1 = self.quality_gate.evaluate_velocity(trial, spec.low_cut, dt, pick)

        if not qc1.passed:
            states.append(ProcessingState.QC1_FAIL.value)
            log.info(f'Trial velocity failed QC ({", ".join(qc1.failures())}), '
                     'running adaptive baseline correction.')
            states.append(ProcessingState.ABC_RUN.value)
            return self._adaptive_correction(velocity, dt, start, pick, spec, states, common)
        states.append(ProcessingState.QC1_PASS.value)

        # start taper anchored at the pick, independent of the onset buffer
        filtered = filter_and_integrate(trial, dt, spec, cfg.taper_length, pick)
        vel = filtered.velocity
        disp = filtered.displacement
        acc = self._differentiate(vel, dt)

        qc2 = self.quality_gate.evaluate(vel, disp, spec.low_cut, dt, pick)
        status = V2Status.GOOD if qc2.passed else V2Status.FAILQC
        if status is V2Status.FAILQC:
            log.warning(f'Corrected record failed QC: {", ".join(qc2.failures())}.')

        return self._finalize(status, acc, vel, disp, pick, start, qc2, None,
                              filtered.calculated_taper, filtered.config_taper,
                              filtered.initial_velocity, filtered.initial_displacement,
                              states, common)

    def _adaptive_correction(self, velocity, dt, start, pick, spec, states, common) -> ProcessingResult:
        cfg = self.config
        abc = AdaptiveBaselineCorrector(
            velocity, dt, start, pick, spec, cfg.taper_length, self.quality_gate,
            first_orders=cfg.first_poly_orders, third_orders=cfg.third_poly_orders,
            break_interval=cfg.abc_break_interval, min_tail=cfg.abc_min_tail,
            differentiation=self._differentiate,
        )
        status = abc.find_fit()
        if status is V2Status.NOABC:
            states += [ProcessingState.ABC_NOABC.value, ProcessingState.FINALIZED.value]
            qc = abc.candidates[0].qc if abc.candidates else None
            return ProcessingResult(status=status, pick_index=pick, start_index=start, qc=qc,
                                    states=tuple(states), **common)

        best = abc.solution
        info = BaselineInfo(break1=best.record.break1, break2=best.record.break2,
                            order1=best.record.order1, order3=best.record.order3,
                            rank=best.record.rank, num_candidates=abc.num_candidates,
                            baseline=_frozen(best.baseline))
        states.append(ProcessingState.ABC_PASS.value)
        return self._finalize(status, best.acceleration, best.velocity, best.displacement,
                              pick, start, best.record.qc, info,
                              abc.calculated_taper, abc.config_taper,
                              best.initial_velocity, best.initial_displacement, states, common)

    def _finalize(self, status, acc, vel, disp, pick, start, qc, info, calculated_taper,
                  config_taper, initial_velocity, initial_displacement, states, common) -> ProcessingResult:
        intensity = IntensityMetrics()
        if status is V2Status.GOOD:
            intensity = compute_intensity_metrics(acc, common['dt'], self.config.strong_motion_threshold)
        states.append(ProcessingState.FINALIZED.value)
        log.info(f"Channel '{common['channel_id']}' finished with status {status.value}.")
        return ProcessingResult(
            status=status,
            accel=_frozen(acc),
            velocity=_frozen(vel),
            displacement=_frozen(disp),
            accel_stats=ArrayStats.of(acc),
            velocity_stats=ArrayStats.of(vel),
            displacement_stats=ArrayStats.of(disp),
            pick_index=pick,
            start_index=start,
            qc=qc,
            abc=info,
            calculated_taper=calculated_taper,
            config_taper=config_taper,
            initial_velocity=initial_velocity,
            initial_displacement=initial_displacement,
            intensity=intensity,
            states=tuple(states),
            **common,
        )


def process_record(record: SmRecord, config: Optional[ProcessingConfig] = None) -> ProcessingResult:
    """Corrects one record with a fresh :class:`SignalCorrectionEngine`."""
    return SignalCorrectionEngine(config).process(record)
