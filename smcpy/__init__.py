"""
smcpy: automated correction of strong-motion acceleration records.

This package converts uncorrected (V1) acceleration records into corrected
(V2) acceleration, velocity and displacement time histories.

Its primary capabilities include:
1.  Event onset detection (damping energy ratio or statistical picker).
2.  Pre-event mean and trend removal, integration and differentiation.
3.  Zero-phase Butterworth band-pass filtering with magnitude dependent
    cutoffs, tapering and padding.
4.  Quality checks on initial velocity, residual velocity and residual
    displacement, with adaptive baseline correction when a single trend is
    not enough.
5.  Intensity measures (Arias, Housner, CAV, bracketed and significant
    duration) for strong motion records.

---
Quick Start
---

.. code-block:: python

    import numpy as np
    from smcpy import SmRecord, SignalCorrectionEngine, ProcessingConfig

    accel = np.loadtxt('record_cm_s2.txt')
    record = SmRecord(accel=accel, delta_t_ms=10.0, moment_magnitude=6.1,
                      channel_id='STA.HNE')

    engine = SignalCorrectionEngine(ProcessingConfig(event_onset_method='DE'))
    result = engine.process(record)

    print(result.status.value, result.pick_index, result.intensity.arias_intensity)
    # np.savetxt('corrected_accel.txt', result.accel, header=f'cm/s2, dt={result.dt}')
"""

__author__ = "smcpy developers"
__copyright__ = "Copyright 2025, smcpy developers"
__license__ = "MIT"
__version__ = "0.1.0"


from .arrayops import ArrayStats
from .baseline import AdaptiveBaselineCorrector, make_baseline
from .config import MagnitudeType, ProcessingConfig, V2Status
from .engine import ProcessingResult, SignalCorrectionEngine, SmRecord, process_record
from .exceptions import ConfigurationError, FilterDesignError, SmProcessingError
from .filtering import ButterworthFilter, FilterSpec, filter_and_integrate
from .intensity import IntensityMetrics, compute_intensity_metrics
from .onset import NO_PICK, OnsetDetector, OnsetMethod, apply_buffer
from .qc import QCResult, QCThresholds, QualityGate


__all__ = [
    "AdaptiveBaselineCorrector",
    "ArrayStats",
    "ButterworthFilter",
    "ConfigurationError",
    "FilterDesignError",
    "FilterSpec",
    "IntensityMetrics",
    "MagnitudeType",
    "NO_PICK",
    "OnsetDetector",
    "OnsetMethod",
    "ProcessingConfig",
    "ProcessingResult",
    "QCResult",
    "QCThresholds",
    "QualityGate",
    "SignalCorrectionEngine",
    "SmProcessingError",
    "SmRecord",
    "V2Status",
    "apply_buffer",
    "compute_intensity_metrics",
    "filter_and_integrate",
    "make_baseline",
    "process_record",
]
