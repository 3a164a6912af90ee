'''

In this example we correct a synthetic uncorrected (V1) acceleration record:
the event onset is picked, the pre-event mean is removed, the record is
band-passed with the cutoffs of its magnitude and integrated to velocity and
displacement, and the corrected histories are quality checked.

The record is a quiet noise floor followed by a train of acceleration pulses,
each with zero net velocity and displacement, so a correct chain should bring
the ground back to rest.

'''

import logging

import matplotlib.pyplot as plt
import numpy as np

from smcpy import ProcessingConfig, SignalCorrectionEngine, SmRecord
from smcpy.plotting import plot_processing_results

logging.basicConfig(level=logging.INFO, format='%(name)s - %(levelname)s - %(message)s')
plt.close('all')

# input:

dt       = 0.01              # time step [s]
npts     = 6000              # number of points in record
onset    = 1000              # sample where shaking starts
peak     = 250.0             # peak pulse acceleration [cm/s2]
mag      = 6.2               # moment magnitude of the event

# synthetic record:

rng = np.random.default_rng(2024)
s = 0.005 * rng.standard_normal(npts)
i, width, sign = onset, 20, 1.0
while i + width <= onset + 1500:
    theta = 2 * np.pi * np.arange(width) / width
    amplitude = peak * np.exp(-(i - onset) * dt / 5.0)
    s[i:i + width] += sign * amplitude * (np.cos(theta) - np.cos(2 * theta)) / 1.125
    i += width
    width = int(rng.integers(15, 45))
    sign = rng.choice((-1.0, 1.0))

# correction:

record = SmRecord(accel=s, delta_t_ms=dt * 1000, moment_magnitude=mag,
                  channel_id='SYN.HNE')

config = ProcessingConfig(event_onset_method='DE', event_onset_buffer=0.5)
engine = SignalCorrectionEngine(config)
result = engine.process(record)

print(f'status: {result.status.value}')
print(f'pick: sample {result.pick_index} ({result.pick_index * dt:.2f} s)')
print(f'band-pass: {result.low_cut}-{result.high_cut} Hz')
print(f'PGA: {result.accel_stats.peak:.2f} cm/s2, PGV: {result.velocity_stats.peak:.2f} cm/s, '
      f'PGD: {result.displacement_stats.peak:.3f} cm')
print(f'Arias intensity: {result.intensity.arias_intensity:.4f} m/s')
print(f'5-95% duration: {result.intensity.duration_interval:.2f} s')

fig = plot_processing_results(result, raw_accel=s)
# fig.savefig('corrected_record.png', dpi=300)
plt.show()
