'''

In this example a synthetic record carries a constant acceleration offset
that stops part way through the record (for instance a sensor tilt during
shaking). Removing a single trend from the velocity cannot bring the record
to rest, so the engine falls back on adaptive baseline correction: a
piecewise baseline is fitted to the velocity and every combination of
polynomial orders and break point is filtered, integrated and quality
checked. The best-ranked passing candidate is kept.

'''

import logging

import matplotlib.pyplot as plt
import numpy as np

from smcpy import ProcessingConfig, SignalCorrectionEngine, SmRecord, arrayops
from smcpy.plotting import plot_baseline_fit, plot_processing_results

logging.basicConfig(level=logging.INFO, format='%(name)s - %(levelname)s - %(message)s')
plt.close('all')

# input:

dt       = 0.01              # time step [s]
npts     = 5000              # number of points in record
onset    = 600               # sample where shaking starts
drift    = 0.4               # acceleration offset [cm/s2]
drift_end = 2500             # sample where the offset stops

# synthetic record:

rng = np.random.default_rng(11)
s = 0.002 * rng.standard_normal(npts)
i, width, sign = onset, 20, 1.0
while i + width <= onset + 800:
    theta = 2 * np.pi * np.arange(width) / width
    s[i:i + width] += sign * 180 * np.exp(-(i - onset) * dt / 4.0) * (np.cos(theta) - np.cos(2 * theta)) / 1.125
    i += width
    width = int(rng.integers(15, 41))
    sign = rng.choice((-1.0, 1.0))
s[:drift_end] += drift

# correction:

record = SmRecord(accel=s, delta_t_ms=dt * 1000, local_magnitude=5.0, channel_id='SYN.HNN')
config = ProcessingConfig(first_poly_order_upper=2, third_poly_order_upper=3)
result = SignalCorrectionEngine(config).process(record)

print(f'status: {result.status.value}, adaptive baseline: {result.used_abc}')
if result.used_abc:
    abc = result.abc
    print(f'{abc.num_candidates} candidates, selected orders ({abc.order1}, {abc.order3}), '
          f'breaks at {abc.break1 * dt:.2f} s and {abc.break2 * dt:.2f} s')

    # uncorrected velocity, as seen by the baseline search
    accel = s - np.mean(s[:result.start_index])
    velocity = arrayops.integrate(accel, dt)
    plot_baseline_fit(velocity, abc.baseline, dt, break_indices=(abc.break1, abc.break2))

plot_processing_results(result, raw_accel=s)
plt.show()
