import matplotlib

matplotlib.use('Agg')

import matplotlib.pyplot as plt
import numpy as np
import pytest

from conftest import DT
from smcpy.baseline import make_baseline
from smcpy.config import V2Status
from smcpy.engine import ProcessingResult, SmRecord, process_record
from smcpy.plotting import plot_baseline_fit, plot_processing_results


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close('all')


def test_processing_results_figure(burst):
    result = process_record(SmRecord(accel=burst, delta_t_ms=10.0, moment_magnitude=6.0,
                                     channel_id='TEST.HNZ'))
    fig = plot_processing_results(result, raw_accel=burst)
    assert len(fig.axes) == 3
    assert 'TEST.HNZ' in fig.axes[0].get_title()


def test_empty_figure_without_histories():
    result = ProcessingResult(status=V2Status.NOEVENT, channel_id='X', dt=DT)
    fig = plot_processing_results(result)
    assert fig.axes == []


def test_baseline_figure():
    t = np.arange(3000) * DT
    v = np.minimum(0.5 * t, 10.0)
    baseline = make_baseline(v, DT, 500, 2000, 1, 1)
    fig = plot_baseline_fit(v, baseline, DT, break_indices=(500, 2000))
    assert len(fig.axes) == 2
