"""
Diagnostic figures for corrected records.

Figures are returned to the caller; nothing is shown or saved here.
"""

import logging
from typing import Optional, Sequence

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np

from . import arrayops
from .engine import ProcessingResult

log = logging.getLogger(__name__)


def plot_processing_results(result: ProcessingResult,
                            raw_accel: Optional[np.ndarray] = None) -> plt.Figure:
    """Corrected acceleration, velocity and displacement histories.

    Parameters
    ----------
    result : ProcessingResult
        Output of :meth:`SignalCorrectionEngine.process`.
    raw_accel : Optional[np.ndarray], optional
        Uncorrected acceleration (cm/s^2). When given, it is plotted together
        with its velocity and displacement for comparison. Default is None.

    Returns
    -------
    plt.Figure
        Figure with three stacked axes. Empty when the result carries no
        corrected histories.
    """
    if result.accel is None:
        log.error(f'Result with status {result.status.value} has no corrected histories. Cannot plot.')
        return plt.figure()

    dt = result.dt
    acc, vel, disp = result.accel, result.velocity, result.displacement
    n = len(acc)
    t = arrayops.make_time_array(dt, n)

    mpl.rcParams['font.size'] = 9
    mpl.rcParams['legend.frameon'] = False

    fig, axs = plt.subplots(3, 1, figsize=(6.5, 6.5), sharex=True)

    if raw_accel is not None:
        raw = np.asarray(raw_accel, dtype=float)[:n]
        raw_vel = arrayops.integrate(raw, dt)
        raw_disp = arrayops.integrate(raw_vel, dt)
        axs[0].plot(t, raw, lw=1, color='cornflowerblue', label='Uncorrected')
        axs[1].plot(t, raw_vel, lw=1, color='cornflowerblue')
        axs[2].plot(t, raw_disp, lw=1, color='cornflowerblue')

    axs[0].plot(t, acc, lw=1, color='salmon', label='Corrected')
    axs[1].plot(t, vel, lw=1, color='salmon')
    axs[2].plot(t, disp, lw=1, color='salmon')

    for ax in axs:
        ax.axvline(result.pick_index * dt, color='darkgray', lw=0.8, linestyle='--')
        ax.grid(True, linestyle=':', alpha=0.7)

    axs[0].set_ylabel('Acc. [cm/s$^2$]')
    axs[1].set_ylabel('Vel. [cm/s]')
    axs[2].set_ylabel('Displ. [cm]')
    axs[2].set_xlabel('Time [s]')
    axs[0].legend(loc='upper right')
    axs[0].set_title(f'{result.channel_id} {result.status.value}'.strip())

    fig.tight_layout()
    return fig


def plot_baseline_fit(velocity: np.ndarray, baseline: np.ndarray, dt: float,
                      break_indices: Sequence[int] = ()) -> plt.Figure:
    """Uncorrected velocity with the fitted baseline and its break points."""
    v = np.asarray(velocity, dtype=float)
    t = arrayops.make_time_array(dt, len(v))

    mpl.rcParams['font.size'] = 9
    mpl.rcParams['legend.frameon'] = False

    fig, axs = plt.subplots(2, 1, figsize=(6.5, 5.0), sharex=True)
    axs[0].plot(t, v, lw=1, color='cornflowerblue', label='Velocity')
    axs[0].plot(t, baseline, lw=1.5, color='black', label='Baseline')
    for index in break_indices:
        axs[0].axvline(index * dt, color='darkgray', lw=0.8, linestyle='--')
    axs[0].set_ylabel('Vel. [cm/s]')
    axs[0].legend(loc='upper left')

    axs[1].plot(t, v - baseline, lw=1, color='salmon')
    axs[1].set_ylabel('Corrected vel. [cm/s]')
    axs[1].set_xlabel('Time [s]')

    for ax in axs:
        ax.grid(True, linestyle=':', alpha=0.7)
    fig.tight_layout()
    return fig
