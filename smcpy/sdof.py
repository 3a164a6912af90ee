"""
Single-degree-of-freedom oscillator kernels.

Relative response of a damped linear oscillator to base acceleration,
``u'' + 2 zeta wn u' + wn^2 u = -a(t)``, integrated with the exact solution
for piecewise linear excitation. Compiled with numba; only underdamped
systems (0 <= zeta < 1) are supported.
"""

import numpy as np
from numba import jit
from typing import Tuple


@jit(nopython=True, cache=True)
def _recurrence_coefficients(period, zeta, dt):
    wn = 2.0 * np.pi / period
    wn_sq = wn * wn
    wn_cb = wn_sq * wn
    sqrt_term = np.sqrt(1.0 - zeta * zeta)
    wd = wn * sqrt_term
    zeta_term = zeta / sqrt_term

    e_zwt = np.exp(-zeta * wn * dt)
    cos_wdt = np.cos(wd * dt)
    sin_wdt = np.sin(wd * dt)

    a11 = e_zwt * (cos_wdt + zeta_term * sin_wdt)
    a12 = e_zwt * sin_wdt / wd
    a21 = -wn / sqrt_term * e_zwt * sin_wdt
    a22 = e_zwt * (cos_wdt - zeta_term * sin_wdt)

    b11 = e_zwt * (((2.0 * zeta * zeta - 1.0) / (wn_sq * dt) + zeta / wn) * sin_wdt / wd
                   + (2.0 * zeta / (wn_cb * dt) + 1.0 / wn_sq) * cos_wdt) - 2.0 * zeta / (wn_cb * dt)
    b12 = -e_zwt * (((2.0 * zeta * zeta - 1.0) / (wn_sq * dt)) * sin_wdt / wd
                    + (2.0 * zeta / (wn_cb * dt)) * cos_wdt) - 1.0 / wn_sq + 2.0 * zeta / (wn_cb * dt)
    b21 = -((a11 - 1.0) / (wn_sq * dt)) - a12
    b22 = -b21 - a12
    return a11, a12, a21, a22, b11, b12, b21, b22


@jit(nopython=True, cache=True)
def sdof_response(s: np.ndarray, dt: float, period: float, zeta: float) -> Tuple[np.ndarray, np.ndarray]:
    """Relative displacement and velocity histories of one oscillator.

    Parameters
    ----------
    s : np.ndarray
        Base acceleration.
    dt : float
        Sample interval (s).
    period : float
        Natural period (s), must be positive.
    zeta : float
        Damping ratio, 0 <= zeta < 1.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        - u: relative displacement (units of s * s^2).
        - v: relative velocity (units of s * s).
    """
    n = len(s)
    u = np.zeros(n)
    v = np.zeros(n)
    a11, a12, a21, a22, b11, b12, b21, b22 = _recurrence_coefficients(period, zeta, dt)
    # the B coefficients carry the sign of the -a(t) forcing
    for q in range(n - 1):
        u[q + 1] = a11 * u[q] + a12 * v[q] + b11 * s[q] + b12 * s[q + 1]
        v[q + 1] = a21 * u[q] + a22 * v[q] + b21 * s[q] + b22 * s[q + 1]
    return u, v


@jit(nopython=True, cache=True)
def spectral_displacement(T: np.ndarray, s: np.ndarray, zeta: float, dt: float) -> np.ndarray:
    """Peak relative displacement for each period in `T` (T=0 gives 0)."""
    sd = np.zeros(len(T))
    for k in range(len(T)):
        if T[k] <= 1e-12:
            continue
        u, _ = sdof_response(s, dt, T[k], zeta)
        sd[k] = np.max(np.abs(u))
    return sd
