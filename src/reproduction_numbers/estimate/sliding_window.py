# src/reproduction_numbers/estimate/sliding_window.py
"""
Sliding-window Rt estimator (Cori-style).

Assumes a Poisson renewal process, E[I_s] = R * Lambda_s with force of
infection Lambda_s = sum_{k=1..L} I_{s-k} w_k. Within the window R is constant
and a Gamma(a0, scale=b0) prior gives the Gamma posterior

    shape = a0 + sum_window I_s,   rate = 1/b0 + sum_window Lambda_s

Lambda_s is only defined once a full serial-interval horizon has elapsed
(s >= L); windows that start earlier produce a missing estimate.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import gamma as scipy_gamma

from ..config import EstimatorConfig
from ..errors import InsufficientHistory, InvalidParameter
from ..io import validate_series
from ..simulate.serial_interval import SerialIntervalModel
from .results import (
    FLAG_BEYOND_SERIES,
    FLAG_INSUFFICIENT_HISTORY,
    RtEstimate,
)

logger = logging.getLogger(__name__)

METHOD = "sliding_window"


def force_of_infection(incidence, serial_interval: SerialIntervalModel, complete_only: bool = True) -> np.ndarray:
    """Lambda_s for every s.

    With complete_only, Lambda_s is NaN where the history is shorter than the
    serial-interval horizon; otherwise it uses whatever history exists
    (Lambda_0 = 0).
    """
    I = np.asarray(incidence, dtype=float)
    w = serial_interval.pmf
    L = serial_interval.horizon
    lam = np.full(I.size, np.nan)

    for s in range(I.size):
        if complete_only and s < L:
            continue
        max_lag = min(L, s)
        if max_lag == 0:
            lam[s] = 0.0
            continue
        past = I[s - max_lag: s]                 # I_{s-max_lag}..I_{s-1}
        lam[s] = float(np.dot(w[:max_lag], past[::-1]))
    return lam


def gamma_posterior(
    sum_incidence: float,
    sum_force: float,
    prior_shape: float,
    prior_scale: float,
    quantiles: Tuple[float, float],
) -> Tuple[float, float, float]:
    """Posterior (mean, lower, upper) of R.

    A window with zero force of infection carries no information on R, so the
    prior itself is reported.
    """
    if sum_force <= 0:
        shape, scale = prior_shape, prior_scale
    else:
        shape = prior_shape + sum_incidence
        scale = 1.0 / (1.0 / prior_scale + sum_force)
    mean = shape * scale
    lower, upper = scipy_gamma.ppf(quantiles, a=shape, scale=scale)
    return float(mean), float(lower), float(upper)


def sliding_window_at(
    t: int,
    incidence,
    serial_interval: SerialIntervalModel,
    config: EstimatorConfig,
    times: Optional[Sequence[float]] = None,
    foi: Optional[np.ndarray] = None,
) -> RtEstimate:
    """Estimate for index t.

    Raises:
        InsufficientHistory: the window starts before time 0 or before one
            full serial-interval horizon has elapsed
    """
    times, I = validate_series(incidence, times, method=METHOD)
    n = I.size
    if not 0 <= t < n:
        raise InvalidParameter(f"time index {t} outside the series", method=METHOD, parameter="t")
    if foi is None:
        foi = force_of_infection(I, serial_interval)

    window = config.window
    first, last = window.bounds(t)
    if first < 0:
        raise InsufficientHistory(
            f"window of width {window.width} reported at t={times[t]} starts before time 0",
            method=METHOD, time_range=(times[t], times[t]), parameter="window_width",
        )
    if first < serial_interval.horizon:
        raise InsufficientHistory(
            f"window starts at t={times[first]}, before one serial-interval horizon "
            f"({serial_interval.horizon} steps) has elapsed",
            method=METHOD, time_range=(times[first], times[min(last, n - 1)]), parameter="serial_interval",
        )
    if last > n - 1:
        return RtEstimate.missing(times[t], METHOD, FLAG_BEYOND_SERIES)

    sum_I = float(I[first: last + 1].sum())
    sum_foi = float(foi[first: last + 1].sum())
    mean, lower, upper = gamma_posterior(
        sum_I, sum_foi, config.prior_shape, config.prior_scale, config.quantiles
    )
    return RtEstimate(time=float(times[t]), method=METHOD, mean=mean, lower=lower, upper=upper)


def estimate_sliding_window(
    incidence,
    serial_interval: Optional[SerialIntervalModel] = None,
    config: Optional[EstimatorConfig] = None,
    times: Optional[Sequence[float]] = None,
) -> List[RtEstimate]:
    """One RtEstimate per time point; ineligible times are flagged missing.

    Raises:
        InsufficientHistory: the series is shorter than the window width
    """
    if config is None:
        config = EstimatorConfig()
    if serial_interval is None:
        serial_interval = config.serial_interval()
    times, I = validate_series(incidence, times, method=METHOD)

    if I.size < config.window_width:
        raise InsufficientHistory(
            f"series of length {I.size} is shorter than the window width {config.window_width}",
            method=METHOD, time_range=(times[0], times[-1]), parameter="window_width",
        )

    foi = force_of_infection(I, serial_interval)
    out = []
    for t in range(I.size):
        try:
            out.append(sliding_window_at(t, I, serial_interval, config, times=times, foi=foi))
        except InsufficientHistory:
            out.append(RtEstimate.missing(times[t], METHOD, FLAG_INSUFFICIENT_HISTORY))

    n_missing = sum(e.is_missing for e in out)
    logger.info("Sliding-window estimates: %d times, %d missing", len(out), n_missing)
    return out
