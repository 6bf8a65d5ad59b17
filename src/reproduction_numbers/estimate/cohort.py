# src/reproduction_numbers/estimate/cohort.py
"""
Backward cohort Rt estimator (Wallinga-Teunis-style) with resampling.

Each case at a later time u is apportioned to earlier times v in proportion
to I_v w_{u-v}, so a case at t is expected to have

    R_t = sum_{u > t} I_u w_{u-t} / Lambda_u,   Lambda_u = sum_{v < u} I_v w_{u-v}

descendants. There is no closed-form sampling distribution, so uncertainty
comes from B replicate series drawn around the observed incidence; every
replicate owns a generator spawned from one SeedSequence, which keeps the
output identical whatever the number of joblib workers.

Resampling models:
    - "renewal": future counts are redrawn from their fitted renewal means
      with the observed force of infection held fixed, I*_u ~ Poisson(I_u)
      and R*_t = sum_u w_{u-t} I*_u / Lambda_u
    - "poisson": the whole series is redrawn, I*_u ~ Poisson(I_u), and
      Lambda is recomputed from the replicate
    - "multinomial": as "poisson" with the total case count kept fixed
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from joblib import Parallel, delayed
from numpy.random import SeedSequence, default_rng

from ..config import EstimatorConfig
from ..errors import EmptyFutureWindow, InvalidParameter
from ..io import validate_series
from ..simulate.serial_interval import SerialIntervalModel
from .results import FLAG_EMPTY_FUTURE, FLAG_UNSTABLE, RtEstimate
from .sliding_window import force_of_infection

logger = logging.getLogger(__name__)

METHOD = "cohort"


def _attribution_ratio(I: np.ndarray, lam: np.ndarray) -> np.ndarray:
    """I_u / Lambda_u, zero where no earlier case can have infected u."""
    ratio = np.zeros(I.size, dtype=float)
    ok = lam > 0
    ratio[ok] = I[ok] / lam[ok]
    return ratio


def _cohort_from_ratio(
    I: np.ndarray,
    ratio: np.ndarray,
    serial_interval: SerialIntervalModel,
    truncation_correction: bool,
) -> Tuple[np.ndarray, np.ndarray]:
    n = I.size
    w = serial_interval.pmf
    L = serial_interval.horizon

    rt = np.full(n, np.nan)
    truncated = np.zeros(n, dtype=bool)
    for t in range(n):
        last = min(n - 1, t + L)
        m = last - t                              # future steps observed
        if m <= 0:
            truncated[t] = True
            continue
        truncated[t] = t + L > n - 1
        future = I[t + 1: last + 1].sum()
        if future == 0 and (truncated[t] or I[t] == 0):
            # Nothing to attribute: either no cohort at all, or extinction
            # cannot be told apart from missing future data
            continue
        value = float(np.dot(w[:m], ratio[t + 1: last + 1]))
        if truncation_correction and truncated[t]:
            observed_mass = serial_interval.cdf(m)
            if observed_mass > 0:
                value /= observed_mass
        rt[t] = value
    return rt, truncated


def cohort_reproduction_number(
    incidence,
    serial_interval: SerialIntervalModel,
    truncation_correction: bool = False,
) -> Tuple[np.ndarray, np.ndarray]:
    """Point estimates for every time.

    Returns:
        rt (np.ndarray): R_t, NaN where there is nothing to attribute
        truncated (np.ndarray): True where t + L runs past the series end
    """
    I = np.asarray(incidence, dtype=float)
    lam = force_of_infection(I, serial_interval, complete_only=False)
    return _cohort_from_ratio(I, _attribution_ratio(I, lam), serial_interval, truncation_correction)


def cohort_at(
    t: int,
    incidence,
    serial_interval: SerialIntervalModel,
    truncation_correction: bool = False,
    times: Optional[Sequence[float]] = None,
) -> float:
    """Point estimate at index t.

    Raises:
        EmptyFutureWindow: no later incidence exists to attribute from
    """
    times, I = validate_series(incidence, times, method=METHOD)
    if not 0 <= t < I.size:
        raise InvalidParameter(f"time index {t} outside the series", method=METHOD, parameter="t")
    rt, _ = cohort_reproduction_number(I, serial_interval, truncation_correction)
    if np.isnan(rt[t]):
        raise EmptyFutureWindow(
            f"no later incidence to attribute cases at t={times[t]} from",
            method=METHOD, time_range=(times[t], times[-1]), parameter="serial_interval",
        )
    return float(rt[t])


def resample_incidence(I: np.ndarray, rng, model: str = "poisson") -> np.ndarray:
    """Redraw a series around the observed incidence."""
    if model in ("poisson", "renewal"):
        return rng.poisson(I).astype(float)
    total = int(round(I.sum()))
    if total == 0:
        return np.zeros_like(I)
    return rng.multinomial(total, I / I.sum()).astype(float)


def _replicate(I, lam, serial_interval, seed_seq, model, truncation_correction):
    rng = default_rng(seed_seq)
    sample = resample_incidence(I, rng, model)
    if model == "renewal":
        # Lambda stays at its observed value; only the future counts move
        return _cohort_from_ratio(I, _attribution_ratio(sample, lam), serial_interval, truncation_correction)[0]
    rt, _ = cohort_reproduction_number(sample, serial_interval, truncation_correction)
    return rt


def resample_cohort(
    incidence,
    serial_interval: SerialIntervalModel,
    config: EstimatorConfig,
) -> np.ndarray:
    """Replicate estimates, shape (resample_count, n); NaN where undefined."""
    I = np.asarray(incidence, dtype=float)
    lam = force_of_infection(I, serial_interval, complete_only=False)
    children = SeedSequence(config.random_seed).spawn(int(config.resample_count))
    reps = Parallel(n_jobs=config.n_jobs)(
        delayed(_replicate)(I, lam, serial_interval, child, config.resample_model, config.truncation_correction)
        for child in children
    )
    return np.vstack(reps)


def estimate_cohort(
    incidence,
    serial_interval: Optional[SerialIntervalModel] = None,
    config: Optional[EstimatorConfig] = None,
    times: Optional[Sequence[float]] = None,
) -> List[RtEstimate]:
    """Resampled cohort estimates, one RtEstimate per time.

    mean is the replicate mean and lower/upper the replicate percentiles at
    config.quantiles. Times whose future window runs past the end of the
    series are flagged unstable; times with nothing to attribute from are
    missing with flag empty_future.

    Raises:
        EmptyFutureWindow: the series has no time with a later observation
    """
    if config is None:
        config = EstimatorConfig()
    if serial_interval is None:
        serial_interval = config.serial_interval()
    times, I = validate_series(incidence, times, method=METHOD)
    if I.size < 2:
        raise EmptyFutureWindow(
            "a single observation has no future to attribute from",
            method=METHOD, time_range=(times[0], times[-1]), parameter="incidence",
        )

    point, truncated = cohort_reproduction_number(I, serial_interval, config.truncation_correction)
    reps = resample_cohort(I, serial_interval, config)
    q_lo, q_hi = config.quantiles

    out = []
    for t in range(I.size):
        values = reps[:, t]
        values = values[np.isfinite(values)]
        if np.isnan(point[t]) or values.size == 0:
            out.append(RtEstimate.missing(times[t], METHOD, FLAG_EMPTY_FUTURE))
            continue
        lower, upper = np.percentile(values, [100.0 * q_lo, 100.0 * q_hi])
        mean = float(values.mean())
        # Skewed replicates can put their mean outside the percentile interval;
        # the reported mean is clamped into it
        mean = min(max(mean, float(lower)), float(upper))
        out.append(RtEstimate(
            time=float(times[t]),
            method=METHOD,
            mean=mean,
            lower=float(lower),
            upper=float(upper),
            flag=FLAG_UNSTABLE if truncated[t] else None,
        ))

    logger.info(
        "Cohort estimates: %d times, %d replicates (%s, n_jobs=%d), %d unstable",
        len(out), reps.shape[0], config.resample_model, config.n_jobs, int(truncated.sum()),
    )
    return out
