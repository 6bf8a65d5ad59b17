# src/reproduction_numbers/simulate/serial_interval.py
# This will compute discrete-time serial interval weights w_k
# from a continuous generation-time density g(u)
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

import numpy as np
from scipy.stats import gamma
from numpy.polynomial.legendre import leggauss

from ..errors import InvalidParameter

PMF_TOLERANCE = 1e-9


@dataclass(frozen=True, eq=False)
class SerialIntervalModel:
    """Discretised serial interval.

    pmf[k - 1] is the probability of a lag of k days, for k = 1..horizon.
    """
    mean: float
    sd: float
    pmf: np.ndarray

    def __post_init__(self):
        pmf = np.array(self.pmf, dtype=float)
        if pmf.ndim != 1 or pmf.size < 1:
            raise InvalidParameter("serial interval pmf must be a non-empty 1D sequence", parameter="pmf")
        if np.any(pmf < 0) or not np.all(np.isfinite(pmf)):
            raise InvalidParameter("serial interval pmf must be finite and non-negative", parameter="pmf")
        if abs(pmf.sum() - 1.0) > PMF_TOLERANCE:
            raise InvalidParameter(f"serial interval pmf sums to {pmf.sum()}, not 1", parameter="pmf")
        pmf.flags.writeable = False
        object.__setattr__(self, "pmf", pmf)

    @property
    def horizon(self) -> int:
        """Largest lag L with non-zero support."""
        return int(self.pmf.size)

    def weight(self, lag: int) -> float:
        """w_lag, zero outside 1..horizon."""
        if lag < 1 or lag > self.horizon:
            return 0.0
        return float(self.pmf[lag - 1])

    def cdf(self, lag: int) -> float:
        """Probability mass on lags 1..lag."""
        if lag < 1:
            return 0.0
        return float(self.pmf[: min(lag, self.horizon)].sum())

    @classmethod
    def from_pmf(cls, pmf) -> "SerialIntervalModel":
        """Wrap an explicit pmf over lags 1..L; mean and sd are computed from it."""
        arr = np.asarray(pmf, dtype=float)
        if arr.ndim == 1 and arr.size and np.all(arr >= 0) and arr.sum() > 0:
            arr = arr / arr.sum()
        lags = np.arange(1, arr.size + 1)
        mean = float(np.sum(lags * arr)) if arr.ndim == 1 else float("nan")
        sd = float(np.sqrt(np.sum((lags - mean) ** 2 * arr))) if arr.ndim == 1 else float("nan")
        return cls(mean=mean, sd=sd, pmf=arr)


def triangular_weights(pdf: Callable, lags: np.ndarray, nquad: int = 32, step: float = 1.0) -> np.ndarray:
    """Integrate pdf against the triangular kernel centred on each lag.

    w_k = int_{k-1}^{k+1} [1 - |u - k|/step] g(u) du, with the lower limit
    clipped at zero so lag 0 only collects the mass on [0, step].
    """
    # Instead of quad() evaluate the integrand at fixed Gauss-Legendre nodes;
    # this is accurate for smooth integrals, so each side of the kernel's
    # peak is integrated separately
    nodes, weights = leggauss(nquad)
    w = np.zeros(len(lags), dtype=float)

    for i, k in enumerate(lags):
        center = step * k
        total = 0.0
        for left, right in ((step * (k - 1), center), (center, step * (k + 1))):
            left = max(0.0, left)
            if right <= left:
                continue
            half_width = 0.5 * (right - left)
            midpoint = 0.5 * (right + left)

            # u is where the integral is being evaluated
            u = half_width * nodes + midpoint

            # Triangular kernel calculation
            tri = 1.0 - np.abs(u - center) / step
            # Remove any -ve numbers
            tri[tri < 0.0] = 0.0

            total += half_width * np.sum(weights * tri * pdf(u))
        w[i] = total
    return w


def _first_bin_adjusted(w: np.ndarray) -> np.ndarray:
    # Adjust first bin so sum(w)=1; it absorbs the lag-0 and tail mass
    w = w.copy()
    w[0] = max(0.0, 1.0 - w[1:].sum())
    total = float(w.sum())
    if total <= 0:
        raise RuntimeError("Weights sum to a -ve number")
    return w / total


@lru_cache(maxsize=64)
def discretize_serial_interval(mean, sd, max_lag=None, tail_mass=1e-3, nquad=32):
    """Daily serial interval weights from a gamma distribution.

    Args:
        mean (float): mean serial interval in days
        sd (float): standard deviation in days
        max_lag (int): largest lag L; chosen from tail_mass when None
        tail_mass (float): upper-tail mass allowed beyond L
        nquad (int): Gauss-Legendre nodes per lag
    Returns:
        SerialIntervalModel with a pmf over lags 1..L that sums to one
    Raises:
        InvalidParameter
    """
    # Raise some errors
    if mean <= 0 or sd <= 0:
        raise InvalidParameter("serial interval mean and sd must be > 0", parameter="serial_interval_mean/sd")
    if not 0.0 < tail_mass < 1.0:
        raise InvalidParameter("tail_mass must be in (0, 1)", parameter="tail_mass")

    alpha = (mean / sd) ** 2
    theta = sd ** 2 / mean
    g = gamma(a=alpha, scale=theta)

    if max_lag is None:
        max_lag = max(1, int(np.ceil(g.isf(tail_mass))))
    if max_lag < 1:
        raise InvalidParameter("max_lag must be >= 1", parameter="max_lag")

    # k_1 is always 1
    if max_lag == 1:
        return SerialIntervalModel(mean=float(mean), sd=float(sd), pmf=np.array([1.0]))

    w = triangular_weights(g.pdf, np.arange(1, max_lag + 1), nquad=nquad)
    return SerialIntervalModel(mean=float(mean), sd=float(sd), pmf=_first_bin_adjusted(w))


def seir_generation_density(latent_period: float, infectious_period: float) -> Callable:
    """Generation-time density of an SEIR model with exponential periods."""
    sigma = 1.0 / latent_period
    gamma_ = 1.0 / infectious_period

    if np.isclose(sigma, gamma_):
        def g(u):
            u = np.asarray(u, dtype=float)
            return np.where(u >= 0, sigma ** 2 * u * np.exp(-sigma * u), 0.0)
    else:
        def g(u):
            u = np.asarray(u, dtype=float)
            dens = sigma * gamma_ / (sigma - gamma_) * (np.exp(-gamma_ * u) - np.exp(-sigma * u))
            return np.where(u >= 0, dens, 0.0)
    return g


@lru_cache(maxsize=64)
def seir_generation_interval(latent_period, infectious_period, max_lag: Optional[int] = None,
                             tail_mass=1e-3, nquad=32):
    """Daily weights of the exact SEIR generation interval.

    The generation time is latent period + time to infection within the
    infectious period, so mean = 1/sigma + 1/gamma and
    var = 1/sigma^2 + 1/gamma^2.
    """
    if latent_period <= 0 or infectious_period <= 0:
        raise InvalidParameter("latent and infectious periods must be > 0", parameter="latent_period/infectious_period")

    mean = latent_period + infectious_period
    sd = float(np.sqrt(latent_period ** 2 + infectious_period ** 2))

    if max_lag is None:
        # Tail of the slower exponential dominates
        slow = max(latent_period, infectious_period)
        lag = 1
        while True:
            tail = seir_generation_tail(lag, latent_period, infectious_period)
            if tail < tail_mass or lag > 100 * slow:
                break
            lag += 1
        max_lag = lag

    if max_lag == 1:
        return SerialIntervalModel(mean=mean, sd=sd, pmf=np.array([1.0]))

    g = seir_generation_density(latent_period, infectious_period)
    w = triangular_weights(g, np.arange(1, max_lag + 1), nquad=nquad)
    return SerialIntervalModel(mean=mean, sd=sd, pmf=_first_bin_adjusted(w))


def seir_generation_tail(x, latent_period, infectious_period):
    """P(generation time > x) for the SEIR generation density."""
    a = 1.0 / latent_period
    b = 1.0 / infectious_period
    if np.isclose(a, b):
        return float((1.0 + a * x) * np.exp(-a * x))
    return float((a * np.exp(-b * x) - b * np.exp(-a * x)) / (a - b))
