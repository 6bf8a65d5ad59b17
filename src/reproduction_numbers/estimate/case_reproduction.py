# src/reproduction_numbers/estimate/case_reproduction.py
"""
Deterministic reference Rt from forward integration of the SEIR ODEs.

Two reference trajectories are available on the daily time base of the
generator:

- kind="instantaneous": beta(t) / gamma * S(t) / N
- kind="cohort": expected secondary infections of a case infected at t,
      (1/gamma) * int_0^inf beta(t + tau) S(t + tau) / N g(tau) dtau
  with g the SEIR generation-time density. Integration runs past the horizon
  until the tail of g is negligible.

Neither uses observed incidence; only the rate function and the compartment
parameters.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List

import numpy as np
import pandas as pd

from ..config import SEIRParameters
from ..errors import InvalidParameter
from ..simulate.seir import SOLVERS, integrate_seir
from ..simulate.serial_interval import seir_generation_tail, seir_generation_density
from .results import RtEstimate

logger = logging.getLogger(__name__)

METHOD = "case_reproduction"
KINDS = ("instantaneous", "cohort")
KERNEL_TAIL = 1e-8


@dataclass(frozen=True, eq=False)
class CaseReproductionResult:
    time: np.ndarray
    rt: np.ndarray
    susceptible: np.ndarray
    exposed: np.ndarray
    infectious: np.ndarray
    removed: np.ndarray
    transmission_rate: np.ndarray
    kind: str
    dt: float

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "time": self.time,
            "case_rt": self.rt,
            "S": self.susceptible,
            "E": self.exposed,
            "I": self.infectious,
            "R": self.removed,
            "transmission_rate": self.transmission_rate,
        })

    def to_estimates(self) -> List[RtEstimate]:
        """Degenerate estimates (lower = mean = upper) for joining with estimator tables."""
        return [
            RtEstimate(time=float(t), method=METHOD, mean=float(r), lower=float(r), upper=float(r))
            for t, r in zip(self.time, self.rt)
        ]


def _rates(rate_fn: Callable[[float], float], times: np.ndarray) -> np.ndarray:
    if hasattr(rate_fn, "rates"):
        return np.asarray(rate_fn.rates(times), dtype=float)
    return np.array([float(rate_fn(t)) for t in times])


def kernel_horizon(params: SEIRParameters) -> int:
    """Whole days after which the generation-time tail mass is below KERNEL_TAIL."""
    days = 1
    while seir_generation_tail(days, params.latent_period, params.infectious_period) >= KERNEL_TAIL:
        days += 1
    return days


def integrate_case_reproduction(
    rate_fn: Callable[[float], float],
    params: SEIRParameters,
    kind: str = "instantaneous",
    method: str = "rk4",
) -> CaseReproductionResult:
    """Reference case reproduction number on days 0..params.horizon.

    Args:
        rate_fn: beta(t), for example a TransmissionSchedule
        params (SEIRParameters): N, initial E and I, durations, horizon and dt
        kind (str): "instantaneous" or "cohort"
        method (str): fixed-step solver, "rk4" or "euler"
    Raises:
        InvalidParameter, IntegrationInstability
    """
    if kind not in KINDS:
        raise InvalidParameter(f"kind must be one of {KINDS}, got {kind!r}", method=METHOD, parameter="kind")
    if method not in SOLVERS:
        raise InvalidParameter(f"method must be one of {SOLVERS}, got {method!r}", method=METHOD, parameter="method")
    if not callable(rate_fn):
        raise InvalidParameter("rate_fn must be callable", method=METHOD, parameter="rate_fn")

    horizon = int(params.horizon)
    days = np.arange(horizon + 1, dtype=float)
    daily_rates = _rates(rate_fn, days)
    if np.any(daily_rates <= 0) or not np.all(np.isfinite(daily_rates)):
        bad = float(days[np.flatnonzero(~(daily_rates > 0))[0]])
        raise InvalidParameter(
            "transmission rate must be > 0", method=METHOD, time_range=(bad, bad), parameter="rate_fn"
        )

    N = float(params.population)
    if kind == "instantaneous":
        times, states = integrate_seir(params, rate_fn, solver=method, method_tag=METHOD)
        rt = daily_rates * params.infectious_period * states[:, 0] / N
    else:
        tail_days = kernel_horizon(params)
        fine_t, fine_states = integrate_seir(
            params, rate_fn, solver=method, horizon=horizon + tail_days, method_tag=METHOD, fine=True,
        )
        n_per_day = params.steps_per_day
        h = 1.0 / n_per_day
        pressure = _rates(rate_fn, fine_t) * fine_states[:, 0] / N

        # Trapezoid weights for the generation density on the lag grid
        tau = np.arange(tail_days * n_per_day + 1) * h
        kernel = seir_generation_density(params.latent_period, params.infectious_period)(tau) * h
        kernel[0] *= 0.5
        kernel[-1] *= 0.5

        rt = np.empty(horizon + 1, dtype=float)
        for d in range(horizon + 1):
            start = d * n_per_day
            rt[d] = params.infectious_period * float(np.dot(kernel, pressure[start: start + kernel.size]))

        states = fine_states[:: n_per_day][: horizon + 1]
        times = days

    logger.info("Integrated %s case reproduction number over %d days (dt=%g)", kind, horizon, params.dt)
    return CaseReproductionResult(
        time=times,
        rt=rt,
        susceptible=states[:, 0],
        exposed=states[:, 1],
        infectious=states[:, 2],
        removed=states[:, 3],
        transmission_rate=daily_rates,
        kind=kind,
        dt=float(params.dt),
    )
