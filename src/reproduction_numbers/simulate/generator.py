# src/reproduction_numbers/simulate/generator.py
# ###
# Epidemic generator

# Purpose: produce the ground truth the estimators are scored against. An
# SEIR epidemic is run under a TransmissionSchedule, either deterministically
# (RK4 on a fine step) or stochastically (binomial chain), and we record per
# day the compartments, the incidence (new E-entries), a delayed "observed
# case" series and the true Rt = beta(t) / gamma * S(t) / N.

# Functions:
# - simulate_epidemic(): SEIR ground truth -> SimulationState
# - observe_cases(): incidence -> observed cases through the reporting delay
# - simulate_renewal(): Poisson renewal trajectory I_t ~ Poisson(R_t * Lambda_t)
# ###

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from numpy.random import default_rng
from scipy.stats import gamma

from ..config import ObservationModel, SEIRParameters
from ..errors import InvalidParameter
from .schedule import TransmissionSchedule
from .seir import integrate_seir
from .serial_interval import SerialIntervalModel, triangular_weights

logger = logging.getLogger(__name__)

MODES = ("deterministic", "stochastic")


def _frozen(values, dtype=float) -> np.ndarray:
    arr = np.array(values, dtype=dtype)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class SimulationState:
    """One simulation run, one row per day. Arrays are read-only."""
    time: np.ndarray
    susceptible: np.ndarray
    exposed: np.ndarray
    infectious: np.ndarray
    removed: np.ndarray
    incidence: np.ndarray
    observed: np.ndarray
    true_rt: np.ndarray
    transmission_rate: np.ndarray
    cumulative_infections: np.ndarray
    population: float
    mode: str
    seed: Optional[int] = None

    def __len__(self):
        return int(self.time.size)

    def incidence_view(self) -> Tuple[np.ndarray, np.ndarray]:
        """(time, incidence) for the estimators; both read-only."""
        return self.time, self.incidence

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "time": self.time,
            "S": self.susceptible,
            "E": self.exposed,
            "I": self.infectious,
            "R": self.removed,
            "incidence": self.incidence,
            "observed_cases": self.observed,
            "true_rt": self.true_rt,
            "transmission_rate": self.transmission_rate,
            "cumulative_infections": self.cumulative_infections,
        })


@dataclass(frozen=True, eq=False)
class RenewalTrajectory:
    time: np.ndarray
    incidence: np.ndarray
    true_rt: np.ndarray
    seed: Optional[int] = None

    def incidence_view(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.time, self.incidence

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"time": self.time, "incidence": self.incidence, "true_rt": self.true_rt})


def reporting_delay_pmf(observation: ObservationModel, tail_mass: float = 1e-3) -> np.ndarray:
    """Infection-to-report delay over lags 0..D days (gamma, triangular kernel)."""
    if observation.delay_mean is None:
        return np.array([1.0])
    mean, sd = observation.delay_mean, observation.delay_sd
    g = gamma(a=(mean / sd) ** 2, scale=sd ** 2 / mean)
    max_lag = max(1, int(np.ceil(g.isf(tail_mass))))
    w = triangular_weights(g.pdf, np.arange(0, max_lag + 1))
    return w / w.sum()


def observe_cases(incidence, observation: Optional[ObservationModel] = None) -> np.ndarray:
    """Convolve incidence with the reporting delay, thin, and floor to integers.

    Reports falling after the end of the series are dropped.
    """
    if observation is None:
        observation = ObservationModel()
    incidence = np.asarray(incidence, dtype=float)
    delay = reporting_delay_pmf(observation)
    n = incidence.size

    expected = np.zeros(n, dtype=float)
    # Explicit convolution: a case infected on day s is reported on s + lag
    for t in range(n):
        max_lag = min(delay.size - 1, t)
        past = incidence[t - max_lag: t + 1]
        expected[t] = float(np.dot(delay[: max_lag + 1], past[::-1]))

    expected *= observation.reporting_fraction
    # Guard against -0.0 from roundoff
    return np.floor(np.maximum(expected, 0.0) + 1e-9).astype(np.int64)


def _deterministic(params: SEIRParameters, schedule: TransmissionSchedule):
    times, states = integrate_seir(params, schedule, solver="rk4", method_tag="generator")
    return times, states[:, 0], states[:, 1], states[:, 2], states[:, 3], states[:, 4]


def _stochastic(params: SEIRParameters, schedule: TransmissionSchedule, rng):
    """Discrete-time binomial chain on the fine step dt."""
    N = int(round(params.population))
    E = int(round(params.initial_exposed))
    I = int(round(params.initial_infectious))
    S = N - E - I
    R = 0
    C = 0

    n_per_day = params.steps_per_day
    h = 1.0 / n_per_day
    p_progress = 1.0 - np.exp(-params.sigma * h)
    p_remove = 1.0 - np.exp(-params.gamma * h)

    horizon = int(params.horizon)
    out = np.empty((horizon + 1, 5), dtype=np.int64)
    out[0] = (S, E, I, R, C)

    for day in range(horizon):
        for sub in range(n_per_day):
            t = day + sub / n_per_day
            p_infect = 1.0 - np.exp(-schedule(t) * I / N * h)
            # Independent draws per transition
            new_E = int(rng.binomial(S, p_infect)) if S > 0 and I > 0 else 0
            new_I = int(rng.binomial(E, p_progress)) if E > 0 else 0
            new_R = int(rng.binomial(I, p_remove)) if I > 0 else 0
            S -= new_E
            E += new_E - new_I
            I += new_I - new_R
            R += new_R
            C += new_E
        out[day + 1] = (S, E, I, R, C)

    times = np.arange(horizon + 1, dtype=float)
    return times, out[:, 0], out[:, 1], out[:, 2], out[:, 3], out[:, 4]


def simulate_epidemic(
    params: SEIRParameters,
    schedule: TransmissionSchedule,
    mode: str = "deterministic",
    seed: Optional[int] = None,
    observation: Optional[ObservationModel] = None,
) -> SimulationState:
    """Simulate an SEIR epidemic up to params.horizon days.

    Incidence at day t counts infections in (t - 1, t]; day 0 has none.

    Args:
        params (SEIRParameters): population, initial compartments, durations, dt
        schedule (TransmissionSchedule): beta(t)
        mode (str): "deterministic" or "stochastic"
        seed (int): RNG seed for stochastic mode
        observation (ObservationModel): reporting delay and fraction
    Returns:
        SimulationState
    Raises:
        InvalidParameter, IntegrationInstability
    """
    if mode not in MODES:
        raise InvalidParameter(f"mode must be one of {MODES}, got {mode!r}", parameter="mode")
    if not isinstance(schedule, TransmissionSchedule):
        raise InvalidParameter("schedule must be a TransmissionSchedule", parameter="schedule")
    if observation is None:
        observation = ObservationModel()

    if mode == "deterministic":
        times, S, E, I, R, C = _deterministic(params, schedule)
    else:
        times, S, E, I, R, C = _stochastic(params, schedule, default_rng(seed))

    incidence = np.zeros(times.size, dtype=float)
    incidence[1:] = np.maximum(np.diff(C.astype(float)), 0.0)

    rates = schedule.rates(times)
    true_rt = rates * params.infectious_period * S / params.population

    observed = observe_cases(incidence, observation)
    logger.info(
        "Simulated %s SEIR epidemic: %d days, %.0f infections",
        mode, int(params.horizon), float(C[-1]),
    )

    return SimulationState(
        time=_frozen(times),
        susceptible=_frozen(S),
        exposed=_frozen(E),
        infectious=_frozen(I),
        removed=_frozen(R),
        incidence=_frozen(incidence),
        observed=_frozen(observed, dtype=np.int64),
        true_rt=_frozen(true_rt),
        transmission_rate=_frozen(rates),
        cumulative_infections=_frozen(C),
        population=float(params.population),
        mode=mode,
        seed=seed,
    )


def simulate_renewal(
    serial_interval: SerialIntervalModel,
    reproduction_number: TransmissionSchedule,
    horizon: int,
    initial_cases: Iterable[int] = (10,),
    seed: Optional[int] = None,
) -> RenewalTrajectory:
    """Simulate a trajectory with the renewal method.

    reproduction_number is read as R(t) directly (its base_rate is R).
    Returns daily counts for t = 0..horizon.
    """
    # Max days check
    if horizon < 1:
        raise InvalidParameter("horizon must be >= 1", parameter="horizon")

    w_arr = serial_interval.pmf
    k_support = w_arr.size
    rng = default_rng(seed)

    initial = list(initial_cases)
    if not initial:
        initial = [1]
    if any(c < 0 for c in initial):
        raise InvalidParameter("initial_cases must be >= 0", parameter="initial_cases")

    n = horizon + 1
    trajectory = np.zeros(n, dtype=np.int64)

    # Populate initial cases
    L = min(len(initial), n)
    trajectory[:L] = np.asarray(initial[:L], dtype=np.int64)

    times = np.arange(n, dtype=float)
    rt = reproduction_number.rates(times)

    for t in range(L, n):
        max_lag = min(k_support, t)
        past = trajectory[t - max_lag: t]        # I_{t-max_lag}..I_{t-1}
        ws = w_arr[:max_lag]                     # w_1..w_maxlag
        lam = rt[t] * float(np.dot(ws, past[::-1]))  # align w_s with I_{t-s}
        trajectory[t] = int(rng.poisson(lam)) if lam > 0.0 else 0

    return RenewalTrajectory(
        time=_frozen(times),
        incidence=_frozen(trajectory, dtype=np.int64),
        true_rt=_frozen(rt),
        seed=seed,
    )
