# src/reproduction_numbers/simulate/seir.py
"""
Deterministic SEIR right-hand side and fixed-step solvers.

State vector is (S, E, I, R, C) where C counts cumulative infections
(new E-entries), so daily incidence is the day-to-day difference of C.

    dS = -beta(t) S I / N
    dE =  beta(t) S I / N - sigma E
    dI =  sigma E - gamma I
    dR =  gamma I
    dC =  beta(t) S I / N
"""

import logging
from typing import Callable, Optional, Tuple

import numpy as np

from ..config import SEIRParameters
from ..errors import IntegrationInstability, InvalidParameter

logger = logging.getLogger(__name__)

SOLVERS = ("rk4", "euler")
# Compartments may dip this far below zero (relative to N) before we give up
NEGATIVE_TOLERANCE = 1e-9


def seir_rhs(state: np.ndarray, beta: float, sigma: float, gamma: float, N: float) -> np.ndarray:
    S, E, I, R, C = state
    infection = beta * S * I / N
    dS = -infection
    dE = infection - sigma * E
    dI = sigma * E - gamma * I
    dR = gamma * I
    return np.array([dS, dE, dI, dR, infection])


def rk4_step(state, t, h, rate_fn, sigma, gamma, N):
    # The last stage is evaluated just left of the step end so a schedule
    # step landing on the grid only applies from the next step
    t_end = np.nextafter(t + h, t)
    k1 = seir_rhs(state, rate_fn(t), sigma, gamma, N)
    k2 = seir_rhs(state + 0.5 * h * k1, rate_fn(t + 0.5 * h), sigma, gamma, N)
    k3 = seir_rhs(state + 0.5 * h * k2, rate_fn(t + 0.5 * h), sigma, gamma, N)
    k4 = seir_rhs(state + h * k3, rate_fn(t_end), sigma, gamma, N)
    return state + (h / 6.0) * (k1 + 2 * k2 + 2 * k3 + k4)


def euler_step(state, t, h, rate_fn, sigma, gamma, N):
    return state + h * seir_rhs(state, rate_fn(t), sigma, gamma, N)


def _check_state(state, N, t, h, method_tag):
    if not np.all(np.isfinite(state)):
        raise IntegrationInstability(
            "SEIR integration diverged (non-finite compartment)",
            method=method_tag, time_range=(t, t + h), parameter="dt",
        )
    if np.any(state[:4] < -NEGATIVE_TOLERANCE * N):
        raise IntegrationInstability(
            f"SEIR integration produced a negative compartment (min={state[:4].min():.3g})",
            method=method_tag, time_range=(t, t + h), parameter="dt",
        )


def integrate_seir(
    params: SEIRParameters,
    rate_fn: Callable[[float], float],
    solver: str = "rk4",
    horizon: Optional[int] = None,
    method_tag: str = "seir",
    fine: bool = False,
) -> Tuple[np.ndarray, np.ndarray]:
    """Integrate on the fine grid dt and sample the state at integer days.

    With fine=True every integration step is kept instead.

    Returns:
        times (np.ndarray): days 0..horizon (or the fine grid)
        states (np.ndarray): shape (len(times), 5), columns S, E, I, R, C
    Raises:
        InvalidParameter, IntegrationInstability
    """
    if solver not in SOLVERS:
        raise InvalidParameter(f"solver must be one of {SOLVERS}, got {solver!r}", parameter="method")
    step = rk4_step if solver == "rk4" else euler_step

    if horizon is None:
        horizon = int(params.horizon)
    n_per_day = params.steps_per_day
    h = 1.0 / n_per_day
    N = float(params.population)
    sigma, gamma = params.sigma, params.gamma

    state = np.array([
        params.initial_susceptible,
        float(params.initial_exposed),
        float(params.initial_infectious),
        0.0,
        0.0,
    ])
    per_record = 1 if fine else n_per_day
    n_records = horizon * n_per_day // per_record + 1
    states = np.empty((n_records, 5), dtype=float)
    states[0] = state

    for day in range(horizon):
        for sub in range(n_per_day):
            # Time from the step index to avoid drift on the daily grid
            t = day + sub / n_per_day
            state = step(state, t, h, rate_fn, sigma, gamma, N)
            _check_state(state, N, t, h, method_tag)
            # Clip roundoff-level negatives
            state[:4] = np.maximum(state[:4], 0.0)
            k = day * n_per_day + sub + 1
            if k % per_record == 0:
                states[k // per_record] = state

    logger.debug("Integrated SEIR (%s, dt=%g) over %d days", solver, h, horizon)
    times = np.arange(n_records, dtype=float) * per_record / n_per_day
    return times, states
