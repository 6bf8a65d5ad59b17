# src/reproduction_numbers/simulate/schedule.py
"""
Piecewise-constant transmission rate beta(t).

The same schedule drives the epidemic generator and the case-reproduction
integrator so that both can be compared on one time base.

Notes:
    - breakpoints are (time, multiplier) pairs with strictly increasing times
    - the rate is right-continuous: a step at time tb applies from tb onwards
    - before the first breakpoint the multiplier is 1
"""

from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

import numpy as np

from ..errors import InvalidParameter


@dataclass(frozen=True)
class TransmissionSchedule:
    base_rate: float
    breakpoints: Tuple[Tuple[float, float], ...] = ((0.0, 1.0),)

    def __post_init__(self):
        points = tuple((float(t), float(m)) for t, m in self.breakpoints)
        if self.base_rate <= 0:
            raise InvalidParameter("transmission base_rate must be > 0", parameter="base_rate")
        if not points:
            raise InvalidParameter("a schedule needs at least one breakpoint", parameter="breakpoints")
        times = np.array([t for t, _ in points])
        if np.any(np.diff(times) <= 0):
            raise InvalidParameter("breakpoint times must be strictly increasing", parameter="breakpoints")
        for t, m in points:
            if m <= 0:
                raise InvalidParameter(
                    f"rate multiplier at t={t} must be > 0", time_range=(t, t), parameter="breakpoints"
                )
        object.__setattr__(self, "breakpoints", points)

    @classmethod
    def constant(cls, rate: float) -> "TransmissionSchedule":
        return cls(base_rate=rate)

    @classmethod
    def from_reproduction_number(
        cls,
        reproduction_number: float,
        infectious_period: float,
        breakpoints: Iterable[Tuple[float, float]] = ((0.0, 1.0),),
    ) -> "TransmissionSchedule":
        """beta = R0 / infectious_period, so the rate is R0 in a fully susceptible population."""
        if reproduction_number <= 0 or infectious_period <= 0:
            raise InvalidParameter(
                "reproduction_number and infectious_period must be > 0", parameter="reproduction_number"
            )
        return cls(base_rate=reproduction_number / infectious_period, breakpoints=tuple(breakpoints))

    @property
    def times(self) -> np.ndarray:
        return np.array([t for t, _ in self.breakpoints], dtype=float)

    @property
    def multipliers(self) -> np.ndarray:
        return np.array([m for _, m in self.breakpoints], dtype=float)

    def multiplier_at(self, t: float) -> float:
        # Index of the last breakpoint with time <= t
        k = int(np.searchsorted(self.times, t, side="right") - 1)
        if k < 0:
            return 1.0
        return float(self.breakpoints[k][1])

    def rate_at(self, t: float) -> float:
        return self.base_rate * self.multiplier_at(t)

    def __call__(self, t: float) -> float:
        return self.rate_at(t)

    def rates(self, times: Sequence[float]) -> np.ndarray:
        """Vectorised rate_at over a time grid."""
        times = np.asarray(times, dtype=float)
        idx = np.searchsorted(self.times, times, side="right") - 1
        mult = np.where(idx >= 0, self.multipliers[np.clip(idx, 0, None)], 1.0)
        return self.base_rate * mult

    def as_dict(self):
        return {"base_rate": self.base_rate, "breakpoints": [list(p) for p in self.breakpoints]}
