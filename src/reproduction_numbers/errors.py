# src/reproduction_numbers/errors.py
"""
Error kinds raised by the generator, the estimators and the integrator.

Every error can carry the estimation method, the time range and the parameter
involved so that a failure message says exactly what went wrong and where.
"""

from typing import Optional, Tuple


class ReproductionNumberError(Exception):
    """Base class for all errors raised by this package."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        time_range: Optional[Tuple[float, float]] = None,
        parameter: Optional[str] = None,
    ):
        self.method = method
        self.time_range = time_range
        self.parameter = parameter
        details = []
        if method is not None:
            details.append(f"method={method}")
        if time_range is not None:
            details.append(f"time_range=[{time_range[0]}, {time_range[1]}]")
        if parameter is not None:
            details.append(f"parameter={parameter}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class InvalidParameter(ReproductionNumberError, ValueError):
    """Malformed configuration: non-positive rate, window or population."""


class InsufficientHistory(ReproductionNumberError):
    """Not enough preceding data for the requested window or serial interval."""


class EmptyFutureWindow(ReproductionNumberError):
    """No later incidence to attribute from (cohort estimator)."""


class IntegrationInstability(ReproductionNumberError, RuntimeError):
    """ODE integration diverged or produced negative compartments."""
