# src/reproduction_numbers/config.py
"""
Immutable configuration values passed explicitly into every component.

- SEIRParameters: population, initial compartments, durations and time grid
- ObservationModel: reporting delay and reporting fraction for observed cases
- EstimationWindow: width and alignment of the sliding estimation window
- EstimatorConfig: the recognised estimator options
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import InvalidParameter

ALIGNMENTS = ("start", "middle", "end")
RESAMPLE_MODELS = ("renewal", "poisson", "multinomial")


def _steps_per_day(dt: float) -> int:
    """Number of integration steps per day; dt has to divide one day."""
    if dt <= 0:
        raise InvalidParameter("dt must be > 0", parameter="dt")
    steps = int(round(1.0 / dt))
    if steps < 1 or abs(steps * dt - 1.0) > 1e-9:
        raise InvalidParameter(f"dt={dt} does not divide one day", parameter="dt")
    return steps


@dataclass(frozen=True)
class SEIRParameters:
    population: float = 1_000_000.0
    initial_exposed: float = 10.0
    initial_infectious: float = 10.0
    latent_period: float = 2.0
    infectious_period: float = 3.0
    horizon: int = 100
    dt: float = 0.01

    def __post_init__(self):
        # Raise some errors
        if self.population <= 0:
            raise InvalidParameter("population must be > 0", parameter="population")
        if self.initial_exposed < 0 or self.initial_infectious < 0:
            raise InvalidParameter(
                "initial compartments must be >= 0", parameter="initial_exposed/initial_infectious"
            )
        if self.initial_exposed + self.initial_infectious > self.population:
            raise InvalidParameter(
                "initial exposed + infectious exceed the population", parameter="population"
            )
        if self.latent_period <= 0:
            raise InvalidParameter("latent_period must be > 0", parameter="latent_period")
        if self.infectious_period <= 0:
            raise InvalidParameter("infectious_period must be > 0", parameter="infectious_period")
        if int(self.horizon) != self.horizon or self.horizon < 1:
            raise InvalidParameter("horizon must be a positive whole number of days", parameter="horizon")
        _steps_per_day(self.dt)

    @property
    def sigma(self) -> float:
        """Progression rate E -> I (per day)."""
        return 1.0 / self.latent_period

    @property
    def gamma(self) -> float:
        """Removal rate I -> R (per day)."""
        return 1.0 / self.infectious_period

    @property
    def steps_per_day(self) -> int:
        return _steps_per_day(self.dt)

    @property
    def initial_susceptible(self) -> float:
        return self.population - self.initial_exposed - self.initial_infectious


@dataclass(frozen=True)
class ObservationModel:
    """Infection-to-report delay (gamma, days) and reporting fraction.

    Set delay_mean to None to report on the day of infection.
    """
    delay_mean: Optional[float] = 5.0
    delay_sd: Optional[float] = 2.0
    reporting_fraction: float = 1.0

    def __post_init__(self):
        if self.delay_mean is not None:
            if self.delay_mean <= 0:
                raise InvalidParameter("delay_mean must be > 0", parameter="delay_mean")
            if self.delay_sd is None or self.delay_sd <= 0:
                raise InvalidParameter("delay_sd must be > 0", parameter="delay_sd")
        if not 0.0 < self.reporting_fraction <= 1.0:
            raise InvalidParameter(
                "reporting_fraction must be in (0, 1]", parameter="reporting_fraction"
            )


@dataclass(frozen=True)
class EstimationWindow:
    width: int = 7
    alignment: str = "end"

    def __post_init__(self):
        if int(self.width) != self.width or self.width < 1:
            raise InvalidParameter("window width must be a positive integer", parameter="window_width")
        if self.alignment not in ALIGNMENTS:
            raise InvalidParameter(
                f"window alignment must be one of {ALIGNMENTS}, got {self.alignment!r}",
                parameter="window_alignment",
            )

    def bounds(self, t: int) -> Tuple[int, int]:
        """Inclusive (first, last) index covered by the window reported at t.

        For even widths with middle alignment the extra step falls after t.
        """
        w = int(self.width)
        if self.alignment == "end":
            first = t - w + 1
        elif self.alignment == "start":
            first = t
        else:
            first = t - (w - 1) // 2
        return first, first + w - 1


@dataclass(frozen=True)
class EstimatorConfig:
    window_width: int = 7
    window_alignment: str = "end"
    # Defaults match the generation interval of the default SEIRParameters
    # (mean 2 + 3 days, sd sqrt(2^2 + 3^2)).
    serial_interval_mean: float = 5.0
    serial_interval_sd: float = 3.6
    confidence_level: float = 0.95
    resample_count: int = 200
    random_seed: Optional[int] = None
    prior_shape: float = 1.0
    prior_scale: float = 5.0
    n_jobs: int = 1
    resample_model: str = "renewal"
    truncation_correction: bool = False

    def __post_init__(self):
        # Building the window validates width and alignment
        EstimationWindow(width=self.window_width, alignment=self.window_alignment)
        if self.serial_interval_mean <= 0:
            raise InvalidParameter("serial_interval_mean must be > 0", parameter="serial_interval_mean")
        if self.serial_interval_sd <= 0:
            raise InvalidParameter("serial_interval_sd must be > 0", parameter="serial_interval_sd")
        if not 0.0 < self.confidence_level < 1.0:
            raise InvalidParameter("confidence_level must be in (0, 1)", parameter="confidence_level")
        if int(self.resample_count) != self.resample_count or self.resample_count < 1:
            raise InvalidParameter("resample_count must be a positive integer", parameter="resample_count")
        if self.prior_shape <= 0 or self.prior_scale <= 0:
            raise InvalidParameter("Gamma prior shape and scale must be > 0", parameter="prior_shape/prior_scale")
        if self.n_jobs == 0:
            raise InvalidParameter("n_jobs must be non-zero", parameter="n_jobs")
        if self.resample_model not in RESAMPLE_MODELS:
            raise InvalidParameter(
                f"resample_model must be one of {RESAMPLE_MODELS}", parameter="resample_model"
            )

    @property
    def window(self) -> EstimationWindow:
        return EstimationWindow(width=self.window_width, alignment=self.window_alignment)

    @property
    def quantiles(self) -> Tuple[float, float]:
        """Lower and upper quantile levels of the reported interval."""
        tail = (1.0 - self.confidence_level) / 2.0
        return tail, 1.0 - tail

    def serial_interval(self):
        # Local import keeps config importable from the simulate package
        from .simulate.serial_interval import discretize_serial_interval

        return discretize_serial_interval(self.serial_interval_mean, self.serial_interval_sd)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "EstimatorConfig":
        """Build a config from a plain mapping, rejecting unknown options."""
        known = {f.name for f in fields(cls)}
        for key in options:
            if key not in known:
                raise InvalidParameter(f"unrecognised estimator option {key!r}", parameter=key)
        return cls(**dict(options))
