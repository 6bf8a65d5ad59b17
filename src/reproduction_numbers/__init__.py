"""Rt estimation benchmark.

Re-exports the main entry points so scripts can import from
reproduction_numbers without deep module paths.
"""

from .version_info import VERSION as __version__  # noqa: F401
from .config import EstimationWindow, EstimatorConfig, ObservationModel, SEIRParameters  # noqa: F401
from .errors import (  # noqa: F401
    EmptyFutureWindow,
    InsufficientHistory,
    IntegrationInstability,
    InvalidParameter,
    ReproductionNumberError,
)
from .simulate.schedule import TransmissionSchedule  # noqa: F401
from .simulate.serial_interval import (  # noqa: F401
    SerialIntervalModel,
    discretize_serial_interval,
    seir_generation_interval,
)
from .simulate.generator import SimulationState, simulate_epidemic, simulate_renewal  # noqa: F401
from .estimate.results import RtEstimate, estimates_to_frame, merge_estimates  # noqa: F401
from .estimate.sliding_window import estimate_sliding_window  # noqa: F401
from .estimate.cohort import estimate_cohort  # noqa: F401
from .estimate.case_reproduction import integrate_case_reproduction  # noqa: F401
from .cache import ResultCache  # noqa: F401
