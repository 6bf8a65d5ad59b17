# src/reproduction_numbers/io.py
"""
Input series and output tables.

The input is a table of (time, incidence[, observed_cases]) with strictly
increasing, uniformly spaced time and non-negative integer counts. Deterministic
simulations produce fractional incidence; pass allow_fractional=True for those.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .errors import InvalidParameter

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def validate_series(
    incidence,
    times=None,
    allow_fractional: bool = True,
    method: Optional[str] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Check an incidence series and return (times, incidence) as float arrays.

    Raises:
        InvalidParameter on negative, non-finite or non-integer counts, or on
        time that is not strictly increasing with uniform spacing.
    """
    inc = np.asarray(incidence, dtype=float)
    if inc.ndim != 1 or inc.size == 0:
        raise InvalidParameter("incidence must be a non-empty 1D series", method=method, parameter="incidence")
    if not np.all(np.isfinite(inc)):
        raise InvalidParameter("incidence contains non-finite values", method=method, parameter="incidence")
    if np.any(inc < 0):
        first = int(np.flatnonzero(inc < 0)[0])
        raise InvalidParameter(
            "incidence must be non-negative", method=method, time_range=(first, first), parameter="incidence"
        )
    if not allow_fractional and np.any(inc != np.round(inc)):
        raise InvalidParameter("incidence must be integer counts", method=method, parameter="incidence")

    if times is None:
        t = np.arange(inc.size, dtype=float)
    else:
        t = np.asarray(times, dtype=float)
        if t.shape != inc.shape:
            raise InvalidParameter("time and incidence lengths differ", method=method, parameter="time")
        if t.size > 1:
            steps = np.diff(t)
            if np.any(steps <= 0):
                raise InvalidParameter("time must be strictly increasing", method=method, parameter="time")
            if not np.allclose(steps, steps[0], rtol=0.0, atol=1e-9 * max(1.0, abs(steps[0]))):
                raise InvalidParameter("time must be uniformly spaced", method=method, parameter="time")
    return t, inc


def load_incidence_csv(path: PathLike, allow_fractional: bool = False) -> pd.DataFrame:
    """Read an input series table and validate it.

    Returns a DataFrame with columns time, incidence and, if present,
    observed_cases.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Incidence CSV not found: {path}")
    df = pd.read_csv(path)

    missing = [c for c in ("time", "incidence") if c not in df.columns]
    if missing:
        raise InvalidParameter(f"input table is missing columns {missing}", parameter="columns")

    validate_series(df["incidence"].to_numpy(), df["time"].to_numpy(), allow_fractional=allow_fractional)
    if "observed_cases" in df.columns:
        validate_series(
            df["observed_cases"].to_numpy(), df["time"].to_numpy(), allow_fractional=False
        )
        cols = ["time", "incidence", "observed_cases"]
    else:
        cols = ["time", "incidence"]

    logger.info("Loaded %d rows from %s", len(df), path)
    return df[cols].copy()


def save_table(path: PathLike, table: pd.DataFrame) -> Path:
    """Write an output table; missing values are written as empty fields."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, index=False)
    return path


def save_json(path: PathLike, payload: Dict) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        # Stable formatting helps diffs and reproducibility.
        json.dump(payload, f, indent=2, sort_keys=True)
