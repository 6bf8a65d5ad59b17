# src/reproduction_numbers/estimate/results.py
"""
Estimator outputs and the tables built from them.

Every estimator returns a list of RtEstimate, one per requested time. Missing
estimates keep their row with mean/lower/upper set to None and a flag saying
why, so tables are never silently truncated.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

FLAG_INSUFFICIENT_HISTORY = "insufficient_history"
FLAG_EMPTY_FUTURE = "empty_future"
FLAG_BEYOND_SERIES = "beyond_series"
FLAG_UNSTABLE = "unstable"

TABLE_COLUMNS = ["time", "method", "mean", "lower", "upper", "flag"]


@dataclass(frozen=True)
class RtEstimate:
    time: float
    method: str
    mean: Optional[float] = None
    lower: Optional[float] = None
    upper: Optional[float] = None
    flag: Optional[str] = None

    @property
    def is_missing(self) -> bool:
        return self.mean is None

    @classmethod
    def missing(cls, time: float, method: str, flag: str) -> "RtEstimate":
        return cls(time=float(time), method=method, flag=flag)


def estimates_to_frame(estimates: Iterable[RtEstimate]) -> pd.DataFrame:
    """Output table: time, method, mean, lower, upper, flag.

    mean/lower/upper are nullable Float64, so a missing estimate is <NA>.
    """
    rows = [
        {
            "time": e.time,
            "method": e.method,
            "mean": e.mean,
            "lower": e.lower,
            "upper": e.upper,
            "flag": e.flag,
        }
        for e in estimates
    ]
    frame = pd.DataFrame(rows, columns=TABLE_COLUMNS)
    for col in ("mean", "lower", "upper"):
        frame[col] = pd.array(
            [None if v is None or (isinstance(v, float) and np.isnan(v)) else float(v) for v in frame[col]],
            dtype="Float64",
        )
    frame["time"] = frame["time"].astype(float)
    frame["method"] = frame["method"].astype("string")
    frame["flag"] = frame["flag"].astype("string")
    return frame


def frame_to_estimates(frame: pd.DataFrame) -> List[RtEstimate]:
    """Inverse of estimates_to_frame (used when reading cached tables)."""
    out = []
    for row in frame.itertuples(index=False):
        def _value(v):
            return None if v is None or pd.isna(v) else float(v)

        flag = None if pd.isna(row.flag) else str(row.flag)
        out.append(RtEstimate(
            time=float(row.time),
            method=str(row.method),
            mean=_value(row.mean),
            lower=_value(row.lower),
            upper=_value(row.upper),
            flag=flag,
        ))
    return out


def merge_estimates(
    tables: Mapping[str, pd.DataFrame],
    truth: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """Outer-join estimator tables on time, one column block per method.

    Every time key present in any table keeps a row; columns of a method that
    has no estimate at that time are <NA>. truth, if given, must have columns
    time and true_rt (for example SimulationState.to_frame()).
    """
    merged: Optional[pd.DataFrame] = None
    for method, table in tables.items():
        block = table[["time", "mean", "lower", "upper", "flag"]].rename(columns={
            "mean": f"{method}_mean",
            "lower": f"{method}_lower",
            "upper": f"{method}_upper",
            "flag": f"{method}_flag",
        })
        if merged is None:
            merged = block
        else:
            merged = merged.merge(block, on="time", how="outer")

    if truth is not None:
        truth_block = truth[["time", "true_rt"]]
        merged = truth_block if merged is None else merged.merge(truth_block, on="time", how="outer")

    if merged is None:
        return pd.DataFrame({"time": pd.Series([], dtype=float)})
    return merged.sort_values("time", kind="mergesort").reset_index(drop=True)


def summarise_coverage(table: pd.DataFrame, truth: pd.DataFrame) -> Dict[str, float]:
    """Share of defined intervals containing true_rt and mean absolute error."""
    joined = table.merge(truth[["time", "true_rt"]], on="time", how="inner")
    defined = joined.dropna(subset=["mean", "lower", "upper"])
    if defined.empty:
        return {"n": 0, "coverage": float("nan"), "mae": float("nan")}
    inside = (defined["lower"] <= defined["true_rt"]) & (defined["true_rt"] <= defined["upper"])
    err = (defined["mean"].astype(float) - defined["true_rt"]).abs()
    return {
        "n": int(len(defined)),
        "coverage": float(inside.astype(float).mean()),
        "mae": float(err.mean()),
    }
