import pandas as pd
import pytest

from reproduction_numbers.estimate.results import (
    FLAG_EMPTY_FUTURE,
    RtEstimate,
    estimates_to_frame,
    frame_to_estimates,
    merge_estimates,
    summarise_coverage,
)


def _table(method, times, means):
    rows = []
    for t, m in zip(times, means):
        if m is None:
            rows.append(RtEstimate.missing(t, method, FLAG_EMPTY_FUTURE))
        else:
            rows.append(RtEstimate(time=t, method=method, mean=m, lower=m - 0.1, upper=m + 0.1))
    return estimates_to_frame(rows)


def test_missing_estimates_are_nullable():
    frame = _table("cohort", [0.0, 1.0, 2.0], [1.2, None, 0.9])
    assert list(frame.columns) == ["time", "method", "mean", "lower", "upper", "flag"]
    assert str(frame["mean"].dtype) == "Float64"
    assert frame["mean"].isna().tolist() == [False, True, False]
    assert frame.loc[1, "flag"] == FLAG_EMPTY_FUTURE
    assert pd.isna(frame.loc[0, "flag"])


def test_frame_round_trip():
    frame = _table("cohort", [0.0, 1.0], [None, 1.1])
    back = frame_to_estimates(frame)
    assert back[0].is_missing and back[0].flag == FLAG_EMPTY_FUTURE
    assert back[1].mean == pytest.approx(1.1)
    assert back[1].flag is None


def test_merge_keeps_every_time_key():
    a = _table("sliding_window", [0.0, 1.0, 2.0], [None, 1.0, 1.1])
    b = _table("cohort", [1.0, 2.0, 3.0], [1.2, 1.3, None])
    truth = pd.DataFrame({"time": [0.0, 1.0, 2.0, 3.0, 4.0], "true_rt": [1.5, 1.4, 1.3, 1.2, 1.1]})

    merged = merge_estimates({"sliding_window": a, "cohort": b}, truth=truth)
    assert merged["time"].tolist() == [0.0, 1.0, 2.0, 3.0, 4.0]
    assert merged["sliding_window_mean"].isna().tolist() == [True, False, False, True, True]
    assert merged["cohort_mean"].isna().tolist() == [True, False, False, True, True]
    assert merged.loc[3, "cohort_flag"] == FLAG_EMPTY_FUTURE
    assert merged["true_rt"].tolist() == [1.5, 1.4, 1.3, 1.2, 1.1]


def test_summarise_coverage():
    table = _table("sliding_window", [0.0, 1.0, 2.0], [1.0, 1.45, None])
    truth = pd.DataFrame({"time": [0.0, 1.0, 2.0], "true_rt": [1.5, 1.5, 1.5]})
    summary = summarise_coverage(table, truth)
    assert summary["n"] == 2
    assert summary["coverage"] == pytest.approx(0.5)
    assert summary["mae"] == pytest.approx((0.5 + 0.05) / 2)
