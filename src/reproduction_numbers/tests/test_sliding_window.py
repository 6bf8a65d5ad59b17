import numpy as np
import pytest
from scipy.stats import gamma

from reproduction_numbers.config import EstimatorConfig
from reproduction_numbers.errors import InsufficientHistory, InvalidParameter
from reproduction_numbers.estimate.results import FLAG_BEYOND_SERIES, FLAG_INSUFFICIENT_HISTORY, estimates_to_frame
from reproduction_numbers.estimate.sliding_window import (
    estimate_sliding_window,
    force_of_infection,
    gamma_posterior,
    sliding_window_at,
)
from reproduction_numbers.simulate.serial_interval import SerialIntervalModel, discretize_serial_interval


def test_force_of_infection():
    si = SerialIntervalModel.from_pmf([0.5, 0.5])
    I = np.array([4.0, 0.0, 8.0, 2.0])
    lam = force_of_infection(I, si)
    assert np.isnan(lam[0]) and np.isnan(lam[1])
    assert lam[2] == pytest.approx(2.0)
    assert lam[3] == pytest.approx(4.0)

    partial = force_of_infection(I, si, complete_only=False)
    assert partial[0] == 0.0
    assert partial[1] == pytest.approx(2.0)


def test_posterior_closed_form():
    # One-day serial interval: Lambda_t = I_{t-1}
    si = SerialIntervalModel.from_pmf([1.0])
    I = np.array([10.0, 20.0, 40.0, 80.0, 160.0])
    cfg = EstimatorConfig(window_width=2)
    est = sliding_window_at(4, I, si, cfg)

    shape = 1.0 + 80.0 + 160.0
    rate = 1.0 / 5.0 + 40.0 + 80.0
    assert est.mean == pytest.approx(shape / rate)
    assert est.lower == pytest.approx(gamma.ppf(0.025, a=shape, scale=1.0 / rate))
    assert est.upper == pytest.approx(gamma.ppf(0.975, a=shape, scale=1.0 / rate))
    assert est.lower < est.mean < est.upper


def test_prior_returned_without_force_of_infection():
    mean, lower, upper = gamma_posterior(0.0, 0.0, 1.0, 5.0, (0.025, 0.975))
    assert mean == 5.0
    assert lower == pytest.approx(gamma.ppf(0.025, a=1.0, scale=5.0))
    assert upper == pytest.approx(gamma.ppf(0.975, a=1.0, scale=5.0))


def test_early_times_are_missing():
    si = discretize_serial_interval(5.0, 3.6)
    L = si.horizon
    I = np.full(80, 50.0)
    cfg = EstimatorConfig(window_width=7)
    out = estimate_sliding_window(I, si, cfg)

    assert len(out) == 80
    first_defined = L + cfg.window_width - 1
    for e in out[:first_defined]:
        assert e.is_missing
        assert e.flag == FLAG_INSUFFICIENT_HISTORY
    for e in out[first_defined:]:
        assert not e.is_missing
        # Flat incidence means R close to one
        assert e.mean == pytest.approx(1.0, rel=0.01)


def test_all_zero_incidence_never_nan():
    si = discretize_serial_interval(5.0, 3.6)
    out = estimate_sliding_window(np.zeros(60), si, EstimatorConfig())
    defined = [e for e in out if not e.is_missing]
    assert defined
    for e in defined:
        assert e.mean == 5.0
        assert np.isfinite(e.lower) and np.isfinite(e.upper)

    frame = estimates_to_frame(out)
    assert str(frame["mean"].dtype) == "Float64"
    assert frame["mean"].isna().sum() == len(out) - len(defined)


def test_start_alignment_runs_past_series_end():
    si = SerialIntervalModel.from_pmf([1.0])
    I = np.arange(1.0, 21.0)
    cfg = EstimatorConfig(window_width=5, window_alignment="start")
    out = estimate_sliding_window(I, si, cfg)

    assert out[0].flag == FLAG_INSUFFICIENT_HISTORY
    assert not out[1].is_missing
    for e in out[-4:]:
        assert e.is_missing
        assert e.flag == FLAG_BEYOND_SERIES


def test_exponential_growth_recovered():
    si = SerialIntervalModel.from_pmf([1.0])
    I = 100.0 * 1.2 ** np.arange(30)
    out = estimate_sliding_window(I, si, EstimatorConfig(window_width=3))
    assert out[20].mean == pytest.approx(1.2, rel=1e-3)


def test_insufficient_history_raised_for_single_time():
    si = discretize_serial_interval(5.0, 3.6)
    I = np.full(60, 10.0)
    with pytest.raises(InsufficientHistory) as exc:
        sliding_window_at(3, I, si, EstimatorConfig(window_width=7))
    assert exc.value.method == "sliding_window"
    with pytest.raises(InsufficientHistory):
        sliding_window_at(si.horizon, I, si, EstimatorConfig(window_width=7))


def test_series_shorter_than_window():
    si = SerialIntervalModel.from_pmf([1.0])
    with pytest.raises(InsufficientHistory):
        estimate_sliding_window([1.0, 2.0, 3.0], si, EstimatorConfig(window_width=7))


def test_invalid_series():
    si = SerialIntervalModel.from_pmf([1.0])
    with pytest.raises(InvalidParameter):
        estimate_sliding_window([1.0, -2.0, 3.0], si, EstimatorConfig(window_width=1))
    with pytest.raises(InvalidParameter):
        estimate_sliding_window([1.0, 2.0, 3.0], si, EstimatorConfig(window_width=1), times=[0.0, 1.0, 3.0])


def test_wider_confidence_gives_wider_interval():
    si = SerialIntervalModel.from_pmf([0.5, 0.5])
    I = np.full(30, 20.0)
    narrow = sliding_window_at(20, I, si, EstimatorConfig(confidence_level=0.5))
    wide = sliding_window_at(20, I, si, EstimatorConfig(confidence_level=0.99))
    assert narrow.mean == pytest.approx(wide.mean)
    assert wide.lower < narrow.lower
    assert wide.upper > narrow.upper


def test_times_carried_into_estimates():
    si = SerialIntervalModel.from_pmf([1.0])
    times = np.arange(100.0, 110.0)
    out = estimate_sliding_window(np.full(10, 5.0), si, EstimatorConfig(window_width=2), times=times)
    assert [e.time for e in out] == times.tolist()
