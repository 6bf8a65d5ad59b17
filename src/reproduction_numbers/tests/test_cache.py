import threading
import time
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd

from reproduction_numbers.cache import ResultCache, cache_paths, hash_config, make_key, series_checksum
from reproduction_numbers.config import EstimatorConfig
from reproduction_numbers.estimate.results import estimates_to_frame
from reproduction_numbers.estimate.sliding_window import estimate_sliding_window
from reproduction_numbers.simulate.serial_interval import SerialIntervalModel

SI = SerialIntervalModel.from_pmf([0.5, 0.5])
SERIES = np.array([5.0, 6.0, 8.0, 9.0, 12.0, 15.0, 18.0, 22.0, 27.0, 33.0])


def _compute(config=EstimatorConfig(window_width=3)):
    return estimates_to_frame(estimate_sliding_window(SERIES, SI, config))


def test_hash_is_stable_and_order_independent():
    assert hash_config({"a": 1, "b": [1, 2]}) == hash_config({"b": [1, 2], "a": 1})
    assert len(hash_config({"a": 1})) == 16
    assert hash_config({"a": 1}) != hash_config({"a": 2})


def test_key_depends_on_method_config_and_series():
    cfg = EstimatorConfig().as_dict()
    base = make_key("sliding_window", cfg, SERIES)
    assert base == make_key("sliding_window", cfg, SERIES.copy())
    assert base != make_key("cohort", cfg, SERIES)
    assert base != make_key("sliding_window", EstimatorConfig(window_width=3).as_dict(), SERIES)
    bumped = SERIES.copy()
    bumped[4] += 1.0
    assert base != make_key("sliding_window", cfg, bumped)
    assert series_checksum(SERIES) != series_checksum(SERIES, times=np.arange(10.0) + 1.0)


def test_miss_then_hit(tmp_path):
    cache = ResultCache(tmp_path)
    calls = []

    def compute():
        calls.append(1)
        return _compute()

    key = make_key("sliding_window", {"window_width": 3}, SERIES)
    first = cache.get_or_compute(key, compute, config={"window_width": 3})
    second = cache.get_or_compute(key, compute)

    assert len(calls) == 1
    assert cache.exists(key)
    _, table_path, config_path = cache_paths(tmp_path, key)
    assert table_path.exists() and config_path.exists()
    pd.testing.assert_frame_equal(first, second)


def test_deleting_cache_only_costs_a_recompute(tmp_path):
    cache = ResultCache(tmp_path)
    key = make_key("sliding_window", {"window_width": 3}, SERIES)
    first = cache.get_or_compute(key, _compute)
    cache.invalidate(key)
    assert not cache.exists(key)
    assert cache.load(key) is None
    again = cache.get_or_compute(key, _compute)
    pd.testing.assert_frame_equal(first, again)


def test_one_computation_in_flight_per_key(tmp_path):
    cache = ResultCache(tmp_path)
    key = make_key("sliding_window", {"window_width": 3}, SERIES)
    calls = []
    lock = threading.Lock()

    def slow_compute():
        with lock:
            calls.append(1)
        time.sleep(0.05)
        return _compute()

    with ThreadPoolExecutor(max_workers=8) as pool:
        tables = list(pool.map(lambda _: cache.get_or_compute(key, slow_compute), range(8)))

    assert len(calls) == 1
    for table in tables[1:]:
        pd.testing.assert_frame_equal(tables[0], table)
