import numpy as np
import pytest

from reproduction_numbers.errors import InvalidParameter
from reproduction_numbers.simulate.schedule import TransmissionSchedule


def test_constant_schedule():
    s = TransmissionSchedule.constant(0.4)
    assert s(0.0) == pytest.approx(0.4)
    assert s(123.5) == pytest.approx(0.4)


def test_piecewise_is_right_continuous():
    s = TransmissionSchedule(base_rate=0.5, breakpoints=((0.0, 1.0), (20.0, 0.5), (40.0, 1.2)))
    assert s.rate_at(19.999) == pytest.approx(0.5)
    # The new multiplier applies from the breakpoint onwards
    assert s.rate_at(20.0) == pytest.approx(0.25)
    assert s.rate_at(39.0) == pytest.approx(0.25)
    assert s.rate_at(40.0) == pytest.approx(0.6)


def test_multiplier_before_first_breakpoint_is_one():
    s = TransmissionSchedule(base_rate=0.3, breakpoints=((10.0, 2.0),))
    assert s.multiplier_at(5.0) == 1.0
    assert s.rate_at(10.0) == pytest.approx(0.6)


def test_vectorised_rates_match_scalar():
    s = TransmissionSchedule(base_rate=0.5, breakpoints=((0.0, 1.0), (20.0, 0.5), (40.0, 1.2)))
    grid = np.linspace(-5.0, 60.0, 131)
    assert np.allclose(s.rates(grid), [s.rate_at(t) for t in grid])


def test_from_reproduction_number():
    s = TransmissionSchedule.from_reproduction_number(1.5, 3.0, [(0.0, 1.0), (30.0, 0.5)])
    assert s.base_rate == pytest.approx(0.5)
    assert s.rate_at(31.0) * 3.0 == pytest.approx(0.75)


@pytest.mark.parametrize("kwargs", [
    {"base_rate": 0.0},
    {"base_rate": -1.0},
    {"base_rate": 0.5, "breakpoints": ()},
    {"base_rate": 0.5, "breakpoints": ((0.0, 1.0), (0.0, 0.5))},
    {"base_rate": 0.5, "breakpoints": ((10.0, 1.0), (5.0, 0.5))},
    {"base_rate": 0.5, "breakpoints": ((0.0, 0.0),)},
])
def test_invalid_schedules(kwargs):
    with pytest.raises(InvalidParameter):
        TransmissionSchedule(**kwargs)


def test_as_dict():
    s = TransmissionSchedule(base_rate=0.5, breakpoints=[(0, 1), (20, 0.5)])
    assert s.as_dict() == {"base_rate": 0.5, "breakpoints": [[0.0, 1.0], [20.0, 0.5]]}
