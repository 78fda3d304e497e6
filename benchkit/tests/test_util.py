import itertools
import time

import pytest

import benchkit.util


@pytest.mark.parametrize("buffer, expected", (("true", True), ("True", True), ("FALSE", False), ("false", False)))
def test_str2bool(buffer, expected):
    assert benchkit.util.str2bool(buffer) is expected


@pytest.mark.parametrize("buffer", ("yes", "1", "", "t"))
def test_str2bool_invalid(buffer):
    with pytest.raises(ValueError):
        benchkit.util.str2bool(buffer)


def test_simulated_sleep():
    assert benchkit.util.simulation
    t0 = time.perf_counter()
    benchkit.util.sleep(10)
    assert time.perf_counter() - t0 < 1


def test_poll_status():
    statuses = iter((">", ">", ">", ":"))
    assert benchkit.util.poll_status((":", "*"), lambda: next(statuses), timeout=1, poll_interval=1e-3) == ":"


def test_poll_status_timeout():
    timeout = 0.1
    t0 = time.perf_counter()
    with pytest.raises(TimeoutError):
        benchkit.util.poll_status((":",), itertools.repeat(">").__next__, timeout=timeout, poll_interval=1e-2)
    assert time.perf_counter() - t0 >= timeout


def test_find_package_location():
    assert benchkit.util.find_package_location().endswith("benchkit")
