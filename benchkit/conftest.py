import gc
import os

import pytest

import benchkit.config
from benchkit.hardware.resource_registry import RESOURCE_REGISTRY
from benchkit.testbed.caching import devices
import benchkit.util

benchkit.util.simulation = True


@pytest.fixture(scope="function", autouse=True)
def clear_resource_registry():
    yield
    # Teardown.
    devices.clear()
    RESOURCE_REGISTRY.clear()
    gc.collect()


@pytest.fixture()
def dummy_config_ini():
    config_filename = os.path.join(benchkit.util.find_package_location(), "testbed", "tests", "config.ini")
    config = benchkit.config.load_config_ini(config_filename)
    benchkit.config.CONFIG_INI.point_to(config)
    yield config
    benchkit.config.CONFIG_INI.point_to(None)
