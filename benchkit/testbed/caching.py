import ast
from collections import UserDict
import importlib
import logging
import threading

from benchkit.config import CONFIG_INI
import benchkit.util

# Device types that can be built from a config section's "type" key, as import paths: (actual, emulated).
DEVICE_TYPES = {"Keysight33600A": ("benchkit.hardware.keysight.Keysight33600A.Keysight33600A",
                                   "benchkit.emulators.keysight.Keysight33600A"),
                "TektronixDPO2022B": ("benchkit.hardware.tektronix.TektronixDPO2022B.TektronixDPO2022B",
                                      "benchkit.emulators.tektronix.TektronixDPO2022B"),
                "PicoScope5242B": ("benchkit.hardware.picotech.PicoScope5242B.PicoScope5242B",
                                   "benchkit.emulators.picotech.PicoScope5242B"),
                "USBTC08": ("benchkit.hardware.picotech.USBTC08.USBTC08",
                            "benchkit.emulators.picotech.USBTC08"),
                "VelmexVXM": ("benchkit.hardware.velmex.VelmexVXM.VelmexVXM",
                              "benchkit.emulators.velmex.VelmexVXM"),
                "KDScientific110": ("benchkit.hardware.kdscientific.KDScientific110.KDScientific110",
                                    "benchkit.emulators.kdscientific.KDScientific110")}

# Keys of a device's config section that aren't passed to the device.
RESERVED_KEYS = ("type", "simulate")


def import_class(path):
    module_name, _, class_name = path.rpartition(".")
    return getattr(importlib.import_module(module_name), class_name)


def parse_value(value):
    """ Coerce an INI str into a python literal where possible, e.g., "0.1" -> 0.1, "(1, 2)" -> (1, 2), "true" -> True.
        Anything else, e.g., "ASRL4::INSTR", is returned as is.
    """
    try:
        return benchkit.util.str2bool(value)
    except ValueError:
        pass

    try:
        return ast.literal_eval(value)
    except (ValueError, SyntaxError):
        return value


class UserCache(UserDict):
    def load(self, key, *args, **kwargs):
        """ Func to load non-existent cache entries. Is designed to be overridden. """
        raise KeyError(key)

    def __getitem__(self, key):
        item = self.data.get(key, None)
        if item is None:
            self.load(key)
            return self.data[key]
        else:
            return item


class DeviceCache(UserCache):
    """ Cache of open devices keyed by config_id. Missing devices are built from their config section and opened.

        Use as a context manager to close all cached devices upon exit:

            with devices:
                devices["velmex_stage"].move("left", 5, speed=1)
    """

    def __init__(self, config=None):
        super().__init__()
        self.config = config
        self.log = logging.getLogger(__name__)
        self._lock = threading.RLock()

    def __enter__(self):
        self.clear()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.clear()

    def __contains__(self, key):
        with self._lock:
            return key in self.data

    def __getitem__(self, key):
        with self._lock:
            return super().__getitem__(key)

    def __setitem__(self, key, value):
        with self._lock:
            if key in self.data:
                # Raise on collision but only if they're NOT the same underlying object.
                if self.data[key] is not value:
                    raise KeyError(f"Cache collision: '{key}' key already exists in device cache.")
                return

            self.data[key] = value
            value.__enter__()
            assert value.is_open()

    def __delitem__(self, key):
        with self._lock:
            device = self.data.pop(key)

            # Deleting the device won't close it if external references exist, this must be done explicitly.
            # Reset the context counter to force closure.
            device._context_counter = 0
            device.__exit__(None, None, None)

    def clear(self):
        with self._lock:
            for key in list(self.data):
                try:
                    del self[key]
                except Exception:
                    # Don't raise so that other devices can exit.
                    self.log.exception(f"'{key}' failed to close correctly.")

    def get_config(self):
        return CONFIG_INI if self.config is None else self.config

    def build(self, config_id):
        """ Instantiate (but don't open) the device described by the config section `config_id`. """
        config = self.get_config()
        if not config.has_section(config_id):
            raise KeyError(f"No config section for '{config_id}'.")

        device_type = config.get(config_id, "type")
        if device_type not in DEVICE_TYPES:
            raise KeyError(f"Unknown device type '{device_type}' for '{config_id}'. Expected one of {list(DEVICE_TYPES)}.")

        simulate = config.getboolean(config_id, "simulate", fallback=benchkit.util.simulation)
        device_class = import_class(DEVICE_TYPES[device_type][simulate])

        kwargs = {key: parse_value(value) for key, value in config.items(config_id) if key not in RESERVED_KEYS}
        self.log.info(f"Building '{config_id}' as {device_class.__module__}.{device_class.__name__}")
        return device_class(config_id=config_id, **kwargs)

    def load(self, key, *args, **kwargs):
        # Instantiate, open, and own it.
        # NOTE: The device is opened in self.__setitem__
        self[key] = self.build(key)

    def copy(self, *args, **kwargs):
        raise NotImplementedError("Don't copy!")


devices = DeviceCache()
