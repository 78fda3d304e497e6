import ctypes
import time

from picosdk.errors import PicoSDKCtypesError
from picosdk.functions import assert_pico2000_ok

from benchkit.benchkit_types import Result, returns_result
from benchkit.hardware.command_channel import InstrumentError
from benchkit.interfaces.TemperatureLogger import TemperatureLogger
import benchkit.util

# picosdk loads Pico's usbtc08 driver (usbtc08.dll, libusbtc08.so) upon import.
try:
    from picosdk.usbtc08 import usbtc08 as usbtc08_lib
except Exception as error:
    usbtc08_lib = error


class USBTC08(TemperatureLogger):
    """ Pico USB TC-08 thermocouple data logger.

        Channel 0 is the cold junction, thermocouples are connected to channels 1-8.
    """

    instrument_lib = usbtc08_lib

    N_CHANNELS = 9
    COLD_JUNCTION = 0
    BUFFER_SIZE = 512
    FILL_MISSING = 1
    MAINS_FREQUENCIES = {50: 0, 60: 1}  # usb_tc08_set_mains() takes a "sixty hertz" flag.
    INFO_BUFFER_SIZE = 512

    def __init__(self, *args, **kwargs):
        if isinstance(self.instrument_lib, BaseException):
            raise self.instrument_lib
        super().__init__(*args, **kwargs)

    def initialize(self, channels=(1,), thermocouple_type="K", mains_frequency=50):
        """ Initializes class instance, but doesn't -- and shouldn't -- open a connection to the hardware.

        :param channels: tuple (optional) - Thermocouple channels (1-8) to enable. The cold junction always is.
        :param thermocouple_type: str (optional) - e.g., "K".
        :param mains_frequency: int (optional) - 50 or 60 (Hz), the noise rejection filter frequency.
        """
        if any(channel not in range(1, self.N_CHANNELS) for channel in channels):
            raise ValueError(f"Channels must be in [1, {self.N_CHANNELS - 1}] not '{channels}'.")
        if mains_frequency not in self.MAINS_FREQUENCIES:
            raise ValueError(f"Mains frequency must be one of {tuple(self.MAINS_FREQUENCIES)} not '{mains_frequency}'.")

        self.channels = tuple(channels)
        self.thermocouple_type = thermocouple_type
        self.mains_frequency = mains_frequency
        self.handle = None

    @property
    def celsius(self):
        return self.instrument_lib.USBTC08_UNITS["USBTC08_UNITS_CENTIGRADE"]

    def _check(self, status, function_name):
        """ usbtc08 calls return 0 (or less) on failure. """
        try:
            assert_pico2000_ok(status)
        except PicoSDKCtypesError as error:
            last_error = self.instrument_lib.usb_tc08_get_last_error(self.handle)
            raise InstrumentError(f"{self.config_id}: {function_name} failed: {error} (last error {last_error})") from error
        return status

    def _open(self):
        handle = self.instrument_lib.usb_tc08_open_unit()
        if handle == 0:
            raise IOError(f"{self.config_id}: no USB TC-08 units found.")
        elif handle < 0:
            raise IOError(f"{self.config_id}: unit failed to open.")
        self.handle = handle
        self.instrument = True

        try:
            info = ctypes.create_string_buffer(self.INFO_BUFFER_SIZE)
            self.instrument_lib.usb_tc08_get_formatted_info(self.handle, info, self.INFO_BUFFER_SIZE)
            self.log.info(f"{self.config_id}: {info.value.decode(errors='replace')}")

            tc_type = ctypes.c_char(self.thermocouple_type.encode())
            for channel in (self.COLD_JUNCTION, *self.channels):
                self._check(self.instrument_lib.usb_tc08_set_channel(self.handle, channel, tc_type),
                            "usb_tc08_set_channel")

            self._check(self.instrument_lib.usb_tc08_set_mains(self.handle, self.MAINS_FREQUENCIES[self.mains_frequency]),
                        "usb_tc08_set_mains")
        except Exception:
            self._close()
            self.instrument = None
            raise

        return self.instrument

    def _close(self):
        if self.handle is None:
            return
        try:
            self.instrument_lib.usb_tc08_close_unit(self.handle)
        finally:
            self.handle = None

    @returns_result
    def get_temperature(self, channel=1):
        """ Take a single reading.

        :param channel: int (optional) - An enabled channel, or 0 for the cold junction.
        :return: Result. Result.value := temperature (C).
        """
        if channel != self.COLD_JUNCTION and channel not in self.channels:
            return Result.failure(f"Channel {channel} isn't enabled. Enabled channels: {self.channels}.")
        if not self.is_open():
            return Result.failure("Must connect device first.")

        temperatures = (ctypes.c_float * self.N_CHANNELS)()
        overflow = ctypes.c_int16()
        self._check(self.instrument_lib.usb_tc08_get_single(self.handle, ctypes.byref(temperatures),
                                                            ctypes.byref(overflow), self.celsius),
                    "usb_tc08_get_single")
        if overflow.value & (1 << channel):
            self.log.warning(f"{self.config_id}: channel {channel} over range.")

        return Result.success(value=temperatures[channel])

    def stream(self, duration, channel=1):
        """ Log continuously (at the fastest rate the unit allows) for `duration` seconds.

        :param duration: int, float - Seconds to log for.
        :param channel: int (optional) - An enabled channel.
        :return: Generator yielding (time (s), temperature (C)) pairs as they become available.
        :raises: InstrumentError
        """
        if channel != self.COLD_JUNCTION and channel not in self.channels:
            raise ValueError(f"Channel {channel} isn't enabled. Enabled channels: {self.channels}.")
        if not self.is_open():
            raise InstrumentError("Must connect device first.")

        min_interval_ms = self._check(self.instrument_lib.usb_tc08_get_minimum_interval_ms(self.handle),
                                      "usb_tc08_get_minimum_interval_ms")
        interval_ms = self._check(self.instrument_lib.usb_tc08_run(self.handle, min_interval_ms), "usb_tc08_run")
        self.log.info(f"{self.config_id}: streaming channel {channel} every {interval_ms} ms for {duration} s.")

        temperatures = (ctypes.c_float * self.BUFFER_SIZE)()
        times_ms = (ctypes.c_int32 * self.BUFFER_SIZE)()
        overflow = ctypes.c_int16()
        try:
            t0 = time.perf_counter()
            while time.perf_counter() - t0 < duration:
                n_values = self.instrument_lib.usb_tc08_get_temp(self.handle, ctypes.byref(temperatures),
                                                                 ctypes.byref(times_ms), self.BUFFER_SIZE,
                                                                 ctypes.byref(overflow), channel, self.celsius,
                                                                 self.FILL_MISSING)
                if n_values < 0:
                    self._check(n_values, "usb_tc08_get_temp")

                for i in range(n_values):
                    yield times_ms[i] / 1e3, temperatures[i]

                benchkit.util.sleep(interval_ms / 1e3)
        finally:
            self.instrument_lib.usb_tc08_stop(self.handle)
