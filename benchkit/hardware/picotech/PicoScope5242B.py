import ctypes
import numbers

import numpy as np
from picosdk.errors import PicoSDKCtypesError
from picosdk.functions import adc2mV, assert_pico_ok, mV2adc

from benchkit.benchkit_types import Result, Spectrum, Waveform, returns_result, to_value, units
from benchkit.hardware.command_channel import InstrumentError
from benchkit.interfaces.Oscilloscope import Oscilloscope
import benchkit.util

# picosdk loads Pico's ps5000a driver (ps5000a.dll, libps5000a.so) upon import.
try:
    from picosdk.ps5000a import ps5000a as ps5000a_lib
except Exception as error:
    ps5000a_lib = error


class PicoScope5242B(Oscilloscope):
    """ PicoScope 5242B (ps5000a driver) used for triggered block captures. """

    instrument_lib = ps5000a_lib

    # Full scale input ranges (V) and their PS5000A_RANGE names.
    VOLTAGE_RANGES = {0.01: "PS5000A_10MV",
                      0.02: "PS5000A_20MV",
                      0.05: "PS5000A_50MV",
                      0.1: "PS5000A_100MV",
                      0.2: "PS5000A_200MV",
                      0.5: "PS5000A_500MV",
                      1.0: "PS5000A_1V",
                      2.0: "PS5000A_2V",
                      5.0: "PS5000A_5V",
                      10.0: "PS5000A_10V",
                      20.0: "PS5000A_20V"}

    RESOLUTIONS = (8, 12, 14, 15, 16)  # Bits.

    CHANNELS = (1, 2)
    DEFAULT_SAMPLE_RATE = 10e6  # Hz.
    DEFAULT_RESOLUTION = 12  # Bits.
    DEFAULT_VOLTAGE_RANGE = 2  # V.
    DEFAULT_TRIGGER_CHANNEL = 2
    DEFAULT_TRIGGER_THRESHOLD = 1  # V.
    AUTO_TRIGGER_TIME = 5e-3  # Trigger anyway after this long (s).
    DEFAULT_PRE_TRIGGER_TIME = 20e-6  # s.
    DEFAULT_POST_TRIGGER_TIME = 200e-6  # s.
    MAX_TRIGGER_THRESHOLD = 5  # V.
    MAX_TIMEBASE = 128
    MIN_TIMEBASE = 2

    def __init__(self, *args, **kwargs):
        if isinstance(self.instrument_lib, BaseException):
            raise self.instrument_lib
        super().__init__(*args, **kwargs)

    @classmethod
    def range_name(cls, volts):
        for full_scale, name in cls.VOLTAGE_RANGES.items():
            if np.isclose(full_scale, volts):
                return name
        raise ValueError(f"No input range of {volts} V. Use one of {list(cls.VOLTAGE_RANGES)}.")

    def initialize(self, voltage_range=DEFAULT_VOLTAGE_RANGE, capture_timeout=10):
        """ Initializes class instance, but doesn't -- and shouldn't -- open a connection to the hardware.

        :param voltage_range: int, float (optional) - Full scale input range (V) of both channels.
        :param capture_timeout: int, float (optional) - Seconds to wait for a block capture to complete.
        """
        self.range_key = self.range_name(voltage_range)
        self.voltage_range = float(voltage_range)
        self.capture_timeout = capture_timeout
        self.handle = None
        self.max_adc = None
        self.timebase = None
        self.sample_rate = None
        self.resolution = None
        self.trigger_channel = None
        self.trigger_threshold = None
        self.pre_trigger_samples = None
        self.post_trigger_samples = None
        self.pre_trigger_time = None
        self.post_trigger_time = None

    @property
    def max_adc_value(self):
        return None if self.max_adc is None else self.max_adc.value

    def _enum(self, table, name):
        return getattr(self.instrument_lib, table)[name]

    def _channel(self, channel):
        """ 1 -> PS5000A_CHANNEL_A, 2 -> PS5000A_CHANNEL_B. """
        return self._enum("PS5000A_CHANNEL", f"PS5000A_CHANNEL_{chr(ord('A') + channel - 1)}")

    def _resolution(self, bits):
        return self._enum("PS5000A_DEVICE_RESOLUTION", f"PS5000A_DR_{bits}BIT")

    def _call(self, function_name, *args):
        status = getattr(self.instrument_lib, function_name)(*args)
        try:
            assert_pico_ok(status)
        except PicoSDKCtypesError as error:
            raise InstrumentError(f"{self.config_id}: {function_name} failed: {error}") from error
        return status

    def _open(self):
        handle = ctypes.c_int16()
        status = self.instrument_lib.ps5000aOpenUnit(ctypes.byref(handle),
                                                     None,
                                                     self._resolution(self.DEFAULT_RESOLUTION))
        try:
            assert_pico_ok(status)
        except PicoSDKCtypesError as error:
            raise IOError(f"{self.config_id} connection failure: {error}") from error
        self.handle = handle
        self.instrument = True  # The handle can be 0 which would result in _close() not being called.

        try:
            self.max_adc = ctypes.c_int16()
            self._call("ps5000aMaximumValue", self.handle, ctypes.byref(self.max_adc))

            for channel in self.CHANNELS:
                self._call("ps5000aSetChannel",
                           self.handle,
                           self._channel(channel),
                           1,
                           self._enum("PS5000A_COUPLING", "PS5000A_DC"),
                           self._enum("PS5000A_RANGE", self.range_key),
                           0)

            for description, setter in (("default sampling rate", lambda: self.set_sample_rate(self.DEFAULT_SAMPLE_RATE,
                                                                                              self.DEFAULT_RESOLUTION)),
                                        ("time window", lambda: self.set_window(self.DEFAULT_PRE_TRIGGER_TIME,
                                                                                self.DEFAULT_POST_TRIGGER_TIME)),
                                        ("trigger", lambda: self.set_trigger(self.DEFAULT_TRIGGER_CHANNEL,
                                                                             self.DEFAULT_TRIGGER_THRESHOLD))):
                result = setter()
                if not result.ok:
                    raise IOError(f"Couldn't set {description}. Scope said: '{result.status}'")
        except Exception:
            self._close()
            self.instrument = None
            raise

        return self.instrument

    def _close(self):
        if self.handle is None:
            return
        try:
            self.instrument_lib.ps5000aStop(self.handle)
        finally:
            self.instrument_lib.ps5000aCloseUnit(self.handle)
            self.handle = None

    @returns_result
    def send_command(self, function_name, *args):
        """ Pass an arbitrary ps5000a API call, e.g., send_command("ps5000aStop", scope.handle).

        :return: Result. Result.value := PICO_STATUS.
        """
        if not self.is_open():
            return Result.failure("Must connect device first.")
        return Result.success(value=self._call(function_name, *args))

    @returns_result
    def set_sample_rate(self, sample_rate, resolution=DEFAULT_RESOLUTION):
        """ Select the slowest timebase sampling at least as fast as `sample_rate`.

        :param sample_rate: int, float, Quantity - Minimum sampling rate (Hz).
        :param resolution: int (optional) - ADC bit depth, one of 8, 12, 14, 15, 16.
        """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        if resolution not in self.RESOLUTIONS:
            self.log.warning(f"Invalid resolution '{resolution}', using default ({self.DEFAULT_RESOLUTION}-bit).")
            resolution = self.DEFAULT_RESOLUTION

        sample_rate = to_value(sample_rate, units.Hz)

        self._call("ps5000aSetDeviceResolution", self.handle, self._resolution(resolution))

        # Faster sampling with lower timebases.
        timebase = self.MAX_TIMEBASE
        interval_ns = ctypes.c_float()
        max_samples = ctypes.c_int32()
        while True:
            self._call("ps5000aGetTimebase2", self.handle, timebase, 0, ctypes.byref(interval_ns),
                       ctypes.byref(max_samples), 0)
            achieved_rate = 1 / (interval_ns.value * 1e-9)
            if achieved_rate >= sample_rate:
                break

            timebase -= 1
            if timebase < self.MIN_TIMEBASE:
                return Result.failure(f"No valid timebase found for a sampling rate of {sample_rate} Hz.")

        self.timebase = timebase
        self.sample_rate = achieved_rate
        self.resolution = resolution
        self.log.info(f"Sampling at {achieved_rate} Hz (timebase {timebase}) with {resolution}-bit resolution.")

        # The window is defined in time so its sample counts depend on the rate.
        if self.pre_trigger_time is not None:
            result = self.set_window(self.pre_trigger_time, self.post_trigger_time)
            if not result.ok:
                return result

        return Result.success(value=achieved_rate)

    @returns_result
    def set_trigger(self, channel=DEFAULT_TRIGGER_CHANNEL, threshold=DEFAULT_TRIGGER_THRESHOLD):
        """ Trigger on a rising edge.

        :param channel: int (optional) - 1 (A) or 2 (B).
        :param threshold: int, float, Quantity (optional) - Trigger level (V) in [0, 5].
        """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        threshold = to_value(threshold, units.V)
        if isinstance(threshold, bool) or not isinstance(threshold, numbers.Real) or not 0 <= threshold <= self.MAX_TRIGGER_THRESHOLD:
            return Result.failure("Invalid trigger cutoff specified.")
        if channel not in self.CHANNELS:
            return Result.failure("Invalid trigger channel specified.")

        counts = int(mV2adc(threshold * 1e3, self._enum("PS5000A_RANGE", self.range_key), self.max_adc))
        if counts > self.max_adc.value:
            self.log.warning(f"Trigger threshold {threshold} V exceeds the {self.voltage_range} V input range.")
            counts = self.max_adc.value

        auto_trigger_ms = int(round(self.AUTO_TRIGGER_TIME * 1e3))
        self._call("ps5000aSetSimpleTrigger",
                   self.handle,
                   1,
                   self._channel(channel),
                   counts,
                   self._enum("PS5000A_THRESHOLD_DIRECTION", "PS5000A_RISING"),
                   0,
                   auto_trigger_ms)

        self.trigger_channel = channel
        self.trigger_threshold = threshold
        return Result.success()

    @returns_result
    def set_window(self, pre_trigger_time=DEFAULT_PRE_TRIGGER_TIME, post_trigger_time=DEFAULT_POST_TRIGGER_TIME):
        """ Capture window about the trigger.

        :param pre_trigger_time: int, float, Quantity (optional) - (s).
        :param post_trigger_time: int, float, Quantity (optional) - (s).
        """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        pre_trigger_time = to_value(pre_trigger_time, units.s)
        post_trigger_time = to_value(post_trigger_time, units.s)
        for value in (pre_trigger_time, post_trigger_time):
            if isinstance(value, bool) or not isinstance(value, numbers.Real) or value < 0:
                return Result.failure("Invalid window length")

        self.pre_trigger_samples = int(round(pre_trigger_time * self.sample_rate))
        self.post_trigger_samples = int(round(post_trigger_time * self.sample_rate))
        self.pre_trigger_time = pre_trigger_time
        self.post_trigger_time = post_trigger_time
        return Result.success(value=self.pre_trigger_samples + self.post_trigger_samples)

    def is_ready(self):
        ready = ctypes.c_int16()
        self._call("ps5000aIsReady", self.handle, ctypes.byref(ready))
        return bool(ready.value)

    def to_volts(self, counts):
        """ ADC counts -> V for this scope's input range. """
        millivolts = adc2mV(np.asarray(counts, dtype=float), self._enum("PS5000A_RANGE", self.range_key), self.max_adc)
        return np.array(millivolts) / 1e3

    @returns_result
    def capture_block(self, channels=(1,)):
        """ Run a single triggered block capture.

        :param channels: int, tuple (optional) - Channel(s) to return, 1 and/or 2.
        :return: Result. Result.value := Waveform(time (s), {channel: voltage (V)}).
        """
        if isinstance(channels, numbers.Integral):
            channels = (channels,)
        if not channels or any(channel not in self.CHANNELS for channel in channels):
            return Result.failure("Invalid channel(s) specified.")
        if not self.is_open():
            return Result.failure("Must connect device first.")

        time_indisposed_ms = ctypes.c_int32()
        self._call("ps5000aRunBlock", self.handle, self.pre_trigger_samples, self.post_trigger_samples,
                   self.timebase, ctypes.byref(time_indisposed_ms), 0, None, None)
        try:
            benchkit.util.poll_status((True,), self.is_ready, timeout=self.capture_timeout, poll_interval=1e-3)
        except TimeoutError as error:
            raise InstrumentError(f"Block capture didn't complete: {error}") from error

        ratio_mode = self._enum("PS5000A_RATIO_MODE", "PS5000A_RATIO_MODE_NONE")
        n_samples = self.pre_trigger_samples + self.post_trigger_samples
        buffers = {}
        for channel in channels:
            buffers[channel] = np.zeros(n_samples, dtype=np.int16)
            self._call("ps5000aSetDataBuffer", self.handle, self._channel(channel),
                       buffers[channel].ctypes.data_as(ctypes.POINTER(ctypes.c_int16)), n_samples, 0, ratio_mode)

        n_returned = ctypes.c_uint32(n_samples)
        overflow = ctypes.c_int16()
        self._call("ps5000aGetValues", self.handle, 0, ctypes.byref(n_returned), 1, ratio_mode, 0,
                   ctypes.byref(overflow))
        if overflow.value:
            self.log.warning(f"Over voltage on channel(s) (bit mask): {overflow.value:#04b}")

        n_returned = n_returned.value
        voltage = {channel: self.to_volts(buffer[:n_returned]) for channel, buffer in buffers.items()}
        time = np.arange(n_returned) / self.sample_rate
        return Result.success(value=Waveform(time=time, voltage=voltage))

    def capture(self, channel=1):
        result = self.capture_block(channels=(channel,))
        if not result.ok:
            return result
        return result._replace(value=Waveform(time=result.value.time, voltage=result.value.voltage[channel]))

    @returns_result
    def get_sampling_frequency(self):
        return Result.success(value=self.sample_rate)

    @staticmethod
    def get_spectrum(waveform):
        """ Magnitude spectrum (dB) of a Waveform with a single voltage trace.

        :param waveform: Waveform - voltage must be an array (not a dict).
        :return: Spectrum(frequency (Hz), level (dB)).
        """
        dt = waveform.time[1] - waveform.time[0]
        frequency = np.fft.rfftfreq(waveform.voltage.size, d=dt)
        with np.errstate(divide="ignore"):
            level = 20 * np.log10(np.abs(np.fft.rfft(waveform.voltage)))
        return Spectrum(frequency=frequency, level=level)
