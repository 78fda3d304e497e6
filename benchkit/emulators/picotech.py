import time

import numpy as np
from picosdk.constants import PICO_STATUS, make_enum

import benchkit.hardware.picotech.PicoScope5242B
import benchkit.hardware.picotech.USBTC08
from benchkit.interfaces.Instrument import SimInstrument


def deref(reference):
    """ The object referenced by ctypes.byref(). """
    return reference._obj


class PS5000aEmulator:
    """ Emulates picosdk's ps5000a library, acquiring a sine wave on all channels.

        The enum tables mirror picosdk's, which are only built once the real driver has loaded.
    """

    PICO_OK = PICO_STATUS["PICO_OK"]
    PICO_INVALID_HANDLE = PICO_STATUS["PICO_INVALID_HANDLE"]
    PICO_INVALID_TIMEBASE = PICO_STATUS["PICO_INVALID_TIMEBASE"]
    MAX_ADC_VALUE = 32512

    PS5000A_CHANNEL = make_enum(["PS5000A_CHANNEL_A", "PS5000A_CHANNEL_B", "PS5000A_CHANNEL_C", "PS5000A_CHANNEL_D"])
    PS5000A_COUPLING = make_enum(["PS5000A_AC", "PS5000A_DC"])
    PS5000A_RANGE = make_enum(["PS5000A_10MV", "PS5000A_20MV", "PS5000A_50MV", "PS5000A_100MV", "PS5000A_200MV",
                               "PS5000A_500MV", "PS5000A_1V", "PS5000A_2V", "PS5000A_5V", "PS5000A_10V", "PS5000A_20V",
                               "PS5000A_50V", "PS5000A_MAX_RANGES"])
    PS5000A_DEVICE_RESOLUTION = make_enum(["PS5000A_DR_8BIT", "PS5000A_DR_12BIT", "PS5000A_DR_14BIT",
                                           "PS5000A_DR_15BIT", "PS5000A_DR_16BIT"])
    PS5000A_THRESHOLD_DIRECTION = make_enum([("PS5000A_ABOVE", "PS5000A_INSIDE"),
                                             ("PS5000A_BELOW", "PS5000A_OUTSIDE"),
                                             ("PS5000A_RISING", "PS5000A_ENTER"),
                                             ("PS5000A_FALLING", "PS5000A_EXIT"),
                                             ("PS5000A_RISING_OR_FALLING", "PS5000A_ENTER_OR_EXIT")])
    PS5000A_RATIO_MODE = {"PS5000A_RATIO_MODE_NONE": 0,
                          "PS5000A_RATIO_MODE_AGGREGATE": 1,
                          "PS5000A_RATIO_MODE_DECIMATE": 2,
                          "PS5000A_RATIO_MODE_AVERAGE": 4}

    def __init__(self, signal_frequency=100e3, signal_amplitude=0.5):
        self.signal_frequency = signal_frequency  # Hz.
        self.signal_amplitude = signal_amplitude  # V.
        self.handle = None
        self.resolution = None
        self.channels = {}
        self.trigger = None
        self.block = None
        self.buffers = {}
        volts = benchkit.hardware.picotech.PicoScope5242B.PicoScope5242B.VOLTAGE_RANGES
        self.full_scale = {self.PS5000A_RANGE[name]: full_scale for full_scale, name in volts.items()}

    def _check_handle(self, handle):
        return handle.value == self.handle

    def interval_ns(self, timebase):
        # Approximates the 12-bit timebases.
        return 2**timebase if timebase < 3 else 16 * (timebase - 2)

    def ps5000aOpenUnit(self, handle_reference, serial, resolution):
        self.handle = 1
        deref(handle_reference).value = self.handle
        self.resolution = resolution
        return self.PICO_OK

    def ps5000aCloseUnit(self, handle):
        self.handle = None
        return self.PICO_OK

    def ps5000aStop(self, handle):
        self.block = None
        return self.PICO_OK

    def ps5000aMaximumValue(self, handle, value_reference):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE
        deref(value_reference).value = self.MAX_ADC_VALUE
        return self.PICO_OK

    def ps5000aSetChannel(self, handle, channel, enabled, coupling, voltage_range, analog_offset):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE
        self.channels[int(channel)] = dict(enabled=bool(enabled), coupling=coupling, range=int(voltage_range))
        return self.PICO_OK

    def ps5000aSetDeviceResolution(self, handle, resolution):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE
        self.resolution = resolution
        return self.PICO_OK

    def ps5000aGetTimebase2(self, handle, timebase, n_samples, interval_reference, max_samples_reference, segment_index):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE
        if timebase < 1:
            return self.PICO_INVALID_TIMEBASE
        deref(interval_reference).value = self.interval_ns(timebase)
        deref(max_samples_reference).value = 2**25
        return self.PICO_OK

    def ps5000aSetSimpleTrigger(self, handle, enable, source, threshold, direction, delay, auto_trigger_ms):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE
        self.trigger = dict(enable=enable, source=int(source), threshold=threshold, direction=direction,
                            auto_trigger_ms=auto_trigger_ms)
        return self.PICO_OK

    def ps5000aRunBlock(self, handle, n_pre_trigger, n_post_trigger, timebase, time_indisposed_reference,
                        segment_index, ready_callback, parameter):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE
        self.block = dict(n_samples=n_pre_trigger + n_post_trigger, timebase=timebase)
        deref(time_indisposed_reference).value = 0
        return self.PICO_OK

    def ps5000aIsReady(self, handle, ready_reference):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE
        deref(ready_reference).value = int(self.block is not None)
        return self.PICO_OK

    def ps5000aSetDataBuffer(self, handle, channel, buffer, buffer_length, segment_index, ratio_mode):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE
        self.buffers[int(channel)] = (buffer, buffer_length)
        return self.PICO_OK

    def ps5000aGetValues(self, handle, start_index, n_samples_reference, downsample_ratio, ratio_mode, segment_index,
                         overflow_reference):
        if not self._check_handle(handle):
            return self.PICO_INVALID_HANDLE

        n_samples = min(deref(n_samples_reference).value, self.block["n_samples"])
        t = np.arange(n_samples) * self.interval_ns(self.block["timebase"]) * 1e-9
        for channel, (buffer, length) in self.buffers.items():
            full_scale = self.full_scale[self.channels[channel]["range"]]
            voltage = self.signal_amplitude * np.sin(2 * np.pi * self.signal_frequency * t)
            counts = np.clip(np.round(voltage / full_scale * self.MAX_ADC_VALUE), -self.MAX_ADC_VALUE, self.MAX_ADC_VALUE)
            np.ctypeslib.as_array(buffer, shape=(length,))[:n_samples] = counts.astype(np.int16)

        deref(n_samples_reference).value = n_samples
        deref(overflow_reference).value = 0
        self.buffers = {}
        return self.PICO_OK


class PicoScope5242B(SimInstrument, benchkit.hardware.picotech.PicoScope5242B.PicoScope5242B):
    instrument_lib = PS5000aEmulator


class USBTC08Emulator:
    """ Emulates picosdk's usbtc08 library. Readings are constant per channel. """

    USBTC08_UNITS = make_enum(["USBTC08_UNITS_CENTIGRADE", "USBTC08_UNITS_FAHRENHEIT", "USBTC08_UNITS_KELVIN",
                               "USBTC08_UNITS_RANKINE"])

    N_CHANNELS = 9
    INTERVAL_PER_CHANNEL = 100  # ms.

    def __init__(self, cold_junction_temperature=22.0, temperature=25.0):
        self.temperatures = [cold_junction_temperature] + [temperature] * (self.N_CHANNELS - 1)
        self.handle = 0
        self.channels = {}
        self.mains = None
        self.interval_ms = None
        self.t0 = None
        self.returned = {}

    def usb_tc08_open_unit(self):
        self.handle = 1
        return self.handle

    def usb_tc08_close_unit(self, handle):
        self.handle = 0
        return 1

    def usb_tc08_get_last_error(self, handle):
        return 0

    def usb_tc08_get_formatted_info(self, handle, buffer, length):
        buffer.value = b"USB TC-08 (emulated)"
        return 1

    def usb_tc08_set_channel(self, handle, channel, tc_type):
        self.channels[channel] = tc_type.value.decode()
        return 1

    def usb_tc08_set_mains(self, handle, sixty_hertz):
        self.mains = 60 if sixty_hertz else 50
        return 1

    def usb_tc08_get_minimum_interval_ms(self, handle):
        return self.INTERVAL_PER_CHANNEL * len(self.channels)

    def usb_tc08_run(self, handle, interval_ms):
        self.interval_ms = interval_ms
        self.t0 = time.perf_counter()
        self.returned = {}
        return interval_ms

    def usb_tc08_stop(self, handle):
        self.t0 = None
        return 1

    def usb_tc08_get_single(self, handle, temperatures_reference, overflow_reference, units):
        if units != self.USBTC08_UNITS["USBTC08_UNITS_CENTIGRADE"]:
            raise NotImplementedError("Only Celsius is emulated.")
        temperatures = deref(temperatures_reference)
        for channel in self.channels:
            temperatures[channel] = self.temperatures[channel]
        deref(overflow_reference).value = 0
        return 1

    def usb_tc08_get_temp(self, handle, temperatures_reference, times_reference, buffer_length, overflow_reference,
                          channel, units, fill_missing):
        if self.t0 is None or channel not in self.channels:
            return -1
        temperatures = deref(temperatures_reference)
        times_ms = deref(times_reference)

        elapsed_ms = (time.perf_counter() - self.t0) * 1e3
        n_available = int(elapsed_ms // self.interval_ms) + 1
        first = self.returned.get(channel, 0)
        n_values = min(n_available - first, buffer_length)
        for i in range(n_values):
            temperatures[i] = self.temperatures[channel]
            times_ms[i] = (first + i) * self.interval_ms
        self.returned[channel] = first + n_values
        deref(overflow_reference).value = 0
        return n_values


class USBTC08(SimInstrument, benchkit.hardware.picotech.USBTC08.USBTC08):
    instrument_lib = USBTC08Emulator
