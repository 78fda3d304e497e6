import math
import numbers

import numpy as np

from benchkit.benchkit_types import AcquisitionMode, Result, Waveform, returns_result, to_value, units
from benchkit.hardware.command_channel import UnparseableResponseError
from benchkit.hardware.pyvisa_instrument import PyVisaInstrument
from benchkit.interfaces.Oscilloscope import Oscilloscope


class TektronixDPO2022B(PyVisaInstrument, Oscilloscope):
    """ Tektronix DPO 2022B oscilloscope over USB-TMC.

        The device's I/O buffers are cleared before every command and, unless told otherwise, a reply is read.
    """

    CLEAR_BEFORE_COMMAND = True
    WAIT_FOR_RESPONSE = True

    CHANNELS = (1, 2)
    N_DIVISIONS = 10  # Horizontal divisions per screen.
    N_VERTICAL_DIVISIONS = 8
    VOLTAGE_SCALING = 1e-2
    DEFAULT_NUM_AVERAGES = 64  # Must be a power of 2 [2, 256].
    MIN_NUM_AVERAGES = 2
    MAX_NUM_AVERAGES = 256
    MAX_SAMPLE_RATE = 1e9  # Samples/s.
    MIN_SCREEN_WIDTH = 1e-9  # Seconds.
    MAX_SCREEN_WIDTH = 1000  # Seconds.
    PEAK_TO_PEAK = "PK2Pk"

    def initialize(self, visa_id="USB0::0x0699::0x03A1::C030405::0::INSTR"):
        """ Initializes class instance, but doesn't -- and shouldn't -- open a connection to the hardware."""
        self.visa_id = visa_id
        self.immediate_measurement_channel = None
        self.immediate_measurement_type = None

    def _open(self):
        # The immediate measurement settings are unknown until set.
        self.immediate_measurement_channel = None
        self.immediate_measurement_type = None
        return self.open_resource()

    def _close(self):
        self.close_resource()

    @classmethod
    def to_nr3(cls, value):
        """ Format as NR3, e.g., 2.5e-06 -> "2.5E-6". """
        exponent = math.floor(math.log10(value))
        multiplier = value / 10**exponent
        return f"{multiplier:g}E{exponent}"

    @returns_result
    def set_acquisition_mode(self, mode, num_averages=DEFAULT_NUM_AVERAGES):
        """ Switch between averaging and sampling (continuous) acquisition.

        :param mode: AcquisitionMode, str - "average" ("ave", "avg", "av", "a") or "sample" ("sampling", "samp", "sam", "s").
        :param num_averages: int (optional) - Acquisitions to average over. Rounded up to a power of 2 in [2, 256].
        """
        try:
            mode = AcquisitionMode(mode)
        except ValueError:
            return Result.failure("WARNING: Unknown acquisition mode specified; mode was not changed. "
                                  "Valid modes are: 'Average' and 'Sample'.")

        if mode is AcquisitionMode.SAMPLE:
            self.write("ACQuire:MODe SAMple")
            self.write("DATA:COMPOSITION COMPOSITE_YT")
            self.log.info("Set to sampling (continuous) mode.")
            return Result.success()

        if isinstance(num_averages, bool) or not isinstance(num_averages, numbers.Real):
            self.log.warning(f"Number of acquisitions must be a number. Setting to {self.DEFAULT_NUM_AVERAGES}.")
            num_averages = self.DEFAULT_NUM_AVERAGES
        else:
            num_averages = math.floor(abs(num_averages))
            num_averages = 2**math.ceil(math.log2(num_averages)) if num_averages >= 1 else 1
            num_averages = max(self.MIN_NUM_AVERAGES, min(num_averages, self.MAX_NUM_AVERAGES))

        self.write("ACQuire:MODe AVErage")
        self.write(f"ACQuire:NUMAVg {num_averages}")
        self.write("DATA:COMPOSITION SINGULAR_YT")
        self.log.info(f"Set to averaging mode with {num_averages} acquisitions.")
        return Result.success(value=num_averages)

    @staticmethod
    def parse_curve(reply):
        try:
            return np.array(reply.split(","), dtype=float)
        except ValueError:
            raise UnparseableResponseError(reply, expected="comma separated ASCII curve data") from None

    @returns_result
    def save_data(self, channel=1, num_points=0, start_point=1):
        """ Transfer (part of) the acquired record of a channel.

        :param channel: int (optional) - 0 => 1.
        :param num_points: int (optional) - Points to transfer. 0 => the whole record.
        :param start_point: int (optional) - First point to transfer (1 based). 0 => 1.
        :return: Result. Result.value := Waveform(time (s), voltage (V)), both np.ndarray.
        """
        if any(isinstance(value, bool) or not isinstance(value, numbers.Real) for value in (channel, num_points, start_point)):
            return Result.failure("Channel number and number of points must be positive integers.")

        channel = abs(round(channel)) or 1
        num_points = abs(round(num_points))
        start_point = abs(round(start_point)) or 1

        total_points = int(self.query_float("HORIZONTAL:RECORDLENGTH?"))
        if num_points == 0:
            num_points = total_points - start_point + 1
        end_point = num_points + start_point - 1
        if end_point > total_points:
            return Result.failure(f"Must specify no more than {total_points} points (or increase HOR:RECO).")

        self.write(f"DATA:START {start_point}")
        self.write(f"DATA:STOP {end_point}")
        self.log.debug(f"Saving points {start_point} through {end_point}.")

        # Data transfer format.
        self.write("HEAD 0")
        self.write(f"DATA:SOURCE CH{channel}")
        self.write("DATA:ENCDG ASCII")

        raw_signal = self.parse_curve(self.query("CURVE?"))

        # Vertical scaling.
        vertical_span = self.N_VERTICAL_DIVISIONS * self.query_float(f"CH{channel}:VOLTS?")
        vertical_offset = self.query_float(f"CH{channel}:POS?") * (vertical_span / self.N_VERTICAL_DIVISIONS) / self.N_VERTICAL_DIVISIONS
        voltage = (raw_signal * (vertical_span / 2) - vertical_offset) * self.VOLTAGE_SCALING

        # Horizontal scaling.
        in_delay_mode = self.query("HORIZONTAL:MODE?").upper().startswith("D")
        main_span = self.N_DIVISIONS * self.query_float("HORIZONTAL:MAIN:SCALE?")
        delay_span = self.N_DIVISIONS * self.query_float("HORIZONTAL:DELAY:SCALE?")
        delay_time = self.query_float("HORIZONTAL:DELAY:TIME?")

        if in_delay_mode:
            time = np.linspace(delay_time, delay_time + delay_span, voltage.size)
        else:
            time = np.linspace(0, main_span, voltage.size)

        return Result.success(value=Waveform(time=time, voltage=voltage))

    def capture(self, channel=1):
        return self.save_data(channel=channel)

    @returns_result
    def get_screen_data(self, channel=1):
        """ Transfer only the data displayed in the zoom window.

            The zoom window only differs from the record when sampling at the maximum rate, otherwise the whole
            record is returned.

        :return: Result. Result.value := Waveform.
        """
        if channel not in self.CHANNELS:
            return Result.failure(f"Channel number must be one of {self.CHANNELS}.")

        sample_rate = self.query_float("HORIZONTAL:SAMPLERATE?")
        if sample_rate != self.MAX_SAMPLE_RATE:
            return self.save_data(channel=channel)

        displayed_width = self.N_DIVISIONS * self.query_float("HORIZONTAL:SCALE?")  # Seconds.
        record_length = int(self.query_float("HORIZONTAL:RECORDLENGTH?"))
        record_width = record_length / sample_rate  # Seconds.
        percent_displayed = 100 * displayed_width / record_width
        percent_offset = self.query_float("ZOOM:ZOOM:HORIZONTAL:POSITION?")

        first_point_fraction = (percent_offset - percent_displayed / 2) / 100
        last_point_fraction = (percent_offset + percent_displayed / 2) / 100
        start_point = max(math.floor(first_point_fraction * record_length), 1)
        end_point = min(math.ceil(last_point_fraction * record_length), record_length)
        num_points = end_point - start_point

        result = self.save_data(channel=channel, num_points=num_points, start_point=start_point)
        if not result.ok:
            return result

        dt = 1 / sample_rate
        time = first_point_fraction * np.max(result.value.time) + dt * np.arange(1, result.value.voltage.size + 1)
        return result._replace(value=Waveform(time=time, voltage=result.value.voltage))

    @returns_result
    def set_screen_width(self, screen_width):
        """ :param screen_width: int, float, Quantity - Horizontal span of the screen (s), within [1 ns, 1000 s]. """
        screen_width = to_value(screen_width, units.s)
        if isinstance(screen_width, bool) or not isinstance(screen_width, numbers.Real):
            return Result.failure("Screen width must be a positive number.")
        if not self.MIN_SCREEN_WIDTH <= screen_width <= self.MAX_SCREEN_WIDTH:
            return Result.failure("Screen width must be between 1 ns and 1000 s.")

        return self.send_command(f"HORIZONTAL:SCALE {self.to_nr3(screen_width / self.N_DIVISIONS)}",
                                 wait_for_response=False)

    @returns_result
    def get_screen_width(self):
        """ :return: Result. Result.value := screen width (s). """
        seconds_per_division = self.query_float("HORIZONTAL:SCALE?")
        return Result.success(value=seconds_per_division * self.N_DIVISIONS)

    @returns_result
    def get_sampling_frequency(self):
        """ :return: Result. Result.value := displayed samples per second (Hz). """
        result = self.get_screen_width()
        if not result.ok:
            return result

        screen_width_samples = self.query_float("HORIZONTAL:RESOLUTION?")
        return Result.success(value=screen_width_samples / result.value)

    @returns_result
    def get_peak_to_peak(self, channel=1):
        """ Peak to peak voltage of a channel via an immediate measurement.

        :param channel: int (optional) - Invalid channels fall back to 1.
        :return: Result. Result.value := peak to peak voltage (V).
        """
        if channel not in self.CHANNELS:
            self.log.warning(f"Invalid channel '{channel}'. Using channel 1.")
            channel = 1

        # Only (re)configure the immediate measurement when it has changed.
        if self.immediate_measurement_channel != channel:
            self.write(f"MEASUrement:IMMed:SOUrce1 CH{channel}")
            self.immediate_measurement_channel = channel

        if self.immediate_measurement_type != self.PEAK_TO_PEAK:
            self.write(f"MEASUrement:IMMed:TYPe {self.PEAK_TO_PEAK}")
            self.immediate_measurement_type = self.PEAK_TO_PEAK

        measurement_type = self.query("MEASUrement:IMMed:TYPe?")
        if not measurement_type.upper().startswith(self.PEAK_TO_PEAK[:4].upper()):
            self.immediate_measurement_type = None
            return Result.failure("Unable to set immediate measurement type to peak-to-peak. "
                                  f"Current type is '{measurement_type}'.", response=measurement_type)

        return Result.success(value=self.query_float("MEASUrement:IMMed:VALue?"))
