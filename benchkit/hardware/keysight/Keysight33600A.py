import re

import pyvisa

from benchkit.benchkit_types import BurstMode, Result, Signal, returns_result, to_value, units
from benchkit.hardware.command_channel import InstrumentError
from benchkit.hardware.pyvisa_instrument import PyVisaInstrument
from benchkit.interfaces.WaveformGenerator import WaveformGenerator


class Keysight33600A(PyVisaInstrument, WaveformGenerator):
    """ Keysight (Agilent) 33600A series arbitrary waveform generator over USB-TMC (SCPI). """

    NUMBER_FORMAT = "{:08.3f}"
    OUTPUT_LOAD_KEYWORDS = ("INF", "MIN", "MAX", "DEF")

    # e.g., "SIN +1.0000000000000E+03,+2.0000000000000E+00,+0.0000000000000E+00"
    SIGNAL_PATTERN = re.compile(r"^\s*\"?(?P<type>[A-Z]+)\s+(?P<frequency>[^,\s]+),(?P<amplitude>[^,\s]+),(?P<offset>[^,\"\s]+)\"?\s*$")

    def initialize(self, visa_id="USB0::0x0957::0x4807::MY53300703::0::INSTR"):
        """ Initializes class instance, but doesn't -- and shouldn't -- open a connection to the hardware."""
        self.visa_id = visa_id

    def _open(self):
        instrument = self.open_resource()

        # Reset & clear status.
        try:
            instrument.write("*RST")
            instrument.write("*CLS")
        except pyvisa.VisaIOError:
            self.close_resource()
            raise

        return instrument

    def _close(self):
        self.close_resource()

    @classmethod
    def format_number(cls, value):
        return cls.NUMBER_FORMAT.format(value)

    def _apply(self, function, frequency, amplitude, offset):
        parameters = (to_value(frequency, units.Hz), to_value(amplitude, units.V), to_value(offset, units.V))
        command = f"APPLY:{function} " + ",".join(self.format_number(parameter) for parameter in parameters)
        return self.send_command(command)

    @returns_result
    def generate_sine_wave(self, frequency, amplitude, offset=0):
        """ Output a sine wave.

        :param frequency: int, float, Quantity - (Hz).
        :param amplitude: int, float, Quantity - Peak to peak (V).
        :param offset: int, float, Quantity (optional) - DC offset (V).
        """
        return self._apply("SIN", frequency, amplitude, offset)

    @returns_result
    def generate_pulse_wave(self, frequency, amplitude, offset=0):
        return self._apply("PULS", frequency, amplitude, offset)

    @returns_result
    def set_burst_parameters(self, num_cycles, period, phase=0, mode=BurstMode.TRIGGER):
        """ Configure (and enable) internally triggered bursts.

        :param num_cycles: int - Cycles per burst.
        :param period: int, float, Quantity - Burst period (s).
        :param phase: int, float (optional) - Starting phase (degrees).
        :param mode: BurstMode, str (optional) - "trigger" ("trig", "t") or "gated" ("gate", "g").
                                                 Anything else falls back to trigger.
        """
        try:
            mode = BurstMode(mode)
        except ValueError:
            self.log.warning(f"Unknown burst mode '{mode}'. Using '{BurstMode.TRIGGER.aliases[0]}'.")
            mode = BurstMode.TRIGGER

        period = to_value(period, units.s)
        steps = ((f"BURS:MODE {mode.scpi}", f"set mode to {mode.aliases[0]}"),
                 (f"BURS:NCYC {self.format_number(num_cycles)}", f"set number of cycles to {num_cycles}"),
                 (f"BURSt:INTernal:PERiod {self.format_number(period)}", f"set period to {period}"),
                 (f"BURSt:PHASe {self.format_number(phase)}", f"set phase to {phase}"),
                 ("TRIGger:SOURce IMMediate", "set trigger source to immediate"),
                 ("BURSt:STATe ON", "enable burst"))

        for command, description in steps:
            result = self.send_command(command)
            if not result.ok:
                return Result.failure(f"Couldn't {description}. AWG said: '{result.status}'.", response=result.response)

        return Result.success()

    @returns_result
    def set_voltage(self, voltage):
        """ :param voltage: int, float, Quantity - Amplitude (V). """
        return self.send_command(f"VOLT {self.format_number(to_value(voltage, units.V))}")

    @returns_result
    def set_frequency(self, frequency):
        """ :param frequency: int, float, Quantity - (Hz). """
        return self.send_command(f"FREQ {self.format_number(to_value(frequency, units.Hz))}")

    @returns_result
    def set_output_load(self, output_load):
        """ :param output_load: int, float, Quantity, str - Load impedance (Ohm), or "INF" for high Z. """
        if isinstance(output_load, str):
            if output_load.upper() not in self.OUTPUT_LOAD_KEYWORDS:
                return Result.failure(f"Output load must be a number or one of {self.OUTPUT_LOAD_KEYWORDS}.")
            value = output_load.upper()
        else:
            value = self.format_number(to_value(output_load, units.Ohm))
        return self.send_command(f"OUTPUT:LOAD {value}")

    @returns_result
    def output_on(self):
        return self.send_command("OUTP 1")

    @returns_result
    def output_off(self):
        return self.send_command("OUTP 0")

    @classmethod
    def parse_signal(cls, reply):
        match = cls.SIGNAL_PATTERN.match(reply)
        if match is None:
            raise ValueError(reply)
        return Signal(type=match.group("type"),
                      frequency=float(match.group("frequency")),
                      amplitude=float(match.group("amplitude")),
                      offset=float(match.group("offset")),
                      reply=reply)

    @returns_result
    def check_signal(self):
        """ Query the current output configuration.

        :return: Result. Result.value := Signal.
        """
        result = self.send_command("APPLy?", delay=1e-3, wait_for_response=True)
        if not result.ok:
            return result

        try:
            signal = self.parse_signal(result.response)
        except ValueError:
            raise InstrumentError(f"Couldn't parse output. The AWG said: '{result.response}'",
                                  response=result.response) from None

        return Result.success(response=result.response, value=signal)
