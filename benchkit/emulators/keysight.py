from benchkit.emulators.pyvisa_emulator import PyVisaEmulator
import benchkit.hardware.keysight.Keysight33600A
from benchkit.interfaces.Instrument import SimInstrument


class Keysight33600AEmulator(PyVisaEmulator):
    """ Emulates the SCPI subset used with the 33600A. Headers are matched case insensitively. """

    DEFAULT_STATE = dict(function="SIN",
                         frequency=1e3,
                         amplitude=0.1,
                         offset=0,
                         output=False,
                         output_load=50,
                         burst_mode="TRIG",
                         burst_cycles=1,
                         burst_period=1e-2,
                         burst_phase=0,
                         trigger_source="IMM",
                         burst_state=False)

    def __init__(self):
        super().__init__()
        self.reset()

    def reset(self):
        self.__dict__.update(self.DEFAULT_STATE)

    def handle(self, message):
        header, _, arguments = message.strip().partition(" ")
        header = header.upper()

        if header == "*RST":
            self.reset()
        elif header == "*CLS":
            pass
        elif header == "APPLY?":
            return f'"{self.function} {self.frequency:+.13E},{self.amplitude:+.13E},{self.offset:+.13E}"'
        elif header.startswith("APPLY:"):
            self.function = header.split(":")[1]
            self.frequency, self.amplitude, self.offset = (float(value) for value in arguments.split(","))
        elif header == "VOLT":
            self.amplitude = float(arguments)
        elif header == "FREQ":
            self.frequency = float(arguments)
        elif header == "OUTPUT:LOAD":
            self.output_load = float(arguments) if arguments.upper() not in ("INF", "MIN", "MAX", "DEF") else arguments.upper()
        elif header == "OUTP":
            self.output = bool(int(arguments))
        elif header == "BURS:MODE":
            self.burst_mode = arguments
        elif header == "BURS:NCYC":
            self.burst_cycles = float(arguments)
        elif header == "BURST:INTERNAL:PERIOD":
            self.burst_period = float(arguments)
        elif header == "BURST:PHASE":
            self.burst_phase = float(arguments)
        elif header == "TRIGGER:SOURCE":
            self.trigger_source = arguments.upper()[:3]
        elif header == "BURST:STATE":
            self.burst_state = arguments.upper() in ("ON", "1")
        else:
            raise NotImplementedError(f"Unknown SCPI command '{message}'")

        return None


class Keysight33600A(SimInstrument, benchkit.hardware.keysight.Keysight33600A.Keysight33600A):
    instrument_lib = Keysight33600AEmulator
