import numpy as np

from benchkit.emulators.pyvisa_emulator import PyVisaEmulator
import benchkit.hardware.tektronix.TektronixDPO2022B
from benchkit.interfaces.Instrument import SimInstrument


class TektronixDPO2022BEmulator(PyVisaEmulator):
    """ Emulates the DPO 2022B acquiring a sine wave on both channels.

        Curve data are returned as ASCII digitizer levels, i.e., fractions of half the vertical span.
    """

    def __init__(self, record_length=1000, sample_rate=1e6, signal_frequency=1e4, signal_amplitude=0.5):
        super().__init__()
        self.record_length = record_length
        self.sample_rate = sample_rate  # Samples/s.
        self.signal_frequency = signal_frequency  # Hz.
        self.signal_amplitude = signal_amplitude  # Fraction of half the vertical span.
        self.horizontal_scale = record_length / sample_rate / 10  # s/div.
        self.horizontal_mode = "MAIN"
        self.delay_scale = self.horizontal_scale
        self.delay_time = 0
        self.zoom_position = 50  # %.
        self.volts_per_division = {1: 1.0, 2: 1.0}
        self.vertical_position = {1: 0.0, 2: 0.0}
        self.acquisition_mode = "SAMPLE"
        self.num_averages = 16
        self.data_composition = "COMPOSITE_YT"
        self.data_start = 1
        self.data_stop = record_length
        self.data_source = 1
        self.data_encoding = "ASCII"
        self.header = True
        self.measurement_source = 1
        self.measurement_type = "FREQUENCY"

    def curve(self):
        samples = np.arange(self.data_start - 1, self.data_stop)
        levels = self.signal_amplitude * np.sin(2 * np.pi * self.signal_frequency * samples / self.sample_rate)
        return ",".join(f"{level:.4f}" for level in levels)

    def handle(self, message):
        header, _, argument = message.strip().partition(" ")
        header = header.upper()
        argument = argument.strip()

        queries = {"HORIZONTAL:RECORDLENGTH?": lambda: f"{self.record_length}",
                   "HORIZONTAL:SAMPLERATE?": lambda: f"{self.sample_rate:.4E}",
                   "HORIZONTAL:SCALE?": lambda: f"{self.horizontal_scale:.4E}",
                   "HORIZONTAL:MAIN:SCALE?": lambda: f"{self.horizontal_scale:.4E}",
                   "HORIZONTAL:DELAY:SCALE?": lambda: f"{self.delay_scale:.4E}",
                   "HORIZONTAL:DELAY:TIME?": lambda: f"{self.delay_time:.4E}",
                   "HORIZONTAL:MODE?": lambda: self.horizontal_mode,
                   "HORIZONTAL:RESOLUTION?": lambda: f"{self.record_length}",
                   "ZOOM:ZOOM:HORIZONTAL:POSITION?": lambda: f"{self.zoom_position:.4E}",
                   "CURVE?": self.curve,
                   "MEASUREMENT:IMMED:TYPE?": lambda: self.measurement_type,
                   "MEASUREMENT:IMMED:VALUE?": self.measure}
        for channel in (1, 2):
            queries[f"CH{channel}:VOLTS?"] = lambda channel=channel: f"{self.volts_per_division[channel]:.4E}"
            queries[f"CH{channel}:POS?"] = lambda channel=channel: f"{self.vertical_position[channel]:.4E}"

        if header in queries:
            return queries[header]()

        if header == "ACQUIRE:MODE":
            self.acquisition_mode = "AVERAGE" if argument.upper().startswith("AVE") else "SAMPLE"
        elif header == "ACQUIRE:NUMAVG":
            self.num_averages = int(argument)
        elif header == "DATA:COMPOSITION":
            self.data_composition = argument.upper()
        elif header == "DATA:START":
            self.data_start = int(argument)
        elif header == "DATA:STOP":
            self.data_stop = int(argument)
        elif header == "DATA:SOURCE":
            self.data_source = int(argument.upper().replace("CH", ""))
        elif header == "DATA:ENCDG":
            self.data_encoding = argument.upper()
        elif header == "HEAD":
            self.header = bool(int(argument))
        elif header == "HORIZONTAL:SCALE":
            self.horizontal_scale = float(argument)
        elif header == "MEASUREMENT:IMMED:SOURCE1":
            self.measurement_source = int(argument.upper().replace("CH", ""))
        elif header == "MEASUREMENT:IMMED:TYPE":
            self.measurement_type = argument.upper()
        else:
            raise NotImplementedError(f"Unknown SCPI command '{message}'")

        return None

    def measure(self):
        if self.measurement_type != "PK2PK":
            raise NotImplementedError(self.measurement_type)
        vertical_span = 8 * self.volts_per_division[self.measurement_source]
        return f"{2 * self.signal_amplitude * vertical_span / 2:.4E}"


class TektronixDPO2022B(SimInstrument, benchkit.hardware.tektronix.TektronixDPO2022B.TektronixDPO2022B):
    instrument_lib = TektronixDPO2022BEmulator
