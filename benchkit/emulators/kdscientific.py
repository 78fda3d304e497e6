from benchkit.benchkit_types import PumpStatus
from benchkit.emulators.pyvisa_emulator import PyVisaEmulator
import benchkit.hardware.kdscientific.KDScientific110
from benchkit.interfaces.Instrument import SimInstrument


class KDScientific110Emulator(PyVisaEmulator):
    """ Emulates a KDS 110 pump.

        Whilst running with a target volume, each message received advances the delivered volume by `volume_step`
        (ml) such that the pump eventually stops by itself.
    """

    Commands = benchkit.hardware.kdscientific.KDScientific110.KDScientific110.Commands
    RateUnits = benchkit.hardware.kdscientific.KDScientific110.KDScientific110.RateUnits

    UNIT_TEXT = {"MM": "ml/m", "MH": "ml/h", "UM": "ul/m", "UH": "ul/h"}

    def __init__(self, address="", diameter=12.07, volume_step=0.1):
        super().__init__()
        self.address = address
        self.diameter = diameter  # mm.
        self.rate = 1.0
        self.rate_units = self.RateUnits.ML_PER_HR
        self.target_volume = 0  # ml, 0 => none.
        self.delivered_volume = 0  # ml.
        self.volume_step = volume_step
        self.status = PumpStatus.IDLE

    def stall(self):
        self.status = PumpStatus.STALLED

    def reply(self, payload=None):
        prompt = self.status.value
        if payload is None:
            return f"{self.address}{prompt}"
        return f"{self.address}:{payload}{prompt}"

    def handle(self, message):
        self.advance()

        if not message.strip():
            return self.reply()

        command, *arguments = message.split()
        command = self.Commands(command)
        if command is self.Commands.RUN:
            if self.status is not PumpStatus.STALLED:
                self.status = PumpStatus.INFUSING
        elif command is self.Commands.STOP:
            self.status = PumpStatus.IDLE
        elif command is self.Commands.CLEAR_VOLUME:
            self.delivered_volume = 0
        elif command is self.Commands.DIAMETER:
            if not arguments:
                return self.reply(f"{self.diameter:.4f}")
            self.diameter = float(arguments[0])
        elif command is self.Commands.RATE:
            if not arguments:
                return self.reply(f"{self.rate:.4g}{self.UNIT_TEXT[self.rate_units.value]}")
            self.rate = float(arguments[0])
            if len(arguments) > 1:
                self.rate_units = self.RateUnits(arguments[1])
        elif command is self.Commands.VOLUME:
            if not arguments:
                return self.reply(f"{self.delivered_volume:.4g}")
            self.target_volume = float(arguments[0])
        else:
            raise NotImplementedError

        return self.reply()

    def advance(self):
        if self.status is PumpStatus.INFUSING and self.target_volume > 0:
            self.delivered_volume += self.volume_step
            if self.delivered_volume >= self.target_volume:
                self.status = PumpStatus.IDLE


class KDScientific110(SimInstrument, benchkit.hardware.kdscientific.KDScientific110.KDScientific110):
    instrument_lib = KDScientific110Emulator
