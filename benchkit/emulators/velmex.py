import re

from benchkit.benchkit_types import Axis
from benchkit.emulators.pyvisa_emulator import PyVisaEmulator
import benchkit.hardware.velmex.VelmexVXM
from benchkit.interfaces.Instrument import SimInstrument


class VelmexVXMEmulator(PyVisaEmulator):
    """ Emulates a VXM controller. Programs run instantly. """

    Commands = benchkit.hardware.velmex.VelmexVXM.VelmexVXM.Commands

    QUERIES = {"X": Axis.X, "Y": Axis.Y, "Z": Axis.Z}
    SPEED_PATTERN = re.compile(r"^S(?P<motor>\d)M(?P<steps_per_second>\d+)$")
    INDEX_PATTERN = re.compile(r"^I(?P<absolute>A?)(?P<motor>\d)M(?P<steps>-?\d+)$")

    def __init__(self, responsive=True):
        super().__init__()
        self.responsive = responsive  # False => never reply, e.g., powered off.
        self.position = {axis: 0 for axis in Axis}  # Steps.
        self.speed = {axis: None for axis in Axis}  # Steps/s.
        self.program = []
        self.runs = 0

    def handle(self, message):
        if not self.responsive:
            return None

        if message == self.Commands.VERIFY.value:
            return self.Commands.READY.value

        if message in self.QUERIES:
            return f"{self.position[self.QUERIES[message]]:+08d}"

        completed = False
        for token in message.split(","):
            completed = self.execute(token) or completed

        return self.Commands.COMPLETE.value if completed else None

    def execute(self, token):
        """ :return: bool - Whether a program ran. """
        if token in ("F", "G"):
            return False
        elif token in (self.Commands.KILL.value, "C"):
            self.program.clear()
            return False
        elif token == self.Commands.RUN.value:
            self.run_program()
            return True

        # Everything else is a program command.
        if token != self.Commands.NULL.value and not (self.SPEED_PATTERN.match(token) or self.INDEX_PATTERN.match(token)):
            raise NotImplementedError(f"Unknown VXM command '{token}'")
        self.program.append(token)
        return False

    def run_program(self):
        for command in self.program:
            if command == self.Commands.NULL.value:
                self.position = {axis: 0 for axis in Axis}
                continue

            speed = self.SPEED_PATTERN.match(command)
            if speed:
                self.speed[Axis(int(speed.group("motor")))] = int(speed.group("steps_per_second"))
                continue

            index = self.INDEX_PATTERN.match(command)
            axis = Axis(int(index.group("motor")))
            steps = int(index.group("steps"))
            if index.group("absolute"):
                # "-0" zeros the position register, whereas "0" returns to it.
                self.position[axis] = 0 if index.group("steps") == "-0" else steps
                if index.group("steps") != "-0":
                    self.move_motor(axis, steps)
            else:
                self.position[axis] += steps
                self.move_motor(axis, self.position[axis])

        self.program.clear()
        self.runs += 1

    def move_motor(self, axis, position):
        """ Override this to interface with a simulator. """


class VelmexVXM(SimInstrument, benchkit.hardware.velmex.VelmexVXM.VelmexVXM):
    instrument_lib = VelmexVXMEmulator
