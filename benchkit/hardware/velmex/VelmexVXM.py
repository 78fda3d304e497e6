from enum import Enum
import numbers
import re

from benchkit.benchkit_types import Axis, Result, resolve_motion, returns_result, to_value, units
from benchkit.hardware.command_channel import ExactResponse, NO_RESPONSE, PatternResponse, UnparseableResponseError
from benchkit.hardware.serial_instrument import SerialTextInstrument
from benchkit.interfaces.PositioningStage import PositioningStage
import benchkit.util


class VelmexVXM(SerialTextInstrument, PositioningStage):
    """ Velmex VXM controller driving a 3-axis BiSlide positioning system over a (virtual) serial port.

        Programs are sent as comma separated commands, e.g., "F,C,I1M400,R", where
        F := on-line mode (echo off), C := clear program, K := kill, R := run the program,
        S<m>M<x> := speed of motor m (steps/s), I<m>M<x> := index motor m by x steps,
        IA<m>M<x> := index motor m to absolute position x ("-0" zeros the position register),
        N := null all position registers.
        The controller replies "^" when a program completes and "R" (ready) to "V" (verify).

        Positive motion is away from the motor.
    """

    STEPS_PER_MM = 400  # 1 step = 1/400th of a millimeter.
    MAX_TRAVEL_DISTANCE = 15  # mm per command.
    MIN_STEPS_PER_SECOND = 1
    MAX_STEPS_PER_SECOND = 6000
    N_AXES = len(Axis)
    # Positions are reported as a sign and 7 digits, e.g., "+0000400". Shorter reads are still arriving.
    POSITION_PATTERN = re.compile(r"([+-])(\d{7})")

    class Commands(Enum):
        VERIFY = "V"
        READY = "R"
        COMPLETE = "^"
        PREFIX = "F,C,G"
        KILL_PREFIX = "K,F,C,G"
        RUN = "R"
        KILL = "K"
        NULL = "N"
        SET_SPEED = "S{motor}M{steps_per_second}"
        INDEX = "I{motor}M{steps}"
        INDEX_ABSOLUTE = "IA{motor}M{position}"

    # Position queries per axis.
    POSITION_QUERY = {Axis.X: "X", Axis.Y: "Y", Axis.Z: "Z"}

    def initialize(self, visa_id="ASRL4::INSTR", retry_interval=0.1, command_timeout=2, resend=True):
        """ Initializes class instance, but doesn't -- and shouldn't -- open a connection to the hardware."""
        super().initialize(visa_id=visa_id,
                           retry_interval=retry_interval,
                           command_timeout=command_timeout,
                           resend=resend)

    def _open(self):
        self.instrument = super()._open()

        # Verify that the VXM is connected and responding.
        result = self.check_ready()
        if not result.ok:
            self.log.warning(result.status)

        return self.instrument

    def _send(self, command, predicate, failure_message):
        outcome = self.send_and_await(command, predicate=predicate)
        if outcome.timed_out:
            return Result.failure(f"{failure_message} Velmex said: '{outcome.response}'", response=outcome.response)
        return Result.success(response=outcome.response)

    @returns_result
    def check_ready(self):
        """ Send "V" and wait for the controller to report ready ("R"). """
        return self._send(self.Commands.VERIFY.value,
                          ExactResponse(self.Commands.READY.value),
                          "Comm check timed out. Velmex didn't report ready, though it may still work.")

    @classmethod
    def build_program(cls, *commands, kill=False):
        prefix = cls.Commands.KILL_PREFIX if kill else cls.Commands.PREFIX
        return ",".join((prefix.value, *commands))

    @returns_result
    def move(self, direction, distance, speed, wait=0):
        """ Move a single motor by `distance`.

        :param direction: Direction, str, Axis, int - "left", "right", "forward", "back", "up", "down", or an axis
                                                      number (1-3) along which `distance` is signed.
        :param distance: int, float, Quantity - Distance to move (mm). Clipped to MAX_TRAVEL_DISTANCE.
        :param speed: int, float, Quantity - Motor speed (mm/s).
        :param wait: int, float (optional) - Block for this fraction of the computed travel time after sending the move,
                                             e.g., 1.1 for 10% extra time. 0 => return immediately.
        :return: Result. Result.value := (Axis, distance actually commanded (mm)).
        """
        if isinstance(wait, bool) or not isinstance(wait, numbers.Real):
            return Result.failure("Wait time is a fraction of the computed time. (Something like 1.1 for 10% extra time.)")
        wait = abs(wait)

        distance = to_value(distance, units.mm)
        if isinstance(distance, bool) or not isinstance(distance, numbers.Real):
            return Result.failure("Motor distance must be a number [mm].")

        try:
            axis, distance = resolve_motion(direction, distance)
        except ValueError:
            return Result.failure("Unknown motor direction.")

        if not self.is_open():
            return Result.failure("Must connect device first.")

        speed = to_value(speed, units.mm / units.s)
        if isinstance(speed, bool) or not isinstance(speed, numbers.Real) or speed <= 0:
            return Result.failure("Motor speed must be a positive number [mm/s].")
        steps_per_second = int(round(speed * self.STEPS_PER_MM))
        steps_per_second = min(max(steps_per_second, self.MIN_STEPS_PER_SECOND), self.MAX_STEPS_PER_SECOND)

        speed_command = self.build_program(self.Commands.SET_SPEED.value.format(motor=axis.value,
                                                                               steps_per_second=steps_per_second),
                                           self.Commands.RUN.value)
        result = self._send(speed_command, NO_RESPONSE, "Set speed command timed out.")
        if not result.ok:
            return result

        steps = int(round(distance * self.STEPS_PER_MM))
        max_steps = self.MAX_TRAVEL_DISTANCE * self.STEPS_PER_MM
        if abs(steps) > max_steps:
            self.log.warning(f"Requested {steps} steps exceeds the {max_steps} step limit. Clipping.")
            steps = max_steps if steps > 0 else -max_steps

        # Relative moves are not idempotent and are therefore sent once only (no response awaited).
        move_command = self.build_program(self.Commands.INDEX.value.format(motor=axis.value, steps=steps),
                                          self.Commands.RUN.value,
                                          kill=True)
        result = self._send(move_command, NO_RESPONSE, "Movement command timed out.")
        if not result.ok:
            return result

        self.log.info(f"{self.config_id}: moving motor #{axis.value} by {steps} steps at {steps_per_second} steps/s")

        # Pause (if required) to make sure motion completes.
        if wait > 0:
            benchkit.util.sleep(wait * abs(steps / steps_per_second))

        return Result.success(response=result.response, value=(axis, steps / self.STEPS_PER_MM))

    @returns_result
    def set_zero_position(self):
        """ Set the current position as the origin of all axes.

            Nulling the position registers makes the current position the absolute zero, such that positions can be
            queried relative to it.
        """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        zero_commands = [self.Commands.INDEX_ABSOLUTE.value.format(motor=axis.value, position="-0") for axis in Axis]
        command = self.build_program(*zero_commands, self.Commands.NULL.value, self.Commands.RUN.value, kill=True)
        return self._send(command, NO_RESPONSE, "Command timed out trying to zero motors.")

    @returns_result
    def go_to_zero_position(self):
        """ Return all axes to the origin. """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        zero_commands = [self.Commands.INDEX_ABSOLUTE.value.format(motor=axis.value, position=0) for axis in Axis]
        command = self.build_program(*zero_commands, self.Commands.RUN.value, kill=True)
        return self._send(command, NO_RESPONSE, "Command timed out trying to return motors to origin.")

    def parse_position(self, response):
        """ Parse the last signed step count in `response`, e.g., "+0000400" -> 400.

            Repeated replies (the query is re-sent) are fine, e.g., "+400+400", but mixed signs are ambiguous.
        """
        matches = self.POSITION_PATTERN.findall(response)
        if not matches or len({sign for sign, _ in matches}) != 1:
            raise UnparseableResponseError(response, expected="a signed step count")
        sign, steps = matches[-1]
        return -int(steps) if sign == "-" else int(steps)

    @returns_result
    def get_current_position(self):
        """ Query the position of each motor.

        :return: Result. Result.value := tuple of positions (mm), ordered by axis.
        """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        positions = []
        predicate = PatternResponse(self.POSITION_PATTERN.pattern + "$")
        for axis in Axis:
            result = self._send(self.POSITION_QUERY[axis],
                                predicate,
                                f"Command timed out trying to get position of motor #{axis.value}.")
            if not result.ok:
                return result
            positions.append(self.parse_position(result.response) / self.STEPS_PER_MM)

        return Result.success(value=tuple(positions))

    @returns_result
    def go_to_position(self, x, y, z, speed=1, wait=1.3):
        """ Move to an absolute position (mm), relative to the zero position.

        :param speed: int, float, Quantity (optional) - Motor speed (mm/s).
        :param wait: int, float (optional) - See self.move(). The default 1.3 safety factor should suffice.
        """
        result = self.get_current_position()
        if not result.ok:
            return result

        targets = [to_value(position, units.mm) for position in (x, y, z)]
        for axis, target, current in zip(Axis, targets, result.value):
            result = self.move(axis, target - current, speed, wait=wait)
            if not result.ok:
                return Result.failure(f"Command to move motor #{axis.value} failed. Velmex said: '{result.status}'",
                                      response=result.response)

        return Result.success(value=tuple(targets))

    @returns_result
    def kill(self):
        """ Kill all motor operation. """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        command = ",".join((self.Commands.PREFIX.value, self.Commands.KILL.value))
        return self._send(command, NO_RESPONSE, "Command timed out trying to kill operation.")

    @returns_result
    def send_velmex_command(self, command, expected_response=Commands.COMPLETE.value):
        """ Pass an arbitrary command to the controller.

        WARNING: The command is re-sent until `expected_response` is read. Only send commands that are safe to repeat.

        :param command: str - e.g., "F,C,IA1M400,R".
        :param expected_response: str (optional) - Reply that marks completion. Falsy => don't wait for a reply.
        """
        if not self.is_open():
            return Result.failure("Must connect device first.")

        predicate = ExactResponse(expected_response) if expected_response else NO_RESPONSE
        return self._send(command,
                          predicate,
                          f"Command timed out, waiting for response: '{expected_response}'.")
