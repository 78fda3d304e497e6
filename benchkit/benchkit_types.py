from collections import namedtuple
from enum import Enum, IntEnum
import functools

import astropy.units


SUCCESS = 0  # Status of a successful Result.


class Result(namedtuple("Result", "status, response, value")):
    """ Returned by all public instrument operations.

        status := SUCCESS (0) or a human readable description of what went wrong.
        response := raw device output (if any).
        value := parsed payload (if any).
    """
    def __new__(cls, status=SUCCESS, response='', value=None):
        return super().__new__(cls, status, response, value)

    @property
    def ok(self):
        return not isinstance(self.status, str) and self.status == SUCCESS

    @classmethod
    def success(cls, response='', value=None):
        return cls(SUCCESS, response, value)

    @classmethod
    def failure(cls, message, response='', value=None):
        return cls(str(message), response, value)


def returns_result(func):
    """ Convert InstrumentErrors raised from within a public operation into a failed Result. """
    # Avoid circular import.
    from benchkit.hardware.command_channel import InstrumentError

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except InstrumentError as error:
            self.log.error(f"{self.config_id}: {func.__name__}() failed: {error}")
            return Result.failure(error, response=getattr(error, "response", ''))
    return wrapper


class Axis(IntEnum):
    """ Motor index of the positioning stage. """
    X = 1
    Y = 2
    Z = 3

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for item in cls:
                if value.upper() == item.name:
                    return item


class Direction(Enum):
    """ Named stage directions. Positive motion is away from the motor. """
    def __init__(self, axis, sign):
        self.axis = axis
        self.sign = sign

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for item in cls:
                if value.lower() == item.name.lower():
                    return item

    LEFT = (Axis.X, 1)
    RIGHT = (Axis.X, -1)
    FORWARD = (Axis.Y, 1)
    BACK = (Axis.Y, -1)
    DOWN = (Axis.Z, 1)
    UP = (Axis.Z, -1)


def resolve_motion(direction, distance):
    """ Resolve a direction (Direction, its name, an Axis or an axis number 1-3) into (Axis, signed distance).

    :param direction: Direction, str, Axis, int.
    :param distance: int, float - distance along the named direction.
    :return: (Axis, signed distance).
    """
    if isinstance(direction, bool):
        raise ValueError(f"Unknown motor direction: '{direction}'")

    if isinstance(direction, Direction):
        return direction.axis, direction.sign * distance

    if isinstance(direction, str):
        try:
            named = Direction(direction)
        except ValueError:
            named = None
        if named is not None:
            return named.axis, named.sign * distance

    try:
        return Axis(direction), distance
    except ValueError:
        raise ValueError(f"Unknown motor direction: '{direction}'") from None


class PumpStatus(Enum):
    """ Pump state as indicated by its prompt character. """
    IDLE = ":"
    INFUSING = ">"
    WITHDRAWING = "<"
    STALLED = "*"


class AcquisitionMode(Enum):
    AVERAGE = ("average", "ave", "avg", "av", "a")
    SAMPLE = ("sample", "sampling", "samp", "sam", "s")

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for item in cls:
                if value.lower() in item.value:
                    return item


class BurstMode(Enum):
    TRIGGER = ("TRIG", ("trigger", "trig", "t"))
    GATED = ("GAT", ("gated", "gate", "g"))

    def __init__(self, scpi, aliases):
        self.scpi = scpi
        self.aliases = aliases

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for item in cls:
                if value.lower() in item.aliases:
                    return item


# AWG signal as reported by "APPLy?".
Signal = namedtuple("Signal", "type, frequency, amplitude, offset, reply")

# Oscilloscope traces. voltage is an array, or a dict of arrays keyed by channel.
Waveform = namedtuple("Waveform", "time, voltage")

# Magnitude spectrum of a Waveform, level in (arbitrary) dB.
Spectrum = namedtuple("Spectrum", "frequency, level")


units = astropy.units
quantity = astropy.units.Quantity


def to_value(value, unit):
    """ Return the magnitude of `value` in `unit`. Plain numbers are assumed to already be in `unit`. """
    if isinstance(value, astropy.units.Quantity):
        return value.to_value(unit)
    return value


class Pointer:
    def __init__(self, ref):
        super().__getattribute__("point_to")(ref)

    def __getattribute__(self, name):
        if name == "self":
            return super().__getattribute__("ref")
        elif name == "point_to":
            return super().__getattribute__(name)
        else:
            return super().__getattribute__("ref").__getattribute__(name)

    def __setattr__(self, name, value):
        super().__getattribute__("ref").__setattr__(name, value)

    def __delattr__(self, name):
        super().__getattribute__("ref").__delattr__(name)

    def point_to(self, ref):
        super().__setattr__("ref", ref)
