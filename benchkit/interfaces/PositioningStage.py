from abc import ABC, abstractmethod

from benchkit.interfaces.Instrument import Instrument

"""Interface for a multi-axis positioning stage."""


class PositioningStage(Instrument, ABC):

    @abstractmethod
    def move(self, direction, distance, speed, wait=0):
        """Implements a relative move."""

    @abstractmethod
    def go_to_position(self, x, y, z):
        """Implements an absolute move."""

    @abstractmethod
    def get_current_position(self):
        """Returns the current position of all axes."""

    @abstractmethod
    def kill(self):
        """Stops all motion."""
