from abc import ABC, abstractmethod

from benchkit.interfaces.Instrument import Instrument

"""Interface for a syringe pump."""


class SyringePump(Instrument, ABC):

    @abstractmethod
    def run(self):
        """Start pumping."""

    @abstractmethod
    def stop(self):
        """Stop pumping."""

    @abstractmethod
    def get_status(self):
        """Returns the pump status, i.e., Result.value := PumpStatus."""

    @abstractmethod
    def set_rate(self, rate, units):
        """Sets the flow rate."""
