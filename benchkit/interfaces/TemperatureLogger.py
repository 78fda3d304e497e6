from abc import ABC, abstractmethod

from benchkit.interfaces.Instrument import Instrument


class TemperatureLogger(Instrument, ABC):

    @abstractmethod
    def get_temperature(self, channel):
        """ Measures and returns the temperature of a single channel. """

    @abstractmethod
    def stream(self, duration, channel):
        """ Continuously measure a channel, yielding (time, temperature) pairs. """
