from abc import ABC, abstractmethod

from benchkit.interfaces.Instrument import Instrument

"""Interface for an oscilloscope."""


class Oscilloscope(Instrument, ABC):

    @abstractmethod
    def get_sampling_frequency(self):
        """Returns the sampling frequency (Hz)."""

    @abstractmethod
    def capture(self, channel):
        """Acquire and return a Waveform for the given channel."""
