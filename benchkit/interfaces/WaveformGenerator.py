from abc import ABC, abstractmethod

from benchkit.interfaces.Instrument import Instrument

"""Interface for an arbitrary waveform generator."""


class WaveformGenerator(Instrument, ABC):

    @abstractmethod
    def generate_sine_wave(self, frequency, amplitude, offset):
        """Output a sine wave."""

    @abstractmethod
    def set_frequency(self, frequency):
        """Sets the output frequency."""

    @abstractmethod
    def set_voltage(self, voltage):
        """Sets the output amplitude."""

    @abstractmethod
    def output_on(self):
        """Enable the output."""

    @abstractmethod
    def output_off(self):
        """Disable the output."""
