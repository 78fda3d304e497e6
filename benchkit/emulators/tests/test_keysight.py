import numpy as np
import pytest

from benchkit.benchkit_types import BurstMode, quantity, units
from benchkit.emulators.keysight import Keysight33600A


def test_open_resets():
    awg = Keysight33600A(config_id="dummy")
    awg.instrument_lib.frequency = 5
    with awg:
        assert awg.instrument_lib.received[:2] == ["*RST", "*CLS"]
        assert awg.instrument_lib.frequency == Keysight33600A.instrument_lib.DEFAULT_STATE["frequency"]


def test_not_connected():
    awg = Keysight33600A(config_id="dummy")
    result = awg.output_on()
    assert not result.ok
    assert "Open it first" in result.status


def test_invalid_command():
    with Keysight33600A(config_id="dummy") as awg:
        result = awg.send_command(3)
        assert not result.ok
        assert "must be a string" in result.status


def test_generate_sine_wave():
    with Keysight33600A(config_id="dummy") as awg:
        assert awg.generate_sine_wave(frequency=10e3, amplitude=2).ok
        assert awg.instrument_lib.received[-1] == "APPLY:SIN 10000.000,0002.000,0000.000"

        result = awg.check_signal()
        assert result.ok
        signal = result.value
        assert signal.type == "SIN"
        assert np.isclose(signal.frequency, 10e3)
        assert np.isclose(signal.amplitude, 2)
        assert np.isclose(signal.offset, 0)


def test_generate_pulse_wave():
    with Keysight33600A(config_id="dummy") as awg:
        assert awg.generate_pulse_wave(frequency=quantity(1, units.kHz), amplitude=quantity(500, units.mV), offset=0.25).ok
        signal = awg.check_signal().value
        assert signal.type == "PULS"
        assert np.isclose(signal.frequency, 1e3)
        assert np.isclose(signal.amplitude, 0.5)
        assert np.isclose(signal.offset, 0.25)


@pytest.mark.parametrize("mode, expected", (("trigger", "TRIG"), ("gate", "GAT"), (BurstMode.GATED, "GAT"), ("bogus", "TRIG")))
def test_set_burst_parameters(mode, expected):
    with Keysight33600A(config_id="dummy") as awg:
        assert awg.set_burst_parameters(num_cycles=10, period=quantity(20, units.ms), phase=90, mode=mode).ok
        emulator = awg.instrument_lib
        assert emulator.burst_mode == expected
        assert emulator.burst_cycles == 10
        assert np.isclose(emulator.burst_period, 0.02)
        assert emulator.burst_phase == 90
        assert emulator.trigger_source == "IMM"
        assert emulator.burst_state


def test_set_burst_parameters_failure():
    awg = Keysight33600A(config_id="dummy")
    result = awg.set_burst_parameters(num_cycles=10, period=0.02)
    assert not result.ok
    assert result.status.startswith("Couldn't set mode to trigger.")


def test_setters():
    with Keysight33600A(config_id="dummy") as awg:
        emulator = awg.instrument_lib
        assert awg.set_voltage(1.5).ok
        assert emulator.amplitude == 1.5

        assert awg.set_frequency(quantity(2, units.MHz)).ok
        assert emulator.frequency == 2e6

        assert awg.set_output_load(50).ok
        assert emulator.output_load == 50
        assert awg.set_output_load("inf").ok
        assert emulator.output_load == "INF"
        assert not awg.set_output_load("lots").ok

        assert awg.output_on().ok
        assert emulator.output
        assert awg.output_off().ok
        assert not emulator.output


@pytest.mark.parametrize("reply", ('"SIN +1.0000000000000E+03,+2.0000000000000E+00,+0.0000000000000E+00"',
                                   "SIN +1.0000000000000E+03,+2.0000000000000E+00,+0.0000000000000E+00"))
def test_parse_signal(reply):
    signal = Keysight33600A.parse_signal(reply)
    assert signal.type == "SIN"
    assert signal.frequency == 1e3
    assert signal.amplitude == 2
    assert signal.offset == 0
    assert signal.reply == reply


def test_parse_signal_unparseable():
    with pytest.raises(ValueError):
        Keysight33600A.parse_signal("SIN 1000")
