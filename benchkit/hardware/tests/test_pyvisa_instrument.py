import threading

import pytest

from benchkit.emulators.pyvisa_emulator import PyVisaEmulator
from benchkit.hardware.command_channel import InstrumentError
from benchkit.hardware.pyvisa_instrument import PyVisaInstrument
from benchkit.hardware.resource_registry import RESOURCE_REGISTRY
from benchkit.interfaces.Instrument import SimInstrument


class EchoEmulator(PyVisaEmulator):
    """ Replies to queries with the query upper cased, everything else is silently accepted. """
    def handle(self, message):
        if message == "NUM?":
            return "+1.5E+00"
        if message.endswith("?"):
            return message.upper()
        return None


class EchoInstrument(PyVisaInstrument):
    def initialize(self, visa_id="USB0::0x0000::0x0000::ECHO::0::INSTR"):
        self.visa_id = visa_id

    def _open(self):
        return self.open_resource()

    def _close(self):
        self.close_resource()


class Echo(SimInstrument, EchoInstrument):
    instrument_lib = EchoEmulator


def test_open_registers_resource():
    device = Echo(config_id="dummy")
    with device:
        assert device.is_open()
        assert RESOURCE_REGISTRY.get(device.visa_id) is device.instrument
    assert not device.is_open()
    assert device.visa_id not in RESOURCE_REGISTRY


def test_send_command():
    with Echo(config_id="dummy") as device:
        result = device.send_command("*RST")
        assert result.ok
        assert device.instrument_lib.received == ["*RST"]

        result = device.send_command("idn?", wait_for_response=True)
        assert result.ok
        assert result.value == "IDN?"


def test_query():
    with Echo(config_id="dummy") as device:
        assert device.query("idn?") == "IDN?"
        assert device.query_float("NUM?") == 1.5

        with pytest.raises(InstrumentError):
            device.query_float("idn?")


def test_no_reply():
    with Echo(config_id="dummy") as device:
        result = device.send_command("*RST", wait_for_response=True)
        assert not result.ok
        assert result.status.startswith("Command '*RST' timed out")
        with pytest.raises(InstrumentError):
            device.query("*RST")


def test_not_connected():
    device = Echo(config_id="dummy")
    assert not device.send_command("*RST").ok
    with pytest.raises(InstrumentError):
        device.write("*RST")


def test_one_handle_per_address():
    first = Echo(config_id="first")
    second = Echo(config_id="second")
    with first:
        with second:
            # Opening the same address closes the prior handle.
            assert second.is_open()
            assert not first.is_open()
            assert not first.send_command("*RST").ok
            assert second.send_command("*RST").ok
        assert not second.is_open()
    # Closing the displaced device is harmless.
    assert first.visa_id not in RESOURCE_REGISTRY


def test_mutex():
    first = Echo(config_id="first")
    second = Echo(config_id="second")
    assert first.get_mutex() is first.get_mutex()
    assert first.get_mutex() is not second.get_mutex()

    acquired = []

    def contend():
        acquired.append(first.get_mutex().acquire(timeout=0.05))
        if acquired[-1]:
            first.get_mutex().release()

    with first.get_mutex():
        # Re-entrant for the holding thread.
        with first.get_mutex():
            with first:
                assert first.send_command("*RST").ok

        # But exclusive across threads.
        thread = threading.Thread(target=contend)
        thread.start()
        thread.join()
        assert acquired == [False]

    thread = threading.Thread(target=contend)
    thread.start()
    thread.join()
    assert acquired == [False, True]
