import numpy as np
from picosdk.errors import CannotFindPicoSDKError
import pytest

from benchkit.emulators.picotech import PicoScope5242B
import benchkit.hardware.picotech.PicoScope5242B


def test_missing_library(monkeypatch):
    hardware_class = benchkit.hardware.picotech.PicoScope5242B.PicoScope5242B
    monkeypatch.setattr(hardware_class, "instrument_lib", CannotFindPicoSDKError("PicoSDK (ps5000a) not found"))
    with pytest.raises(CannotFindPicoSDKError):
        hardware_class(config_id="dummy")


def test_open():
    with PicoScope5242B(config_id="dummy", voltage_range=2) as scope:
        emulator = scope.instrument_lib
        assert emulator.handle == 1
        assert scope.max_adc_value == emulator.MAX_ADC_VALUE
        assert all(channel["range"] == emulator.PS5000A_RANGE["PS5000A_2V"] for channel in emulator.channels.values())
        assert all(channel["coupling"] == emulator.PS5000A_COUPLING["PS5000A_DC"] for channel in emulator.channels.values())
        assert emulator.resolution == emulator.PS5000A_DEVICE_RESOLUTION["PS5000A_DR_12BIT"]
        assert scope.sample_rate >= PicoScope5242B.DEFAULT_SAMPLE_RATE
        assert emulator.trigger["source"] == emulator.PS5000A_CHANNEL["PS5000A_CHANNEL_B"]
        assert emulator.trigger["direction"] == emulator.PS5000A_THRESHOLD_DIRECTION["PS5000A_RISING"]
        assert emulator.trigger["threshold"] == round(emulator.MAX_ADC_VALUE / 2)
        assert scope.pre_trigger_samples == round(PicoScope5242B.DEFAULT_PRE_TRIGGER_TIME * scope.sample_rate)
        assert scope.post_trigger_samples == round(PicoScope5242B.DEFAULT_POST_TRIGGER_TIME * scope.sample_rate)
    assert emulator.handle is None


def test_invalid_voltage_range():
    with pytest.raises(ValueError):
        PicoScope5242B(config_id="dummy", voltage_range=3)


@pytest.mark.parametrize("volts, expected", ((0.01, "PS5000A_10MV"), (0.5, "PS5000A_500MV"), (20, "PS5000A_20V")))
def test_range_name(volts, expected):
    assert PicoScope5242B.range_name(volts) == expected


def test_set_sample_rate():
    with PicoScope5242B(config_id="dummy") as scope:
        result = scope.set_sample_rate(1e6, resolution=8)
        assert result.ok
        assert 1e6 <= result.value < 1.1e6
        assert scope.resolution == 8
        assert scope.instrument_lib.resolution == scope.instrument_lib.PS5000A_DEVICE_RESOLUTION["PS5000A_DR_8BIT"]
        # The window is kept in time.
        assert scope.pre_trigger_samples == round(PicoScope5242B.DEFAULT_PRE_TRIGGER_TIME * result.value)

        # Faster than the fastest timebase.
        result = scope.set_sample_rate(1e9)
        assert not result.ok
        assert result.status.startswith("No valid timebase")


def test_set_trigger():
    with PicoScope5242B(config_id="dummy", voltage_range=2) as scope:
        assert scope.set_trigger(channel=1, threshold=0.5).ok
        assert scope.instrument_lib.trigger["source"] == scope.instrument_lib.PS5000A_CHANNEL["PS5000A_CHANNEL_A"]
        assert scope.instrument_lib.trigger["threshold"] == round(scope.max_adc_value / 4)

        # Beyond the input range, so clipped.
        assert scope.set_trigger(channel=1, threshold=3).ok
        assert scope.instrument_lib.trigger["threshold"] == scope.max_adc_value

        assert not scope.set_trigger(channel=1, threshold=6).ok
        assert not scope.set_trigger(channel=3, threshold=1).ok


def test_set_window():
    with PicoScope5242B(config_id="dummy") as scope:
        result = scope.set_window(10e-6, 100e-6)
        assert result.ok
        assert result.value == scope.pre_trigger_samples + scope.post_trigger_samples
        assert not scope.set_window(-1e-6, 100e-6).ok


def test_not_connected():
    scope = PicoScope5242B(config_id="dummy")
    assert scope.capture_block().status == "Must connect device first."
    assert scope.set_trigger().status == "Must connect device first."
    assert scope.send_command("ps5000aStop", None).status == "Must connect device first."


def test_capture_block():
    amplitude = 0.5
    with PicoScope5242B(config_id="dummy", voltage_range=2, signal_amplitude=amplitude) as scope:
        result = scope.capture_block(channels=(1, 2))
        assert result.ok
        waveform = result.value
        n_samples = scope.pre_trigger_samples + scope.post_trigger_samples
        assert waveform.time.size == n_samples
        assert set(waveform.voltage) == {1, 2}
        for voltage in waveform.voltage.values():
            assert voltage.size == n_samples
            assert np.isclose(np.max(np.abs(voltage)), amplitude, rtol=1e-2)
        assert np.isclose(waveform.time[1] - waveform.time[0], 1 / scope.sample_rate)

        assert not scope.capture_block(channels=(3,)).ok


def test_capture_and_spectrum():
    signal_frequency = 100e3
    with PicoScope5242B(config_id="dummy", signal_frequency=signal_frequency) as scope:
        result = scope.capture(channel=2)
        assert result.ok
        waveform = result.value
        assert isinstance(waveform.voltage, np.ndarray)

        spectrum = PicoScope5242B.get_spectrum(waveform)
        assert spectrum.frequency.size == spectrum.level.size
        resolution = spectrum.frequency[1]
        peak = spectrum.frequency[np.argmax(spectrum.level[1:]) + 1]
        assert abs(peak - signal_frequency) <= 2 * resolution


def test_send_command():
    with PicoScope5242B(config_id="dummy") as scope:
        assert scope.send_command("ps5000aStop", scope.handle).ok
        assert scope.instrument_lib.block is None

        # Non zero PICO_STATUS.
        result = scope.send_command("ps5000aGetTimebase2", scope.handle, 0, 0, None, None, 0)
        assert not result.ok
        assert "ps5000aGetTimebase2 failed" in result.status
