import numpy as np
import pytest

from benchkit.benchkit_types import quantity, units
from benchkit.emulators.tektronix import TektronixDPO2022B


@pytest.mark.parametrize("mode, num_averages, expected", (("average", 64, 64),
                                                          ("avg", 100, 128),
                                                          ("a", 1000, 256),
                                                          ("ave", 1, 2),
                                                          ("av", "lots", 64)))
def test_set_acquisition_mode_average(mode, num_averages, expected):
    with TektronixDPO2022B(config_id="dummy") as scope:
        result = scope.set_acquisition_mode(mode, num_averages=num_averages)
        assert result.ok
        assert result.value == expected
        assert scope.instrument_lib.acquisition_mode == "AVERAGE"
        assert scope.instrument_lib.num_averages == expected
        assert scope.instrument_lib.data_composition == "SINGULAR_YT"


def test_set_acquisition_mode_sample():
    with TektronixDPO2022B(config_id="dummy") as scope:
        scope.set_acquisition_mode("average")
        assert scope.set_acquisition_mode("sample").ok
        assert scope.instrument_lib.acquisition_mode == "SAMPLE"
        assert scope.instrument_lib.data_composition == "COMPOSITE_YT"

        result = scope.set_acquisition_mode("peak")
        assert not result.ok
        assert scope.instrument_lib.acquisition_mode == "SAMPLE"


def test_save_data():
    with TektronixDPO2022B(config_id="dummy", record_length=1000, sample_rate=1e6, signal_amplitude=0.5) as scope:
        result = scope.save_data(channel=2)
        assert result.ok
        waveform = result.value
        assert waveform.voltage.size == 1000
        assert waveform.time.size == 1000
        assert scope.instrument_lib.data_source == 2

        # 0.5 of half the (8 div * 1 V/div) span, scaled.
        assert np.isclose(np.max(np.abs(waveform.voltage)), 0.5 * 4 * TektronixDPO2022B.VOLTAGE_SCALING, rtol=1e-2)
        assert waveform.time[0] == 0
        assert np.isclose(waveform.time[-1], 1e-3)


def test_save_data_delay_mode():
    with TektronixDPO2022B(config_id="dummy") as scope:
        scope.instrument_lib.horizontal_mode = "DELAYED"
        scope.instrument_lib.delay_time = 1e-3
        waveform = scope.save_data().value
        assert np.isclose(waveform.time[0], 1e-3)
        assert np.isclose(waveform.time[-1] - waveform.time[0], 10 * scope.instrument_lib.delay_scale)


def test_save_data_partial():
    with TektronixDPO2022B(config_id="dummy", record_length=1000) as scope:
        result = scope.save_data(num_points=100, start_point=11)
        assert result.ok
        assert result.value.voltage.size == 100
        assert scope.instrument_lib.data_start == 11
        assert scope.instrument_lib.data_stop == 110

        # Ends beyond the record.
        result = scope.save_data(num_points=1000, start_point=2)
        assert not result.ok
        assert result.status.startswith("Must specify no more than 1000 points")

        result = scope.save_data(num_points="all")
        assert not result.ok


def test_capture():
    with TektronixDPO2022B(config_id="dummy") as scope:
        result = scope.capture(channel=1)
        assert result.ok
        assert result.value.voltage.size == scope.instrument_lib.record_length


def test_get_screen_data():
    with TektronixDPO2022B(config_id="dummy", record_length=1000, sample_rate=1e6) as scope:
        # Not sampling at the max rate, so the whole record is returned.
        result = scope.get_screen_data(channel=2)
        assert result.ok
        assert result.value.voltage.size == 1000
        assert scope.instrument_lib.data_source == 2

        assert not scope.get_screen_data(channel=3).ok


def test_get_screen_data_zoomed():
    with TektronixDPO2022B(config_id="dummy", record_length=1000, sample_rate=1e9) as scope:
        # Display 20% of the record, centered.
        scope.instrument_lib.horizontal_scale = 2e-8
        scope.instrument_lib.zoom_position = 50
        result = scope.get_screen_data()
        assert result.ok
        waveform = result.value
        assert 190 <= waveform.voltage.size <= 210
        assert waveform.time.size == waveform.voltage.size
        assert np.all(np.diff(waveform.time) > 0)


def test_screen_width():
    with TektronixDPO2022B(config_id="dummy") as scope:
        assert scope.set_screen_width(1e-3).ok
        assert scope.instrument_lib.received[-1] == "HORIZONTAL:SCALE 1E-4"
        assert np.isclose(scope.get_screen_width().value, 1e-3)

        assert scope.set_screen_width(quantity(5, units.us)).ok
        assert scope.instrument_lib.received[-1] == "HORIZONTAL:SCALE 5E-7"
        assert np.isclose(scope.get_screen_width().value, 5e-6)

        assert not scope.set_screen_width(2000).ok
        assert not scope.set_screen_width(1e-10).ok


def test_get_sampling_frequency():
    with TektronixDPO2022B(config_id="dummy", record_length=1000) as scope:
        scope.set_screen_width(1e-3)
        result = scope.get_sampling_frequency()
        assert result.ok
        assert np.isclose(result.value, 1e6)


def test_get_peak_to_peak():
    with TektronixDPO2022B(config_id="dummy", signal_amplitude=0.5) as scope:
        result = scope.get_peak_to_peak(channel=1)
        assert result.ok
        assert np.isclose(result.value, 4)

        # The measurement setup is only sent when it changes.
        scope.get_peak_to_peak(channel=1)
        assert scope.instrument_lib.received.count("MEASUrement:IMMed:SOUrce1 CH1") == 1
        assert scope.instrument_lib.received.count("MEASUrement:IMMed:TYPe PK2Pk") == 1

        # Invalid channels fall back to 1.
        assert scope.get_peak_to_peak(channel=3).ok
        assert scope.instrument_lib.measurement_source == 1


def test_get_peak_to_peak_wrong_type():
    with TektronixDPO2022B(config_id="dummy") as scope:
        assert scope.get_peak_to_peak().ok
        # Changed behind our back, e.g., from the front panel.
        scope.instrument_lib.measurement_type = "FREQUENCY"
        result = scope.get_peak_to_peak()
        assert not result.ok
        assert result.response == "FREQUENCY"

        # The type is re-sent next time.
        assert scope.get_peak_to_peak().ok


@pytest.mark.parametrize("value, expected", ((2.5e-6, "2.5E-6"), (1e-4, "1E-4"), (100, "1E2")))
def test_to_nr3(value, expected):
    assert TektronixDPO2022B.to_nr3(value) == expected


def test_parse_curve():
    assert np.allclose(TektronixDPO2022B.parse_curve("0.1,-0.2,0.3"), (0.1, -0.2, 0.3))
