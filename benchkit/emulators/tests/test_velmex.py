import pytest

from benchkit.benchkit_types import Axis, Direction, quantity, units
from benchkit.emulators.velmex import VelmexVXM
from benchkit.hardware.command_channel import UnparseableResponseError

# Keep polling snappy.
timing = dict(retry_interval=0.01, command_timeout=0.5)


def test_positional_args():
    with pytest.raises(TypeError):
        VelmexVXM("dummy")


def test_open_close():
    stage = VelmexVXM(config_id="dummy", **timing)
    assert not stage.is_open()
    with stage:
        assert stage.is_open()
        assert stage.instrument_lib.received[0] == "V"
        # Nested contexts don't reopen.
        with stage:
            assert stage.is_open()
        assert stage.is_open()
    assert not stage.is_open()


def test_check_ready():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        result = stage.check_ready()
        assert result.ok
        assert result.response == "R"


@pytest.mark.parametrize("direction, distance, axis, steps", (("left", 2, Axis.X, 800),
                                                              ("right", 2, Axis.X, -800),
                                                              (Direction.FORWARD, 0.5, Axis.Y, 200),
                                                              ("back", 0.5, Axis.Y, -200),
                                                              ("down", 1, Axis.Z, 400),
                                                              ("up", 1, Axis.Z, -400),
                                                              (3, -1, Axis.Z, -400),
                                                              ("left", quantity(1, units.cm), Axis.X, 4000)))
def test_move(direction, distance, axis, steps):
    with VelmexVXM(config_id="dummy", **timing) as stage:
        result = stage.move(direction, distance, speed=1)
        assert result.ok
        assert result.value == (axis, steps / VelmexVXM.STEPS_PER_MM)
        assert stage.instrument_lib.position[axis] == steps
        assert stage.instrument_lib.speed[axis] == VelmexVXM.STEPS_PER_MM
        # The relative move is sent exactly once.
        index_command = f"K,F,C,G,I{axis.value}M{steps},R"
        assert stage.instrument_lib.received.count(index_command) == 1


def test_move_clipped():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        result = stage.move("left", 20, speed=1)
        assert result.ok
        assert result.value == (Axis.X, VelmexVXM.MAX_TRAVEL_DISTANCE)
        assert stage.instrument_lib.position[Axis.X] == VelmexVXM.MAX_TRAVEL_DISTANCE * VelmexVXM.STEPS_PER_MM


@pytest.mark.parametrize("speed, steps_per_second", ((1, 400), (100, 6000), (1e-4, 1), (quantity(0.5, units.mm / units.s), 200)))
def test_move_speed(speed, steps_per_second):
    with VelmexVXM(config_id="dummy", **timing) as stage:
        assert stage.move("up", 0.1, speed=speed).ok
        assert stage.instrument_lib.speed[Axis.Z] == steps_per_second


def test_move_failures():
    stage = VelmexVXM(config_id="dummy", **timing)
    assert stage.move("left", 1, speed=1).status == "Must connect device first."

    with stage:
        assert stage.move("sideways", 1, speed=1).status == "Unknown motor direction."
        assert stage.move(4, 1, speed=1).status == "Unknown motor direction."
        assert not stage.move("left", "far", speed=1).ok
        assert not stage.move("left", 1, speed=0).ok
        assert not stage.move("left", 1, speed=1, wait="long").ok
        assert stage.instrument_lib.position == {axis: 0 for axis in Axis}


def test_get_current_position():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        result = stage.get_current_position()
        assert result.ok
        assert result.value == (0, 0, 0)

        stage.move("left", 2, speed=1)
        stage.move("back", 1, speed=1)
        stage.move("down", 0.25, speed=1)
        result = stage.get_current_position()
        assert result.ok
        assert result.value == (2, -1, 0.25)


def test_get_current_position_split_reply():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        stage.move("left", 1, speed=1)
        stage.move("forward", 1, speed=1)
        stage.move("down", 1, speed=1)

        # Only "+000" of "+0000400" has arrived by the first read.
        stage.instrument_lib.split_replies = {"X", "Y", "Z"}
        result = stage.get_current_position()
        assert result.ok
        assert result.value == (1, 1, 1)
        assert not stage.instrument_lib.split_replies


def test_go_to_position_split_reply():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        stage.move("left", 1, speed=1)
        stage.instrument_lib.split_replies = {"X", "Y", "Z"}
        assert stage.go_to_position(2, 0, 0).ok
        assert stage.instrument_lib.position[Axis.X] == 800


def test_zero_position():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        stage.move("left", 2, speed=1)
        assert stage.set_zero_position().ok
        assert stage.get_current_position().value == (0, 0, 0)

        stage.move("forward", 3, speed=1)
        assert stage.get_current_position().value == (0, 3, 0)
        assert stage.go_to_zero_position().ok
        assert stage.get_current_position().value == (0, 0, 0)


def test_go_to_position():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        stage.move("left", 1, speed=1)
        result = stage.go_to_position(2, -1, 0.5)
        assert result.ok
        assert stage.get_current_position().value == (2, -1, 0.5)
        assert stage.instrument_lib.position == {Axis.X: 800, Axis.Y: -400, Axis.Z: 200}


def test_kill():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        assert stage.kill().ok
        assert stage.instrument_lib.received[-1] == "F,C,G,K"


def test_send_velmex_command():
    with VelmexVXM(config_id="dummy", **timing) as stage:
        result = stage.send_velmex_command("F,C,IA1M400,R")
        assert result.ok
        assert result.response == "^"
        assert stage.instrument_lib.position[Axis.X] == 400


@pytest.mark.parametrize("response, steps", (("+0000400", 400),
                                            ("-0000400", -400),
                                            ("^+0000400+0000400", 400),
                                            ("+0000000", 0)))
def test_parse_position(response, steps):
    stage = VelmexVXM(config_id="dummy", **timing)
    assert stage.parse_position(response) == steps


@pytest.mark.parametrize("response", ("+00004", "+400", "+0000400-0000400", ""))
def test_parse_position_unparseable(response):
    stage = VelmexVXM(config_id="dummy", **timing)
    with pytest.raises(UnparseableResponseError):
        stage.parse_position(response)


def test_unresponsive():
    stage = VelmexVXM(config_id="dummy", responsive=False, retry_interval=0.01, command_timeout=0.05)
    with stage:
        # Still opens, though it warns.
        assert stage.is_open()

        result = stage.get_current_position()
        assert not result.ok
        assert result.status.startswith("Command timed out trying to get position of motor #1.")

        result = stage.go_to_position(1, 1, 1)
        assert not result.ok

        result = stage.send_velmex_command("F,C,IA1M400,R")
        assert not result.ok
        assert "Velmex said: ''" in result.status
