import pytest

from controllers.control_helpers import ClampedRange, ConfigurationError
from controllers.filters import MovingAverage
from controllers.pid_controller import TICK, PIDController, new_pid


def test_defaults():
    pid = PIDController(1000)
    assert pid.setpoint == 1000
    assert pid.dt == TICK == pytest.approx(0.001)
    assert (pid.kp, pid.ki, pid.kd) == (1.0, 1.0, 1.0)
    assert pid.error == 0.0
    assert pid.last_error == 0.0
    assert pid.sum_error == 0.0
    assert pid.measure == 0.0
    assert pid.mavg is None
    for r in (pid.p_range, pid.i_range, pid.d_range, pid.o_range, pid.e_range):
        assert r == ClampedRange()


def test_optional_dt():
    pid = PIDController(1000, dt=0.1)
    assert pid.setpoint == 1000
    assert pid.dt == 0.1


@pytest.mark.parametrize("dt", [0, -0.01])
def test_dt_must_be_positive(dt):
    with pytest.raises(ConfigurationError):
        PIDController(1000, dt=dt)
    pid = PIDController(1000)
    with pytest.raises(ConfigurationError):
        pid.dt = dt
    assert pid.dt == TICK


def test_new_pid():
    pid = new_pid(50, dt=0.01, low_pass_ticks=3)
    assert isinstance(pid, PIDController)
    assert pid.dt == 0.01
    assert isinstance(pid.mavg, MovingAverage)
    assert pid.mavg.capacity == 3


def test_gain_settings():
    pid = PIDController(1000)
    pid.kp = 1000
    pid.ki = 1000
    pid.kd = 1000
    assert (pid.kp, pid.ki, pid.kd) == (1000, 1000, 1000)
    assert pid.with_gains(kp=2.0) is pid
    assert (pid.kp, pid.ki, pid.kd) == (2.0, 1000, 1000)


def test_range_assignment():
    pid = PIDController(1000)
    pid.p_range = (0, 1)
    assert pid.p_range == ClampedRange(0, 1)
    pid.with_ranges(o=ClampedRange(-5, 5), e=(None, 3))
    assert pid.o_range == ClampedRange(-5, 5)
    assert pid.e_range.hi == 3
    with pytest.raises(ConfigurationError):
        pid.i_range = (1, -1)


def test_range_bounds_checked_in_place():
    pid = PIDController(1000)
    pid.o_range = (0.0, 1.0)
    with pytest.raises(ConfigurationError):
        pid.o_range.hi = -5.0
    assert pid.update(0) == 1.0


def test_ranges_are_not_shared():
    shared = ClampedRange(0, 1)
    a, b = PIDController(10), PIDController(10)
    a.o_range = shared
    b.o_range = shared
    a.o_range.hi = 0.5
    assert b.o_range.hi == 1
    assert shared.hi == 1


def test_tracks_error_last_error_sum_error():
    pid = PIDController(100)

    output = pid.update(50)
    assert pid.output() == output
    assert pid.measure == 50
    assert pid.error == pytest.approx(50.0)
    assert pid.last_error == 0.0
    assert pid.sum_error == pytest.approx(50.0 * pid.dt)

    output = pid.update(75)
    assert pid.output() == output
    assert pid.measure == 75
    assert pid.error == pytest.approx(25.0)
    assert pid.last_error == pytest.approx(50.0)
    assert pid.sum_error == pytest.approx(75.0 * pid.dt)


def test_no_reset_on_zero_crossing():
    pid = PIDController(100)
    pid.update(50)
    pid.update(75)
    pid.update(125)
    assert pid.error == -25.0
    # accumulator keeps its history instead of snapping to the error
    assert pid.sum_error == pytest.approx(50.0 * pid.dt)


def test_proportion():
    pid = PIDController(1000)
    pid.kp = 1.0
    pid.update(0)
    assert pid.proportion() == 1000.0
    pid.update(1)
    assert pid.proportion() == 999.0
    pid.update(1001)
    assert pid.proportion() == -1.0


def test_integral():
    pid = PIDController(1000)
    pid.ki = 1.0

    pid.update(0)  # error 1000, dt 0.001
    assert pid.integral() == 1.0

    pid.update(999)  # error 1
    assert pid.integral() == pytest.approx(1.001)

    pid.update(1100)  # error -100
    assert pid.integral() == pytest.approx(0.901)


def test_derivative():
    pid = PIDController(1000)
    pid.kp = 1.0
    steps = [
        # measure, error, last_error
        (0, 1000, 0),
        (500, 500, 1000),
        (999, 1, 500),
        (1001, -1, 1),
        (1100, -100, -1),
        (900, 100, -100),
    ]
    for measure, error, last_error in steps:
        pid.update(measure)
        assert pid.error == error
        assert pid.last_error == last_error
        assert pid.derivative() == pytest.approx((error - last_error) / pid.dt)


def test_first_tick_derivative_transient():
    pid = PIDController(20, dt=0.5)
    pid.kd = 2.0
    pid.update(20)
    # error 0, last_error 0: nothing yet
    assert pid.derivative() == 0.0
    pid = PIDController(20, dt=0.5)
    pid.kd = 2.0
    pid.update(0)
    assert pid.derivative() == pytest.approx(2.0 * 20 / 0.5)


def test_clamps_proportion():
    pid = PIDController(1000)
    pid.p_range = (0, 1)
    pid.update(500)
    assert pid.proportion() == 1.0
    pid.update(1500)
    assert pid.proportion() == 0.0


def test_clamps_integral():
    pid = PIDController(1000)
    pid.i_range = (-1.0, 1.0)
    pid.setpoint = 10_000
    pid.update(500)
    assert pid.integral() == 1.0
    # the raw accumulator is not limited by i_range
    assert pid.sum_error == pytest.approx(9.5)
    pid.update(10_001)
    pid.update(20_000)
    pid.update(30_000)
    assert pid.integral() == -1.0


def test_clamps_derivative():
    pid = PIDController(1000)
    pid.d_range = (-1.0, 0.0)
    pid.update(0)
    pid.update(10)
    assert pid.derivative() == -1.0
    pid.update(990)
    assert pid.derivative() == -1.0
    pid.update(1000)
    pid.update(990)
    assert pid.derivative() == 0.0


def test_clamps_output():
    pid = PIDController(1000)
    pid.o_range = (0.0, 1.0)
    pid.update(0)
    assert pid.output() == 1.0
    pid.update(2000)
    assert pid.output() == 0.0
    for measure in (0, 5000, -5000, 1000, 999.5, 1e9):
        out = pid.update(measure)
        assert 0.0 <= out <= 1.0


def test_clamps_sum_error():
    pid = PIDController(1000)
    pid.e_range = (999, 1000)

    pid.update(500)
    assert pid.error == 500
    assert pid.sum_error == 999
    pid.update(1000)
    assert pid.sum_error == 999
    pid.update(-1000)
    assert pid.sum_error == 1000


def test_sum_error_pinned_regardless_of_gain():
    pid = PIDController(1000, dt=0.5)
    pid.with_gains(ki=250.0).with_ranges(e=(999, 1000))
    for measure in (-1e6, 1e6, -1e6, 0, 1e6):
        pid.update(measure)
        assert 999 <= pid.sum_error <= 1000


def test_low_pass_derivative():
    pid = PIDController(1000, low_pass_ticks=2)
    pid.kp = 1.0

    pid.update(0)
    assert pid.derivative() == pytest.approx(1000 / pid.dt)
    assert pid.mavg.output() == pytest.approx(1000 / pid.dt)

    pid.update(500)
    # raw derivative is unaffected by the filter
    assert pid.derivative() == pytest.approx(-500 / pid.dt)
    assert pid.mavg.output() == pytest.approx(250_000)
    assert pid.output() == pytest.approx(500 + 1.5 + 250_000)

    pid.update(999)
    assert pid.derivative() == pytest.approx(-499 / pid.dt)
    assert pid.mavg.output() == pytest.approx(-499_500)


def test_low_pass_sees_clamped_derivative():
    pid = PIDController(1000, low_pass_ticks=4)
    pid.d_range = (-10, 10)
    pid.update(0)
    pid.update(2000)
    assert pid.mavg.output() == pytest.approx(0.0)


def test_terms_are_side_effect_free():
    pid = PIDController(10)
    pid.update(3)
    before = pid.snapshot()
    for _ in range(3):
        pid.proportion()
        pid.integral()
        pid.derivative()
        pid.output()
    assert pid.snapshot() == before


def test_snapshot_and_str():
    pid = PIDController(10)
    pid.update(4)
    snap = pid.snapshot()
    assert snap["error"] == 6.0
    assert snap["output"] == pytest.approx(pid.output())
    assert set(snap) >= {"setpoint", "measure", "sum_error", "proportion", "integral", "derivative"}
    text = str(pid)
    assert "Setpoint: 10.000" in text
    assert "PID:" in text


def test_tune_is_available_on_the_class():
    gains = PIDController.tune("PID", 5, 0.01)
    assert gains["kp"] == pytest.approx(3.0)
