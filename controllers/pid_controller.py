"""
Discrete-time PID controller.

Each tick the caller feeds a measurement; the controller tracks
    error       setpoint - measure
    last_error  error from the previous tick
    sum_error   gain-weighted, clamped integral accumulator
and combines
    Proportion  kp * error
    Integral    sum_error
    Derivative  kd * (error - last_error) / dt
into one clamped output. Every term has its own clamp, and sum_error is
clamped on accumulation (anti-windup) by e_range, independently of the
read-side clamp i_range.

When built with low_pass_ticks > 0 the derivative fed into output() is a
moving average of the last low_pass_ticks raw derivatives.

One controller instance must be ticked from one thread at a time.
"""

from controllers.control_helpers import ClampedRange, ConfigurationError, apply_update
from controllers.filters import MovingAverage
from controllers import tuning

HZ = 1000
TICK = 1.0 / HZ

RANGES = ("p_range", "i_range", "d_range", "o_range", "e_range")


class PIDController:

    tune = staticmethod(tuning.tune)

    def __init__(self, setpoint: float, dt: float = TICK, low_pass_ticks: int = 0):
        self.setpoint = setpoint
        self.dt = dt
        self._measure = 0.0
        self._error = 0.0
        self._last_error = 0.0
        self._sum_error = 0.0
        self._mavg = MovingAverage(low_pass_ticks) if low_pass_ticks > 0 else None

        # gain / multipliers for PID; tunables
        self.kp, self.ki, self.kd = 1.0, 1.0, 1.0

        # optional clamps for PID terms, output and the accumulator
        for name in RANGES:
            setattr(self, name, None)

    # ------------------------------------------------------------------
    # configuration
    # ------------------------------------------------------------------
    @property
    def dt(self) -> float:
        return self._dt

    @dt.setter
    def dt(self, value: float):
        if not value > 0:
            raise ConfigurationError(f"dt must be > 0, got {value}")
        self._dt = value

    def __setattr__(self, name, value):
        if name in RANGES:
            value = ClampedRange.coerce(value)
        super().__setattr__(name, value)

    def with_gains(self, kp: float = None, ki: float = None, kd: float = None):
        if kp is not None:
            self.kp = kp
        if ki is not None:
            self.ki = ki
        if kd is not None:
            self.kd = kd
        return self

    def with_ranges(self, p=None, i=None, d=None, o=None, e=None):
        """Set any of the five clamps from ClampedRange or (lo, hi) pairs."""
        for name, value in zip(RANGES, (p, i, d, o, e)):
            if value is not None:
                setattr(self, name, value)
        return self

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------
    @property
    def measure(self) -> float:
        return self._measure

    @property
    def error(self) -> float:
        return self._error

    @property
    def last_error(self) -> float:
        return self._last_error

    @property
    def sum_error(self) -> float:
        return self._sum_error

    @property
    def mavg(self):
        return self._mavg

    def set_input(self, measure: float):
        self._measure = measure
        self._last_error = self._error
        self._error = self.setpoint - measure
        self._sum_error = self.e_range.clamp(self._sum_error + self.ki * self._error * self._dt)
        if self._mavg is not None:
            self._mavg.set_input(self.derivative())

    def update(self, measure: float) -> float:
        return apply_update(self, measure)

    # ------------------------------------------------------------------
    # terms
    # ------------------------------------------------------------------
    def proportion(self) -> float:
        return self.p_range.clamp(self.kp * self._error)

    def integral(self) -> float:
        return self.i_range.clamp(self._sum_error)

    def derivative(self) -> float:
        return self.d_range.clamp(self.kd * (self._error - self._last_error) / self._dt)

    def output(self) -> float:
        drv = self._mavg.output() if self._mavg is not None else self.derivative()
        return self.o_range.clamp(self.proportion() + self.integral() + drv)

    # ------------------------------------------------------------------
    # introspection
    # ------------------------------------------------------------------
    def snapshot(self) -> dict:
        """Flat dict of the current state, for telemetry and logs."""
        return {
            "setpoint": float(self.setpoint),
            "measure": float(self._measure),
            "error": float(self._error),
            "last_error": float(self._last_error),
            "sum_error": float(self._sum_error),
            "kp": float(self.kp),
            "ki": float(self.ki),
            "kd": float(self.kd),
            "proportion": self.proportion(),
            "integral": self.integral(),
            "derivative": self.derivative(),
            "output": self.output(),
        }

    def __str__(self):
        return "\n".join([
            f"Setpoint: {self.setpoint:.3f}\tMeasure: {self._measure:.3f}",
            f"Error: {self._error:+.3f}\tLast: {self._last_error:+.3f}\tSum: {self._sum_error:+.3f}",
            f" Gain:\t{self.kp:.3f}\t{self.ki:.3f}\t{self.kd:.3f}",
            f"  PID:\t{self.proportion():+.3f}\t{self.integral():+.3f}\t{self.derivative():+.3f}"
            f"\t= {self.output():.5f}",
        ])


def new_pid(setpoint: float, dt: float = TICK, low_pass_ticks: int = 0) -> PIDController:
    return PIDController(setpoint, dt=dt, low_pass_ticks=low_pass_ticks)
