import math
from typing import Protocol


class ControlError(Exception):
    """Base class for every error raised by the control core."""


class ConfigurationError(ControlError, ValueError):
    # Bad construction/assignment: non-positive dt, lo > hi, ...
    pass


class UnknownTuningScheme(ControlError, KeyError):
    def __init__(self, key):
        super().__init__(key)
        self.key = key

    def __str__(self):
        return f"unknown tuning scheme: {self.key!r}"


class CapabilityError(ControlError, TypeError):
    # update() called on something that can't take an input
    pass


def saturate(x: float, x_min: float, x_max: float) -> float:
    # Saturate x to [x_min, x_max]; NaN passes through untouched
    if x < x_min:
        return x_min
    if x > x_max:
        return x_max
    return x

def lowpass_filter(prev_value: float, new_value: float, alpha: float) -> float:
    # Simple low pass filter
    return prev_value + alpha * (new_value - prev_value)


class ClampedRange:
    """
    Closed interval [lo, hi] used to saturate a value.

    Either side may be unbounded (None or an infinity); clamping is then a
    no-op on that side. Bounds may be reassigned, but never so that
    lo > hi. A frozen range rejects any change.
    """

    __slots__ = ("_lo", "_hi", "_frozen")

    def __init__(self, lo: float = -math.inf, hi: float = math.inf, frozen: bool = False):
        self._frozen = False
        self._set(lo, hi)
        self._frozen = frozen

    def _set(self, lo, hi):
        if self._frozen:
            raise ConfigurationError(f"{self!r} is frozen")
        lo = -math.inf if lo is None else lo
        hi = math.inf if hi is None else hi
        if lo > hi:
            raise ConfigurationError(f"range lower bound {lo} > upper bound {hi}")
        self._lo = lo
        self._hi = hi

    @property
    def lo(self) -> float:
        return self._lo

    @lo.setter
    def lo(self, value: float):
        self._set(value, self._hi)

    @property
    def hi(self) -> float:
        return self._hi

    @hi.setter
    def hi(self, value: float):
        self._set(self._lo, value)

    @classmethod
    def coerce(cls, value):
        """
        Accept a ClampedRange, a (lo, hi) pair or None (unbounded).

        Always returns a new, unfrozen range so that no two owners share one.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return cls(value.lo, value.hi)
        try:
            lo, hi = value
        except (TypeError, ValueError):
            raise ConfigurationError(f"not a range: {value!r}") from None
        return cls(lo, hi)

    @property
    def bounded(self) -> bool:
        return not (math.isinf(self.lo) and math.isinf(self.hi))

    def clamp(self, x: float) -> float:
        return saturate(x, self.lo, self.hi)

    def __contains__(self, x):
        return self.lo <= x <= self.hi

    def __iter__(self):
        yield self.lo
        yield self.hi

    def __eq__(self, other):
        if isinstance(other, ClampedRange):
            return self.lo == other.lo and self.hi == other.hi
        return NotImplemented

    def __repr__(self):
        return f"ClampedRange({self.lo!r}, {self.hi!r})"


UNBOUNDED = ClampedRange(frozen=True)


class Updateable(Protocol):
    """
    Anything that takes a scalar input each tick and yields an output.

    set_input() may mutate internal state, output() only reads it;
    update() is set_input() followed by output().
    """

    def set_input(self, value): ...

    def output(self): ...

    def update(self, value): ...


def apply_update(processor: Updateable, value):
    """
    Feed `value` to `processor` and return its new output.

    Raises CapabilityError when the processor cannot take an input or has
    nothing to output, instead of silently doing nothing.
    """
    setter = getattr(processor, "set_input", None)
    if not callable(setter):
        raise CapabilityError(f"{type(processor).__name__} has no set_input()")
    reader = getattr(processor, "output", None)
    if not callable(reader):
        raise CapabilityError(f"{type(processor).__name__} has no output()")
    setter(value)
    return reader()
