"""
Small stateful signal processors.

MovingAverage  -- running mean of the last N inputs (ring buffer)
RateLimiter    -- follows its input, but by at most max_step per tick

Both follow the update contract from control_helpers: set_input() mutates,
output() reads, update() does one then the other.
"""

import numpy as np

from controllers.control_helpers import ConfigurationError, ClampedRange, apply_update


class MovingAverage:
    """
    Mean of the most recent `capacity` inputs.

    Slots that were never written hold 0.0, so summing the whole buffer and
    dividing by min(count, capacity) gives the mean of the real inputs only.
    """

    def __init__(self, capacity: int = 2):
        if int(capacity) < 1:
            raise ConfigurationError(f"moving average capacity must be >= 1, got {capacity}")
        self._capacity = int(capacity)
        self._buffer = np.zeros(self._capacity, dtype=float)
        self._count = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def count(self) -> int:
        """Total number of inputs ever received."""
        return self._count

    def set_input(self, value: float):
        self._buffer[self._count % self._capacity] = value
        self._count += 1

    def output(self) -> float:
        if self._count == 0:
            return 0.0
        return float(self._buffer.sum()) / min(self._count, self._capacity)

    def update(self, value: float) -> float:
        return apply_update(self, value)

    def __str__(self):
        return f"MovingAverage[{self._capacity}]\tCount: {self._count}\tOutput: {self.output():.3f}"


class RateLimiter:
    """Tracks its input while moving no more than `max_step` per tick."""

    def __init__(self, max_step: float, value: float = 0.0):
        if not max_step > 0:
            raise ConfigurationError(f"rate limiter max_step must be > 0, got {max_step}")
        self._step = ClampedRange(-max_step, max_step)
        self._value = value

    @property
    def max_step(self) -> float:
        return self._step.hi

    def set_input(self, value: float):
        self._value += self._step.clamp(value - self._value)

    def output(self) -> float:
        return self._value

    def update(self, value: float) -> float:
        return apply_update(self, value)

    def __str__(self):
        return f"RateLimiter\tStep: {self.max_step:.3f}\tValue: {self._value:.3f}"
