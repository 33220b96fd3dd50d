"""
Simple collaborators for a control loop.

A Device (e.g. heater) turns a control knob into an effect; a Controller
(e.g. thermostat) turns a measurement into a knob setting. The caller wires
them together, for example:

    heater, stat = Heater(1000), Thermostat(20)
    watts = heater.update(1 if stat.update(temp) else 0)
"""

from controllers.control_helpers import ConfigurationError, apply_update


class Device:
    """Has a control knob; by default outputs the knob setting."""

    def __init__(self):
        self.knob = 0.0

    def set_input(self, value):
        self.knob = float(value)

    def output(self):
        return self.knob

    def update(self, value):
        return apply_update(self, value)

    def __str__(self):
        return f"Knob: {self.knob:.3f}\tOutput: {self.output():.3f}"


class Heater(Device):
    # electricity to thermal output
    EFFICIENCY = 0.999

    def __init__(self, watts: float, threshold: float = 0):
        super().__init__()
        self.watts = watts
        self.threshold = threshold

    def output(self):
        # all or nothing
        return self.watts * self.EFFICIENCY if self.knob > self.threshold else 0

    def __str__(self):
        return f"Power: {self.watts:.0f} W\tKnob: {self.knob:.1f}\tThermal: {self.output():.1f} W"


class Cooler(Heater):
    EFFICIENCY = 0.35


class Controller:
    """Has a setpoint; by default outputs setpoint - measure."""

    def __init__(self, setpoint: float):
        self.setpoint = setpoint
        self.measure = 0.0

    def set_input(self, value):
        self.measure = float(value)

    def output(self):
        return self.setpoint - self.measure

    def update(self, value):
        return apply_update(self, value)

    def __str__(self):
        return f"Setpoint: {self.setpoint:.3f}\tMeasure: {self.measure:.3f}"


class Thermostat(Controller):
    # True when too cold (measure below setpoint); drives a Heater or a Cooler
    def output(self):
        return self.setpoint - self.measure > 0


def opposite(hot_val):
    """The 'too cold' value matching a 'too hot' value."""
    if isinstance(hot_val, bool):
        return not hot_val
    if isinstance(hot_val, (int, float)):
        if hot_val in (0, 1):
            return 1 if hot_val == 0 else 0
        return 0
    if hot_val in ("on", "off"):
        return "off" if hot_val == "on" else "on"
    raise ConfigurationError(f"{hot_val!r} not recognized")


class Flexstat(Thermostat):
    """A Thermostat whose two outputs are configurable."""

    def __init__(self, setpoint: float, hot_val=False, cold_val=None):
        super().__init__(setpoint)
        self.hot_val = hot_val
        self.cold_val = opposite(hot_val) if cold_val is None else cold_val

    def output(self):
        return self.cold_val if super().output() else self.hot_val
