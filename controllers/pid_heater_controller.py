# ============================================================================
#  PID HEATER CONTROLLER
#  --------------------
#  Holds a temperature with a PID controller driving a heater.
#
#  Controllers define:
#       - DT:     update period (seconds)
#       - NAME:   controller name displayed in telemetry
#       - init_controller():   returns initial internal state dict
#       - step_controller():   runs one control step
#
#  The runner feeds controllers with:
#
#       inputs = {"MEASURE": value}
#
#  and expects them to return:
#
#       outputs = {
#           "HEATER": {
#               "KNOB":  value,
#               "WATTS": value,
#           }
#       }
#
#  AND the internal state must be returned so it can be preserved
#  between control steps.
#
# ============================================================================

from controllers.control_helpers import lowpass_filter
from controllers.devices import Heater
from controllers.filters import RateLimiter
from controllers.pid_controller import PIDController
from controllers.tuning import apply_tuning

DT = 0.1 # Controller update rate (seconds)
NAME = "pid_heater"

SETPOINT_C = 21.0
MEASURE_ALPHA = 0.3 # lowpass on the raw measurement

# Ziegler-Nichols experiment results for the room
KU = 0.8
TU = 120.0


def init_controller():
    """
    Initialize internal controller state here.
    This function is called once whenever:
        - system starts,
        - controller is reset.
    """
    pid = PIDController(SETPOINT_C, dt=DT, low_pass_ticks=5)
    # PI scheme: no derivative gain
    pid.kd = 0.0
    apply_tuning(pid, PIDController.tune("PI", KU, TU))
    pid.with_ranges(o=(0.0, 1.0), e=(-0.5, 0.5))

    state = {
        "measure_filtered": None,
        "pid": pid,
        # knob may move at most 5% per tick
        "limiter": RateLimiter(0.05),
        "heater": Heater(1500, threshold=0.5),
    }

    return state


def step_controller(state, inputs):
    """
    Perform **one control step**.

    Parameters
    ----------
    state : dict
        Controller-internal state (persistent between steps)

    inputs : dict
        {"MEASURE": temperature in degrees C}

    Returns
    -------
    state : dict
        Updated internal state

    outputs : dict
        {"HEATER": {"KNOB": 0..1, "WATTS": thermal output}}
        If no measurement is available:
            return state, {}
    """
    measure = inputs.get("MEASURE")
    if measure is None:
        return state, {}

    if state["measure_filtered"] is None:
        state["measure_filtered"] = measure
    else:
        state["measure_filtered"] = lowpass_filter(state["measure_filtered"], measure, MEASURE_ALPHA)

    control = state["pid"].update(state["measure_filtered"])
    knob = state["limiter"].update(control)
    watts = state["heater"].update(knob)

    outputs = {
        "HEATER": {
            "KNOB":  knob,
            "WATTS": watts,
        }
    }
    return state, outputs
