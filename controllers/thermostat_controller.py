# ============================================================================
#  THERMOSTAT CONTROLLER
#  --------------------
#  Bang-bang heating and cooling with two Flexstats.
#
#  Heating kicks in below SETPOINT_HEAT_C, cooling above SETPOINT_COOL_C,
#  nothing runs in between.
#
#  outputs = {
#      "HEATER": {"KNOB": 0/1, "WATTS": value},
#      "COOLER": {"KNOB": 0/1, "WATTS": value},
#  }
#
# ============================================================================

from controllers.devices import Cooler, Flexstat, Heater

DT = 1.0 # Controller update rate (seconds)
NAME = "thermostat"

SETPOINT_HEAT_C = 20.0
SETPOINT_COOL_C = 25.0


def init_controller():
    state = {
        # 1 when too cold, 0 otherwise
        "heat_stat": Flexstat(SETPOINT_HEAT_C, hot_val=0),
        # 1 when too hot, 0 otherwise
        "cool_stat": Flexstat(SETPOINT_COOL_C, hot_val=1),
        "heater": Heater(1000),
        "cooler": Cooler(1000),
    }
    return state


def step_controller(state, inputs):
    measure = inputs.get("MEASURE")
    if measure is None:
        return state, {}

    heat_knob = state["heat_stat"].update(measure)
    cool_knob = state["cool_stat"].update(measure)

    outputs = {
        "HEATER": {
            "KNOB":  heat_knob,
            "WATTS": state["heater"].update(heat_knob),
        },
        "COOLER": {
            "KNOB":  cool_knob,
            "WATTS": state["cooler"].update(cool_knob),
        },
    }
    return state, outputs
