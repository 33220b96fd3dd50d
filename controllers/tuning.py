"""
Ziegler-Nichols tuning table.

Given the ultimate gain ku (the P-only gain at which the loop oscillates
steadily) and the oscillation period tu, recommend PID gains.
https://en.wikipedia.org/wiki/Ziegler%E2%80%93Nichols_method
"""

from fractions import Fraction as F

from controllers.control_helpers import ConfigurationError, UnknownTuningScheme

FIELDS = ("kp", "ti", "td", "ki", "kd")

ZN = {
    #           Kp       Ti       Td        Ki        Kd
    #   scale:  Ku       Tu       Tu       Ku/Tu     Ku*Tu
    "P":    (F(1, 2),  None,    None,     None,     None),
    "PI":   (F(9, 20), F(4, 5), None,     F(27, 50), None),
    "PD":   (F(4, 5),  None,    F(1, 8),  None,     F(1, 10)),
    "PID":  (F(3, 5),  F(1, 2), F(1, 8),  F(6, 5),  F(3, 40)),
    "PIR":  (F(7, 10), F(2, 5), F(3, 20), F(7, 4),  F(21, 200)),
    # less overshoot than standard PID
    "some": (F(1, 3),  F(1, 2), F(1, 3),  F(2, 3),  F(1, 11)),
    "none": (F(1, 5),  F(1, 2), F(1, 3),  F(2, 5),  F(1, 15)),
}

_BY_KEY = {name.lower(): row for name, row in ZN.items()}


def tune(type: str, ku: float, tu: float) -> dict:
    """
    Recommend gains for controller `type` ("P", "PI", "PD", "PID", "PIR",
    "some" or "none"; any casing).

    Returns a dict holding only the fields the scheme defines, out of
    kp, ti, td, ki, kd. Raises UnknownTuningScheme for anything else.
    tu must be > 0 unless the scheme only defines kp.
    """
    row = _BY_KEY.get(type.lower()) if isinstance(type, str) else None
    if row is None:
        raise UnknownTuningScheme(type)
    if any(row[1:]) and not tu > 0:
        raise ConfigurationError(f"oscillation period must be > 0, got {tu}")

    scale = {
        "kp": lambda: ku,
        "ti": lambda: tu,
        "td": lambda: tu,
        "ki": lambda: ku / tu,
        "kd": lambda: ku * tu,
    }
    return {
        field: float(coeff * scale[field]())
        for field, coeff in zip(FIELDS, row)
        if coeff is not None
    }


def apply_tuning(pid, gains: dict):
    """Copy kp/ki/kd from a tune() result onto a controller; returns it."""
    return pid.with_gains(**{k: gains[k] for k in ("kp", "ki", "kd") if k in gains})
