"""Pump performance curves.

IntelliCenter reports only the commanded speed for most pumps, so flow and
power are estimated from curves calibrated against real IntelliFlo readings.
"""

from __future__ import annotations

from collections.abc import Callable

from .attributes import PUMP_TYPE_MAPPING

MIN_PUMP_RPM = 450
MAX_PUMP_RPM = 3450


def pump_kind(subtype: str | None) -> str | None:
    """Map a pump SUBTYP to its kind (VS, VSF, VF, SS, DS)."""
    if subtype is None:
        return None
    return PUMP_TYPE_MAPPING.get(subtype.upper())


def _interpolate(rpm: float, x0: float, y0: float, x1: float, y1: float) -> float:
    return y0 + (rpm - x0) * (y1 - y0) / (x1 - x0)


def _clamp(rpm: float) -> float:
    return min(rpm, MAX_PUMP_RPM)


def vs_gpm(rpm: float) -> float:
    """Estimated flow of an IntelliFlo VS at rpm."""
    if rpm < MIN_PUMP_RPM:
        return 0.0
    return max(0.0, _clamp(rpm) * 0.032 - 14.4)


def vs_watts(rpm: float) -> int:
    """Estimated power of an IntelliFlo VS at rpm (1800=225W, 3400=1483W)."""
    if rpm < MIN_PUMP_RPM:
        return 0
    rpm = _clamp(rpm)
    if rpm <= 1800:
        return round(_interpolate(rpm, 450, 30, 1800, 225))
    return round(_interpolate(rpm, 1800, 225, 3400, 1483))


def vsf_gpm(rpm: float) -> int:
    """Estimated flow of an IntelliFlo VSF at rpm (2450=55GPM, 3450=80GPM)."""
    if rpm < MIN_PUMP_RPM:
        return 0
    rpm = _clamp(rpm)
    if rpm <= 2450:
        return round(_interpolate(rpm, 450, 5, 2450, 55))
    return round(_interpolate(rpm, 2450, 55, 3450, 80))


def vsf_watts(rpm: float) -> int:
    """Estimated power of an IntelliFlo VSF at rpm (2450=820W, 3450=1982W)."""
    if rpm < MIN_PUMP_RPM:
        return 0
    rpm = _clamp(rpm)
    if rpm <= 2450:
        return round(_interpolate(rpm, 450, 50, 2450, 820))
    return round(_interpolate(rpm, 2450, 820, 3450, 1982))


def vf_gpm(rpm: float) -> float:
    """Estimated flow of a variable flow pump at rpm."""
    if rpm < MIN_PUMP_RPM:
        return 0.0
    return max(0.0, _clamp(rpm) * 0.035 - 15.75)


def vf_watts(rpm: float) -> int:
    """Estimated power of a variable flow pump at rpm."""
    if rpm < MIN_PUMP_RPM:
        return 0
    r = _clamp(rpm) / MAX_PUMP_RPM
    return round(
        -489.86724322 * r**4 + 2206.76415578 * r**3 - 482.4110795 * r**2 + 90.72416694 * r
    )


# pump kind -> (gpm curve, watts curve)
PUMP_PERFORMANCE_CURVES: dict[str, tuple[Callable[[float], float], Callable[[float], int]]] = {
    "VS": (vs_gpm, vs_watts),
    "VSF": (vsf_gpm, vsf_watts),
    "VF": (vf_gpm, vf_watts),
}


def estimate_metrics(subtype: str | None, rpm: float) -> tuple[float, int]:
    """Return (gpm, watts) for a pump of the given SUBTYP running at rpm.

    Pumps without a curve (single and dual speed) report zero.
    """
    curves = PUMP_PERFORMANCE_CURVES.get(pump_kind(subtype) or "")
    if curves is None or rpm <= 0:
        return 0.0, 0
    gpm_curve, watts_curve = curves
    return float(gpm_curve(rpm)), watts_curve(rpm)
