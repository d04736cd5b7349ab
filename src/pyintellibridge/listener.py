"""Callbacks from the session to the host presentation layer.

The host implements ICSessionListener (or subclasses ICSessionListenerBase
and overrides only the hooks it cares about). Every hook is called from the
event loop; exceptions raised by a hook are logged and never propagate
back into the session.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .heater import ICHeaterState
    from .model import Body, Circuit, Pump, Sensor
    from .monitor import ICUnitConsistency
    from .registry import ICRegistration
    from .topology import ICTopology

_LOGGER = logging.getLogger(__name__)


@runtime_checkable
class ICSessionListener(Protocol):
    """Protocol for session notifications."""

    def on_registered(self, registration: ICRegistration) -> None:
        """Called when discovery finds a new device to expose."""
        ...

    def on_unregistered(self, registration: ICRegistration) -> None:
        """Called when a device disappeared from discovery."""
        ...

    def on_discovery_complete(self, topology: ICTopology) -> None:
        """Called once per discovery cycle with the new topology."""
        ...

    def on_circuit_updated(self, circuit: Circuit) -> None:
        """Called when a feature, light or body circuit changed."""
        ...

    def on_body_updated(self, body: Body) -> None:
        """Called when a body's temperatures or heater fields changed."""
        ...

    def on_heater_updated(self, state: ICHeaterState) -> None:
        """Called when the state of a heater bound to a body changed."""
        ...

    def on_sensor_updated(self, sensor: Sensor) -> None:
        """Called with a new probe reading."""
        ...

    def on_color_changed(self, circuit: Circuit, color: str | None) -> None:
        """Called when the active color of a light changed."""
        ...

    def on_pump_metrics(self, pump: Pump, rpm: float, gpm: float, watts: float) -> None:
        """Called with refreshed pump RPM, flow and power."""
        ...

    def on_temperature_unit_warning(self, result: ICUnitConsistency) -> None:
        """Called when readings suggest the configured unit is wrong."""
        ...


class ICSessionListenerBase:
    """No-op implementation of ICSessionListener to subclass."""

    def on_registered(self, registration: ICRegistration) -> None:
        """Override to expose a new device."""

    def on_unregistered(self, registration: ICRegistration) -> None:
        """Override to remove a device."""

    def on_discovery_complete(self, topology: ICTopology) -> None:
        """Override to inspect the discovered topology."""

    def on_circuit_updated(self, circuit: Circuit) -> None:
        """Override to refresh a switch."""

    def on_body_updated(self, body: Body) -> None:
        """Override to refresh a body."""

    def on_heater_updated(self, state: ICHeaterState) -> None:
        """Override to refresh a thermostat."""

    def on_sensor_updated(self, sensor: Sensor) -> None:
        """Override to refresh a temperature sensor."""

    def on_color_changed(self, circuit: Circuit, color: str | None) -> None:
        """Override to refresh a light's color."""

    def on_pump_metrics(self, pump: Pump, rpm: float, gpm: float, watts: float) -> None:
        """Override to refresh pump sensors."""

    def on_temperature_unit_warning(self, result: ICUnitConsistency) -> None:
        """Override to surface a unit mismatch."""


def notify(listener: ICSessionListener | None, hook: str, *args: Any) -> None:
    """Call listener.hook(*args), logging instead of raising on failure."""
    if listener is None:
        return
    callback = getattr(listener, hook, None)
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:  # noqa: BLE001 - Listener errors must not reach the session
        _LOGGER.exception("Listener hook %s failed", hook)
