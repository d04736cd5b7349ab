"""Route inbound status changes to the entity they target.

Every NotifyList / WriteParamList entry names an object and carries the
parameters that changed. Resolution is attempted in priority order and
the first match wins:

1. a known pump-circuit
2. a registered circuit, body or sensor
3. an unknown object carrying SPEED and SELECT (a standalone pump setting)
4. anything else is logged for diagnostics and otherwise ignored

Pump-related updates cascade into a refresh of the pump metrics (RPM, GPM,
WATTS) reported to the host.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any

from .attributes import (
    ACT_ATTR,
    CIRCUIT_ATTR,
    COLOR_LIGHT_SUBTYPES,
    FEATR_ATTR,
    NO_COLOR,
    OBJNAM_KEY,
    OBJTYP_ATTR,
    PARAMS_KEY,
    PROBE_ATTR,
    SELECT_ATTR,
    SNAME_ATTR,
    SPEED_ATTR,
    SPEED_TYPE_GPM,
    SPEED_TYPE_RPM,
    SUBTYP_ATTR,
    USE_ATTR,
)
from .listener import notify
from .model import (
    Body,
    Circuit,
    Pump,
    PumpCircuit,
    Sensor,
    apply_body_update,
    apply_circuit_update,
    apply_pump_circuit_update,
    apply_pump_update,
    to_int,
    to_number,
)
from .pumps import estimate_metrics

if TYPE_CHECKING:
    from .heater import ICHeaterState
    from .listener import ICSessionListener
    from .model import ICEntityStore
    from .registry import ICRegistry

_LOGGER = logging.getLogger(__name__)

# Standalone pump-circuit ids look like p0101: pump 01, setting 01
STANDALONE_PUMP_CIRCUIT_PATTERN = re.compile(r"^p(\d{2})(\d{2})$")
STANDALONE_PUMP_PREFIX = "PMP"
UNKNOWN_CIRCUIT = "unknown"


class RouteResult(Enum):
    """Which handler consumed a status change."""

    SKIPPED = "skipped"
    PUMP_CIRCUIT = "pump_circuit"
    CIRCUIT = "circuit"
    SENSOR = "sensor"
    UNHANDLED_TYPE = "unhandled_type"
    STANDALONE_PUMP = "standalone_pump"
    UNREGISTERED = "unregistered"


class ICDispatchRouter:
    """Apply status changes to the entity store and notify the listener.

    Args:
        store: The entity arena.
        registry: Registrations exposed to the host.
        listener: Receives the per-entity notifications.
        collect_reading: Receives every body/sensor temperature reading.
    """

    def __init__(
        self,
        store: ICEntityStore,
        registry: ICRegistry,
        listener: ICSessionListener | None = None,
        collect_reading: Callable[[float | None], Any] | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._listener = listener
        self._collect_reading = collect_reading
        self.active_colors: dict[str, str] = {}

    # -----------------------------------------------------------------------
    # entry point

    def route(self, change: Mapping[str, Any]) -> RouteResult:
        """Route one status change, returning the handler that consumed it."""
        objnam = change.get(OBJNAM_KEY)
        params = change.get(PARAMS_KEY)
        if not objnam or not isinstance(params, Mapping):
            if objnam:
                _LOGGER.warning("Status change for %s has no params, skipping", objnam)
            return RouteResult.SKIPPED

        pump_circuit = self._store.pump_circuit(objnam)
        if pump_circuit is not None:
            self._update_pump_circuit(pump_circuit, params)
            return RouteResult.PUMP_CIRCUIT

        if objnam in self._registry:
            return self._update_registered(objnam, params)

        if SPEED_ATTR in params and SELECT_ATTR in params:
            self._update_standalone_pump(objnam, params)
            return RouteResult.STANDALONE_PUMP

        _LOGGER.warning("Unregistered object %s changed: %s", objnam, dict(params))
        _LOGGER.info(
            "Unregistered object %s: OBJTYP=%s SUBTYP=%s SNAME=%s FEATR=%s",
            objnam,
            params.get(OBJTYP_ATTR),
            params.get(SUBTYP_ATTR),
            params.get(SNAME_ATTR),
            params.get(FEATR_ATTR),
        )
        return RouteResult.UNREGISTERED

    # -----------------------------------------------------------------------
    # pump circuits

    def _update_pump_circuit(self, pump_circuit: PumpCircuit, params: Mapping[str, Any]) -> None:
        apply_pump_circuit_update(pump_circuit, params)
        pump = self._store.pump(pump_circuit.pump)
        if pump is None:
            _LOGGER.debug("Pump circuit %s has no pump", pump_circuit.id)
            return
        apply_pump_update(pump, params)
        self.refresh_pump_metrics(pump)

    def _update_standalone_pump(self, objnam: str, params: Mapping[str, Any]) -> None:
        speed = to_int(params.get(SPEED_ATTR)) or 0
        speed_type = params.get(SELECT_ATTR)
        pump = self._find_standalone_pump(objnam, speed, speed_type)
        if pump is None:
            _LOGGER.debug("No pump found for standalone pump setting %s", objnam)
            return

        circuit_id = params.get(CIRCUIT_ATTR) or UNKNOWN_CIRCUIT
        self._store.active_pump_circuits[objnam] = PumpCircuit(
            id=objnam,
            pump=pump.id,
            circuit_id=circuit_id,
            speed=speed,
            speed_type=speed_type,
        )
        for pump_circuit in pump.circuits:
            if pump_circuit.id == objnam:
                pump_circuit.speed = speed
        _LOGGER.debug("Standalone pump %s: %s set to %d %s", pump.id, objnam, speed, speed_type)
        self.refresh_pump_metrics(pump)

    def _find_standalone_pump(self, objnam: str, speed: int, speed_type: Any) -> Pump | None:
        pump = self._store.pump_for_pump_circuit(objnam)
        if pump is not None:
            return pump
        match = STANDALONE_PUMP_CIRCUIT_PATTERN.match(objnam)
        if match and speed_type == SPEED_TYPE_RPM and speed:
            return self._store.pump(f"{STANDALONE_PUMP_PREFIX}{match.group(1)}")
        return None

    def highest_active_rpm(self, pump: Pump) -> float | None:
        """Return the highest RPM among the pump's circuits that are ON."""
        highest: float | None = None
        for pump_circuit in pump.circuits:
            rpm = pump_circuit.rpm
            if not rpm and pump_circuit.speed_type != SPEED_TYPE_GPM:
                rpm = pump_circuit.speed
            if not rpm or rpm <= 0:
                continue
            if self._store.is_circuit_on(pump_circuit.circuit_id) and (
                highest is None or rpm > highest
            ):
                highest = rpm
        return highest

    def refresh_pump_metrics(self, pump: Pump) -> None:
        """Recompute and report a pump's RPM, GPM and WATTS."""
        rpm = self.highest_active_rpm(pump)
        if rpm is None:
            gpm: float = 0.0
            watts: float = 0
            rpm = 0.0
        else:
            gpm, watts = estimate_metrics(pump.type, rpm)
        pump.rpm, pump.gpm, pump.watts = rpm, gpm, watts
        _LOGGER.debug("Pump %s: %.0f RPM, %.1f GPM, %d W", pump.id, rpm, gpm, watts)
        notify(self._listener, "on_pump_metrics", pump, rpm, gpm, watts)

    def refresh_all_pumps(self) -> None:
        """Refresh the metrics of every pump."""
        for pump in self._store.pumps():
            self.refresh_pump_metrics(pump)

    # -----------------------------------------------------------------------
    # registered circuits and sensors

    def _update_registered(self, objnam: str, params: Mapping[str, Any]) -> RouteResult:
        entity = self._store.get(objnam)
        if isinstance(entity, Circuit) and not isinstance(entity, Pump):
            self.update_circuit(entity, params)
            return RouteResult.CIRCUIT
        if isinstance(entity, Sensor):
            self.update_sensor(entity, params)
            return RouteResult.SENSOR
        _LOGGER.warning(
            "Unhandled object type for %s: %s",
            objnam,
            type(entity).__name__ if entity is not None else "not discovered",
        )
        return RouteResult.UNHANDLED_TYPE

    def update_circuit(self, circuit: Circuit, params: Mapping[str, Any]) -> None:
        """Apply a status change to a feature, light or body."""
        apply_circuit_update(circuit, params)

        if isinstance(circuit, Body):
            apply_body_update(circuit, params)
            if circuit.temperature is not None and self._collect_reading:
                self._collect_reading(circuit.temperature)
            notify(self._listener, "on_body_updated", circuit)
            self._refresh_heaters(circuit)

        if circuit.type in COLOR_LIGHT_SUBTYPES:
            self._update_color(circuit, params)

        notify(self._listener, "on_circuit_updated", circuit)

        circuit_id = circuit.id
        if isinstance(circuit, Body) and circuit.circuit:
            circuit_id = circuit.circuit
        pump = self._store.pump_for_circuit(circuit_id)
        if pump is not None:
            self.refresh_pump_metrics(pump)
        elif isinstance(circuit, Body) and circuit.has_heater:
            self.refresh_all_pumps()

    def _update_color(self, circuit: Circuit, params: Mapping[str, Any]) -> None:
        color = params.get(USE_ATTR)
        if color is None:
            act = params.get(ACT_ATTR)
            color = act if act is not None and act != NO_COLOR else None
        if color is None or self.active_colors.get(circuit.id) == color:
            return
        self.active_colors[circuit.id] = color
        _LOGGER.debug("%s active color: %s", circuit.name, color)
        notify(self._listener, "on_color_changed", circuit, color)

    def _refresh_heaters(self, body: Body) -> None:
        instances: list[ICHeaterState] = list(self._registry.heater_instances.values())
        for state in instances:
            if state.body.id == body.id and state.update():
                notify(self._listener, "on_heater_updated", state)

    def update_sensor(self, sensor: Sensor, params: Mapping[str, Any]) -> None:
        """Apply a probe reading to a sensor."""
        raw = params.get(PROBE_ATTR)
        if not raw:
            return
        probe = to_number(raw)
        if probe is None:
            _LOGGER.warning("Invalid probe value for %s: %r", sensor.id, raw)
            return
        sensor.probe = probe
        if self._collect_reading:
            self._collect_reading(probe)
        notify(self._listener, "on_sensor_updated", sensor)
