"""Entity model for an IntelliCenter system.

Entities are plain dataclasses created wholesale on every discovery cycle
and then mutated in place as status messages arrive. ICEntityStore is the
single arena holding every entity by its protocol object name; the
association indices only hold object names, so an update made through one
path is visible through all of them.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from .attributes import (
    GPM_ATTR,
    HEATER_ATTR,
    HITMP_ATTR,
    HTMODE_ATTR,
    HTSRC_ATTR,
    LOTMP_ATTR,
    LSTTMP_ATTR,
    MODE_ATTR,
    NO_HEATER_ID,
    ON_STATUS,
    RPM_ATTR,
    SPEED_ATTR,
    STATUS_ATTR,
    WATTS_ATTR,
)

_LOGGER = logging.getLogger(__name__)


def to_number(value: Any) -> float | None:
    """Convert a wire value to a float, None when missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def to_int(value: Any) -> int | None:
    """Convert a wire value to an int, None when missing or not numeric."""
    number = to_number(value)
    return None if number is None else int(number)


# ---------------------------------------------------------------------------
# Entities


@dataclass(eq=False)
class Circuit:
    """A controllable or observable logical object (feature, light, body...)."""

    id: str
    name: str
    object_type: str
    type: str | None = None
    status: str | None = None

    @property
    def is_on(self) -> bool:
        """Return True if the circuit reports ON."""
        return self.status == ON_STATUS


@dataclass(eq=False)
class Body(Circuit):
    """A body of water (pool or spa)."""

    temperature: float | None = None
    low_temperature: float | None = None
    high_temperature: float | None = None
    heater_id: str | None = None
    heat_source: str | None = None
    heat_mode: int | None = None
    mode: int | None = None
    circuit: str | None = None

    @property
    def has_heater(self) -> bool:
        """Return True if a real heater is selected."""
        return bool(self.heater_id) and self.heater_id != NO_HEATER_ID


@dataclass(eq=False)
class Heater:
    """A heater (or heat pump) serving one or more bodies."""

    id: str
    name: str
    type: str | None = None
    cooling_enabled: bool = False
    body_ids: list[str] = field(default_factory=list)


@dataclass(eq=False)
class PumpCircuit:
    """One entry of a pump's speed table."""

    id: str
    pump: str
    circuit_id: str
    speed: int = 0
    speed_type: str | None = None
    status: str | None = None
    rpm: float | None = None
    gpm: float | None = None
    watts: float | None = None


@dataclass(eq=False)
class Pump(Circuit):
    """A pump and its speed table."""

    min_rpm: int = 0
    max_rpm: int = 0
    min_flow: int = 0
    max_flow: int = 0
    circuits: list[PumpCircuit] = field(default_factory=list)
    rpm: float | None = None
    gpm: float | None = None
    watts: float | None = None


@dataclass(eq=False)
class Sensor:
    """A temperature probe."""

    id: str
    name: str
    object_type: str
    type: str | None = None
    probe: float | None = None


@dataclass(eq=False)
class Module:
    """An expansion module and the equipment attached to it."""

    id: str
    features: list[Circuit] = field(default_factory=list)
    bodies: list[Body] = field(default_factory=list)
    heaters: list[Heater] = field(default_factory=list)


@dataclass(eq=False)
class Panel:
    """Root container of a discovered system."""

    id: str
    modules: list[Module] = field(default_factory=list)
    features: list[Circuit] = field(default_factory=list)
    pumps: list[Pump] = field(default_factory=list)
    sensors: list[Sensor] = field(default_factory=list)


Entity = Circuit | Heater | PumpCircuit | Sensor


# ---------------------------------------------------------------------------
# Field updates


def apply_circuit_update(circuit: Circuit, params: Mapping[str, Any]) -> bool:
    """Apply a status change to a circuit, returning True if it changed."""
    status = params.get(STATUS_ATTR)
    if status is None or status == circuit.status:
        return False
    circuit.status = str(status)
    return True


def apply_body_update(body: Body, params: Mapping[str, Any]) -> None:
    """Apply the temperature and heater fields of a status change to a body."""
    if LSTTMP_ATTR in params:
        body.temperature = to_number(params[LSTTMP_ATTR])
    if LOTMP_ATTR in params:
        body.low_temperature = to_number(params[LOTMP_ATTR])
    if HITMP_ATTR in params:
        body.high_temperature = to_number(params[HITMP_ATTR])
    if HEATER_ATTR in params:
        body.heater_id = params[HEATER_ATTR]
    if HTSRC_ATTR in params:
        body.heat_source = params[HTSRC_ATTR]
    if HTMODE_ATTR in params:
        body.heat_mode = to_int(params[HTMODE_ATTR])
    if MODE_ATTR in params:
        body.mode = to_int(params[MODE_ATTR])


def apply_pump_circuit_update(pump_circuit: PumpCircuit, params: Mapping[str, Any]) -> None:
    """Overwrite only the pump-circuit fields present (and truthy) in params."""
    if params.get(STATUS_ATTR):
        pump_circuit.status = params[STATUS_ATTR]
    speed = to_int(params.get(SPEED_ATTR))
    if speed:
        pump_circuit.speed = speed
    for attr, name in ((RPM_ATTR, "rpm"), (GPM_ATTR, "gpm"), (WATTS_ATTR, "watts")):
        value = to_number(params.get(attr))
        if value:
            setattr(pump_circuit, name, value)


def apply_pump_update(pump: Pump, params: Mapping[str, Any]) -> None:
    """Mirror the live readings of a status change onto its pump."""
    if params.get(STATUS_ATTR):
        pump.status = params[STATUS_ATTR]
    for attr, name in ((RPM_ATTR, "rpm"), (GPM_ATTR, "gpm"), (WATTS_ATTR, "watts")):
        value = to_number(params.get(attr))
        if value:
            setattr(pump, name, value)


# ---------------------------------------------------------------------------
# Arena


class ICEntityStore:
    """Arena of entities keyed by object name, plus pump association indices.

    Indices:
        pump_to_circuits: pump id -> ids of the logical circuits it drives
        circuit_to_pump: logical circuit id -> pump id
        pump_circuit_to_pump: pump-circuit id -> pump id
        pump_circuit_for_circuit: logical circuit id -> pump-circuit id
        active_pump_circuits: pump-circuit id -> pump-circuit record
    """

    def __init__(self) -> None:
        self.panels: list[Panel] = []
        self._entities: dict[str, Entity] = {}
        self.pump_to_circuits: dict[str, set[str]] = {}
        self.circuit_to_pump: dict[str, str] = {}
        self.pump_circuit_to_pump: dict[str, str] = {}
        self.pump_circuit_for_circuit: dict[str, str] = {}
        self.active_pump_circuits: dict[str, PumpCircuit] = {}

    # arena

    def add(self, entity: Entity) -> None:
        """Add (or replace) an entity under its id."""
        self._entities[entity.id] = entity

    def get(self, objnam: str) -> Entity | None:
        """Return the entity with the given id."""
        return self._entities.get(objnam)

    def __contains__(self, objnam: object) -> bool:
        return objnam in self._entities

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._entities.values()))

    def __len__(self) -> int:
        return len(self._entities)

    def circuit(self, objnam: str) -> Circuit | None:
        """Return the circuit (feature, body or pump) with the given id."""
        entity = self._entities.get(objnam)
        return entity if isinstance(entity, Circuit) else None

    def body(self, objnam: str) -> Body | None:
        entity = self._entities.get(objnam)
        return entity if isinstance(entity, Body) else None

    def pump(self, objnam: str) -> Pump | None:
        entity = self._entities.get(objnam)
        return entity if isinstance(entity, Pump) else None

    def pump_circuit(self, objnam: str) -> PumpCircuit | None:
        entity = self._entities.get(objnam)
        return entity if isinstance(entity, PumpCircuit) else None

    def sensor(self, objnam: str) -> Sensor | None:
        entity = self._entities.get(objnam)
        return entity if isinstance(entity, Sensor) else None

    def heater(self, objnam: str) -> Heater | None:
        entity = self._entities.get(objnam)
        return entity if isinstance(entity, Heater) else None

    def bodies(self) -> list[Body]:
        """Return every body."""
        return [e for e in self._entities.values() if isinstance(e, Body)]

    def pumps(self) -> list[Pump]:
        """Return every pump."""
        return [e for e in self._entities.values() if isinstance(e, Pump)]

    def heaters(self) -> list[Heater]:
        """Return every heater."""
        return [e for e in self._entities.values() if isinstance(e, Heater)]

    # associations

    def associate(self, pump_id: str, pump_circuit_id: str, circuit_id: str) -> None:
        """Record that pump_id drives circuit_id through pump_circuit_id."""
        self.pump_circuit_to_pump[pump_circuit_id] = pump_id
        self.circuit_to_pump[circuit_id] = pump_id
        self.pump_to_circuits.setdefault(pump_id, set()).add(circuit_id)
        self.pump_circuit_for_circuit.setdefault(circuit_id, pump_circuit_id)

    def pump_for_circuit(self, circuit_id: str) -> Pump | None:
        """Return the pump driving the given logical circuit."""
        pump_id = self.circuit_to_pump.get(circuit_id)
        return self.pump(pump_id) if pump_id else None

    def pump_for_pump_circuit(self, pump_circuit_id: str) -> Pump | None:
        """Return the pump owning the given pump-circuit."""
        pump_id = self.pump_circuit_to_pump.get(pump_circuit_id)
        return self.pump(pump_id) if pump_id else None

    def circuits_for_pump(self, pump_id: str) -> set[str]:
        """Return the ids of the logical circuits driven by pump_id."""
        return set(self.pump_to_circuits.get(pump_id, ()))

    def find_pump_circuit_for_circuit(self, circuit_id: str) -> PumpCircuit | None:
        """Return the pump-circuit that drives the given logical circuit."""
        pump_circuit_id = self.pump_circuit_for_circuit.get(circuit_id)
        return self.active_pump_circuits.get(pump_circuit_id) if pump_circuit_id else None

    def is_circuit_on(self, circuit_id: str) -> bool:
        """Return True if a circuit, feature or body circuit with this id is ON."""
        circuit = self.circuit(circuit_id)
        if circuit is not None and circuit.is_on:
            return True
        return any(body.circuit == circuit_id and body.is_on for body in self.bodies())

    # lifecycle

    def clear(self) -> None:
        """Drop every entity and index."""
        self.panels = []
        self._entities.clear()
        self.pump_to_circuits.clear()
        self.circuit_to_pump.clear()
        self.pump_circuit_to_pump.clear()
        self.pump_circuit_for_circuit.clear()
        self.active_pump_circuits.clear()

    def replace_with(self, other: ICEntityStore) -> None:
        """Replace the whole content of this store with other's.

        Indices from the previous cycle are cleared before the new ones are
        copied in, so no stale association survives a rediscovery.
        """
        self.clear()
        self.panels = list(other.panels)
        self._entities.update(other._entities)
        self.pump_to_circuits.update({k: set(v) for k, v in other.pump_to_circuits.items()})
        self.circuit_to_pump.update(other.circuit_to_pump)
        self.pump_circuit_to_pump.update(other.pump_circuit_to_pump)
        self.pump_circuit_for_circuit.update(other.pump_circuit_for_circuit)
        self.active_pump_circuits.update(other.active_pump_circuits)
        _LOGGER.debug(
            "Entity store rebuilt: %d entities, %d pump circuits",
            len(self._entities),
            len(self.active_pump_circuits),
        )

    def __repr__(self) -> str:
        return f"ICEntityStore(entities={len(self._entities)}, panels={len(self.panels)})"
