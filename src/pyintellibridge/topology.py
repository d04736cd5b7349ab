"""Build typed topology from a merged hardware definition.

transform_panels turns the raw GetHardwareDefinition tree into Panel,
Module and equipment records. ICTopologyBuilder then walks those panels to
fill a fresh ICEntityStore, compute the pump associations, collect the
subscriptions to send, and produce the registrations and discovered ids
used for orphan cleanup.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from .attributes import (
    BODY_ATTR,
    BODY_KEYS,
    BODY_TYPE,
    CIRCUIT_ATTR,
    CIRCUIT_TYPE,
    CIRCUITS_ATTR,
    COLOR_FEATURE_KEYS,
    COLOR_LIGHT_SUBTYPES,
    COOL_ATTR,
    FEATR_ATTR,
    FEATURE_KEYS,
    GPM_ATTR,
    HEATER_ATTR,
    HEATER_TYPE,
    HITMP_ATTR,
    HTMODE_ATTR,
    HTSRC_ATTR,
    LOTMP_ATTR,
    LSTTMP_ATTR,
    MAX_ATTR,
    MAXF_ATTR,
    MIN_ATTR,
    MINF_ATTR,
    MODE_ATTR,
    MODULE_TYPE,
    OBJLIST_ATTR,
    OBJNAM_KEY,
    OBJTYP_ATTR,
    ON_STATUS,
    PANEL_TYPE,
    PARAMS_KEY,
    PROBE_ATTR,
    PUMP_CIRCUIT_KEYS,
    PUMP_TYPE,
    RPM_ATTR,
    SELECT_ATTR,
    SENSE_TYPE,
    SENSOR_AIR,
    SENSOR_KEYS,
    SENSOR_POOL,
    SNAME_ATTR,
    SPEED_ATTR,
    SPEED_TYPE_RPM,
    STATUS_ATTR,
    SUBTYP_ATTR,
    WATTS_ATTR,
)
from .model import (
    Body,
    Circuit,
    Heater,
    ICEntityStore,
    Module,
    Panel,
    Pump,
    PumpCircuit,
    Sensor,
    to_int,
    to_number,
)
from .pumps import pump_kind
from .registry import (
    NO_GPM_PUMP_KINDS,
    ICRegistration,
    RegistrationKind,
    heater_binding_id,
    pump_metric_id,
)

_LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Raw tree -> typed records


def _objects(value: Any) -> list[tuple[str, Mapping[str, Any]]]:
    """Return (objnam, params) for every well formed object in a raw list."""
    result = []
    for item in value if isinstance(value, list) else ():
        if not isinstance(item, Mapping):
            continue
        objnam = item.get(OBJNAM_KEY)
        params = item.get(PARAMS_KEY)
        if isinstance(objnam, str) and isinstance(params, Mapping):
            result.append((objnam, params))
    return result


def _name(objnam: str, params: Mapping[str, Any]) -> str:
    name = params.get(SNAME_ATTR)
    return name if isinstance(name, str) and name else objnam


def _is_featured(params: Mapping[str, Any], include_all_circuits: bool) -> bool:
    return include_all_circuits or params.get(FEATR_ATTR) == ON_STATUS


def _feature(objnam: str, params: Mapping[str, Any]) -> Circuit:
    return Circuit(
        id=objnam,
        name=_name(objnam, params),
        object_type=CIRCUIT_TYPE,
        type=params.get(SUBTYP_ATTR),
        status=params.get(STATUS_ATTR),
    )


def _body(objnam: str, params: Mapping[str, Any]) -> Body:
    circuit = params.get(CIRCUIT_ATTR)
    return Body(
        id=objnam,
        name=_name(objnam, params),
        object_type=BODY_TYPE,
        type=params.get(SUBTYP_ATTR),
        status=params.get(STATUS_ATTR),
        temperature=to_number(params.get(LSTTMP_ATTR)),
        low_temperature=to_number(params.get(LOTMP_ATTR)),
        high_temperature=to_number(params.get(HITMP_ATTR)),
        heater_id=params.get(HEATER_ATTR),
        heat_source=params.get(HTSRC_ATTR),
        heat_mode=to_int(params.get(HTMODE_ATTR)),
        mode=to_int(params.get(MODE_ATTR)),
        circuit=circuit if isinstance(circuit, str) and circuit else objnam,
    )


def _heater(objnam: str, params: Mapping[str, Any]) -> Heater:
    bodies = params.get(BODY_ATTR)
    return Heater(
        id=objnam,
        name=_name(objnam, params),
        type=params.get(SUBTYP_ATTR),
        cooling_enabled=params.get(COOL_ATTR) == ON_STATUS,
        body_ids=bodies.split() if isinstance(bodies, str) else [],
    )


def _pump(objnam: str, params: Mapping[str, Any]) -> Pump:
    pump = Pump(
        id=objnam,
        name=_name(objnam, params),
        object_type=PUMP_TYPE,
        type=params.get(SUBTYP_ATTR),
        status=params.get(STATUS_ATTR),
        min_rpm=to_int(params.get(MIN_ATTR)) or 0,
        max_rpm=to_int(params.get(MAX_ATTR)) or 0,
        min_flow=to_int(params.get(MINF_ATTR)) or 0,
        max_flow=to_int(params.get(MAXF_ATTR)) or 0,
    )
    for pc_objnam, pc_params in _objects(params.get(OBJLIST_ATTR)):
        circuit_id = pc_params.get(CIRCUIT_ATTR)
        if not isinstance(circuit_id, str):
            _LOGGER.debug("Pump circuit %s of %s has no circuit", pc_objnam, objnam)
            continue
        pump.circuits.append(
            PumpCircuit(
                id=pc_objnam,
                pump=objnam,
                circuit_id=circuit_id,
                speed=to_int(pc_params.get(SPEED_ATTR)) or 0,
                speed_type=pc_params.get(SELECT_ATTR),
                status=pc_params.get(STATUS_ATTR),
            )
        )
    return pump


def _sensor(objnam: str, params: Mapping[str, Any]) -> Sensor:
    return Sensor(
        id=objnam,
        name=_name(objnam, params),
        object_type=SENSE_TYPE,
        type=params.get(SUBTYP_ATTR),
        probe=to_number(params.get(PROBE_ATTR)),
    )


def _module(objnam: str, params: Mapping[str, Any], include_all_circuits: bool) -> Module:
    module = Module(id=objnam)
    for obj_objnam, obj_params in _objects(params.get(CIRCUITS_ATTR)):
        objtyp = obj_params.get(OBJTYP_ATTR)
        if objtyp == BODY_TYPE:
            module.bodies.append(_body(obj_objnam, obj_params))
        elif objtyp == HEATER_TYPE:
            module.heaters.append(_heater(obj_objnam, obj_params))
        elif objtyp == CIRCUIT_TYPE and _is_featured(obj_params, include_all_circuits):
            module.features.append(_feature(obj_objnam, obj_params))
    return module


def transform_panels(tree: Any, include_all_circuits: bool = False) -> list[Panel]:
    """Turn a merged hardware definition into typed panels.

    Args:
        tree: The merged 'answer' of the discovery queries.
        include_all_circuits: Keep circuits that are not marked as features.

    Returns:
        One Panel per PANEL object, in answer order.
    """
    panels: list[Panel] = []
    for panel_objnam, panel_params in _objects(tree):
        if panel_params.get(OBJTYP_ATTR) != PANEL_TYPE:
            continue
        panel = Panel(id=panel_objnam)
        for objnam, params in _objects(panel_params.get(OBJLIST_ATTR)):
            objtyp = params.get(OBJTYP_ATTR)
            if objtyp == MODULE_TYPE:
                panel.modules.append(_module(objnam, params, include_all_circuits))
            elif objtyp == PUMP_TYPE:
                panel.pumps.append(_pump(objnam, params))
            elif objtyp == SENSE_TYPE:
                panel.sensors.append(_sensor(objnam, params))
            elif objtyp == CIRCUIT_TYPE and _is_featured(params, include_all_circuits):
                panel.features.append(_feature(objnam, params))
        panels.append(panel)
    return panels


# ---------------------------------------------------------------------------
# Heater pump-circuit heuristic


@dataclass(frozen=True)
class HeaterScoringThresholds:
    """Thresholds of the default heater pump-circuit heuristic.

    The protocol never links a heater to the pump-circuit that feeds it, so
    these bands are a best guess rather than protocol facts.
    """

    min_speed: int = 1000  # slower pump-circuits are never candidates
    low_band: int = 2000  # start of the lower scoring band
    high_band: int = 2500  # start of the upper scoring band
    high_band_max: int = 3200  # end of the upper scoring band
    name_score: int = 100  # pump or body name mentions "heater"
    high_band_score: int = 90
    low_band_score: int = 85
    name_marker: str = "heater"


class HeaterPumpScorer(Protocol):
    """Scores how likely a pump-circuit feeds the heater of a body."""

    def score(self, pump: Pump, pump_circuit: PumpCircuit, body: Body) -> int:
        """Return a score, 0 meaning 'not a candidate'."""
        ...


class DefaultHeaterPumpScorer:
    """Name and speed band heuristic."""

    def __init__(self, thresholds: HeaterScoringThresholds | None = None) -> None:
        self.thresholds = thresholds or HeaterScoringThresholds()

    def score(self, pump: Pump, pump_circuit: PumpCircuit, body: Body) -> int:
        t = self.thresholds
        if pump_circuit.speed_type != SPEED_TYPE_RPM or pump_circuit.speed < t.min_speed:
            return 0
        if t.name_marker in pump.name.lower() or t.name_marker in body.name.lower():
            return t.name_score
        if t.high_band <= pump_circuit.speed <= t.high_band_max:
            return t.high_band_score
        if t.low_band <= pump_circuit.speed < t.high_band:
            return t.low_band_score
        return 0


@dataclass(frozen=True)
class ICHeaterCandidate:
    """A pump-circuit that may feed a heater, with its score."""

    pump_id: str
    pump_circuit_id: str
    score: int


def rank_heater_pump_circuits(
    pumps: Iterable[Pump], body: Body, scorer: HeaterPumpScorer
) -> list[ICHeaterCandidate]:
    """Return every pump-circuit with a positive score, best first."""
    candidates = []
    for pump in pumps:
        for pump_circuit in pump.circuits:
            score = scorer.score(pump, pump_circuit, body)
            if score > 0:
                candidates.append(ICHeaterCandidate(pump.id, pump_circuit.id, score))
    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates


# ---------------------------------------------------------------------------
# Topology


@dataclass
class ICHeaterBinding:
    """A heater serving one body."""

    heater_id: str
    body_id: str
    candidates: list[ICHeaterCandidate] = field(default_factory=list)

    @property
    def id(self) -> str:
        return heater_binding_id(self.heater_id, self.body_id)

    @property
    def pump_circuit_id(self) -> str | None:
        """Return the best scoring pump-circuit, if any."""
        return self.candidates[0].pump_circuit_id if self.candidates else None


@dataclass
class ICTopology:
    """Everything derived from one discovery cycle."""

    panels: list[Panel]
    store: ICEntityStore
    registrations: list[ICRegistration] = field(default_factory=list)
    subscriptions: dict[tuple[str, ...], list[str]] = field(default_factory=dict)
    discovered_ids: set[str] = field(default_factory=set)
    heater_bindings: list[ICHeaterBinding] = field(default_factory=list)

    def subscribe(self, objnam: str, keys: tuple[str, ...]) -> None:
        """Queue a subscription of objnam to keys."""
        objnams = self.subscriptions.setdefault(keys, [])
        if objnam not in objnams:
            objnams.append(objnam)

    def register(self, registration: ICRegistration) -> None:
        """Record a registration and its id as discovered."""
        self.registrations.append(registration)
        self.discovered_ids.add(registration.id)


class ICTopologyBuilder:
    """Walk typed panels into an ICTopology.

    Args:
        air_temp: Expose AIR temperature sensors.
        support_vsp: Expose RPM/GPM/WATTS sensors for every pump.
        scorer: Heater pump-circuit heuristic.
    """

    def __init__(
        self,
        *,
        air_temp: bool = True,
        support_vsp: bool = False,
        scorer: HeaterPumpScorer | None = None,
    ) -> None:
        self._air_temp = air_temp
        self._support_vsp = support_vsp
        self._scorer = scorer or DefaultHeaterPumpScorer()

    def build(self, panels: list[Panel]) -> ICTopology:
        """Build the topology of panels into a fresh store."""
        topology = ICTopology(panels=panels, store=ICEntityStore())
        topology.store.panels = list(panels)
        heaters: list[Heater] = []

        for panel in panels:
            self._add_sensors(topology, panel)
            for pump in panel.pumps:
                self._add_pump(topology, pump)
            for module in panel.modules:
                for body in module.bodies:
                    self._add_body(topology, body)
                for feature in module.features:
                    self._add_feature(topology, feature)
                heaters.extend(module.heaters)
            for feature in panel.features:
                self._add_feature(topology, feature)

        for heater in heaters:
            self._add_heater(topology, heater)

        _LOGGER.debug(
            "Topology: %d panels, %d entities, %d registrations",
            len(panels),
            len(topology.store),
            len(topology.registrations),
        )
        return topology

    def _add_sensors(self, topology: ICTopology, panel: Panel) -> None:
        panel_has_heaters = any(module.heaters for module in panel.modules)
        for sensor in panel.sensors:
            if sensor.type == SENSOR_AIR and not self._air_temp:
                _LOGGER.debug("Skipping air sensor %s", sensor.id)
                continue
            if sensor.type == SENSOR_POOL and panel_has_heaters:
                # the heater's body already reports the water temperature
                _LOGGER.debug("Skipping pool sensor %s", sensor.id)
                continue
            topology.store.add(sensor)
            topology.subscribe(sensor.id, SENSOR_KEYS)
            topology.register(
                ICRegistration(sensor.id, RegistrationKind.SENSOR, sensor.name, sensor.id)
            )

    def _add_pump(self, topology: ICTopology, pump: Pump) -> None:
        store = topology.store
        store.add(pump)
        for pump_circuit in pump.circuits:
            store.add(pump_circuit)
            store.active_pump_circuits[pump_circuit.id] = pump_circuit
            store.associate(pump.id, pump_circuit.id, pump_circuit.circuit_id)
            topology.subscribe(pump_circuit.id, PUMP_CIRCUIT_KEYS)

        if not self._support_vsp:
            return
        metrics = [RPM_ATTR, WATTS_ATTR]
        if pump_kind(pump.type) not in NO_GPM_PUMP_KINDS:
            metrics.insert(1, GPM_ATTR)
        for metric in metrics:
            topology.register(
                ICRegistration(
                    pump_metric_id(pump.id, metric),
                    RegistrationKind.PUMP_METRIC,
                    f"{pump.name} {metric}",
                    pump.id,
                    metric=metric,
                    pump_type=pump.type,
                )
            )

    def _add_body(self, topology: ICTopology, body: Body) -> None:
        store = topology.store
        store.add(body)
        if body.circuit and body.circuit in store.circuit_to_pump:
            _LOGGER.debug(
                "Body %s is driven by pump %s", body.id, store.circuit_to_pump[body.circuit]
            )
        topology.subscribe(body.id, BODY_KEYS)
        topology.register(ICRegistration(body.id, RegistrationKind.CIRCUIT, body.name, body.id))

    def _add_feature(self, topology: ICTopology, feature: Circuit) -> None:
        topology.store.add(feature)
        keys = COLOR_FEATURE_KEYS if feature.type in COLOR_LIGHT_SUBTYPES else FEATURE_KEYS
        topology.subscribe(feature.id, keys)
        topology.register(
            ICRegistration(feature.id, RegistrationKind.CIRCUIT, feature.name, feature.id)
        )

    def _add_heater(self, topology: ICTopology, heater: Heater) -> None:
        store = topology.store
        store.add(heater)
        for body_id in heater.body_ids:
            body = store.body(body_id)
            if body is None:
                _LOGGER.error("Body %s served by heater %s was not discovered", body_id, heater.id)
                continue
            binding = ICHeaterBinding(
                heater_id=heater.id,
                body_id=body_id,
                candidates=rank_heater_pump_circuits(store.pumps(), body, self._scorer),
            )
            topology.heater_bindings.append(binding)
            topology.register(
                ICRegistration(
                    binding.id,
                    RegistrationKind.HEATER,
                    f"{body.name} {heater.name}",
                    heater.id,
                    body_id=body_id,
                )
            )
