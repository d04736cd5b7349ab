"""Registry of the entities exposed to the host.

Every logical device the host presents (a circuit switch, a temperature
sensor, a heater bound to one body, a pump metric) is an ICRegistration
keyed by a stable id derived from protocol object names. After each
discovery cycle the registry is reconciled against the set of ids that
discovery produced; registrations whose expected id is gone are removed
from every index.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .attributes import GPM_ATTR, RPM_ATTR, WATTS_ATTR
from .listener import notify
from .pumps import pump_kind

if TYPE_CHECKING:
    from .listener import ICSessionListener

_LOGGER = logging.getLogger(__name__)

# Expected ids of registration shapes that are no longer supported. They are
# never discovered, so such registrations are always cleaned up.
REMOVE_OLD_FEATURE_RPM_SENSORS = "REMOVE_OLD_FEATURE_RPM_SENSORS"
REMOVE_OLD_PUMP_CIRCUIT_SENSORS = "REMOVE_OLD_PUMP_CIRCUIT_SENSORS"
REMOVE_VS_VF_GPM_SENSORS = "REMOVE_VS_VF_GPM_SENSORS"

METRIC_SUFFIXES = {RPM_ATTR: "rpm", GPM_ATTR: "gpm", WATTS_ATTR: "watts"}

# Pump kinds that have no flow reading worth exposing
NO_GPM_PUMP_KINDS = frozenset(["VS", "VF"])


class RegistrationKind(Enum):
    """What a registration represents."""

    CIRCUIT = "circuit"  # feature, light or body switch
    SENSOR = "sensor"  # temperature probe
    HEATER = "heater"  # heater bound to one body
    PUMP_METRIC = "pump_metric"  # RPM, GPM or WATTS of a pump
    FEATURE_RPM = "feature_rpm"  # legacy: RPM sensor attached to a feature
    PUMP_CIRCUIT = "pump_circuit"  # legacy: sensor per pump-circuit


@dataclass(frozen=True)
class ICRegistration:
    """A device exposed to the host.

    Attributes:
        id: Stable registration id.
        kind: What the registration represents.
        name: Display name, for logs and the host.
        objnam: Protocol object the registration reflects.
        body_id: Body served, for heater registrations.
        metric: RPM, GPM or WATTS, for pump metric registrations.
        pump_type: Pump SUBTYP, for pump metric registrations.
    """

    id: str
    kind: RegistrationKind
    name: str
    objnam: str
    body_id: str | None = None
    metric: str | None = None
    pump_type: str | None = None


def pump_metric_id(pump_id: str, metric: str) -> str:
    """Return the registration id of a pump metric."""
    return f"{pump_id}-{METRIC_SUFFIXES[metric]}"


def heater_binding_id(heater_id: str, body_id: str) -> str:
    """Return the registration id of a heater bound to a body."""
    return f"{heater_id}.{body_id}"


def expected_id(registration: ICRegistration) -> str | None:
    """Return the id discovery must produce for registration to survive.

    None means the registration is not subject to cleanup.
    """
    kind = registration.kind
    if kind in (RegistrationKind.CIRCUIT, RegistrationKind.SENSOR):
        return registration.objnam
    if kind is RegistrationKind.HEATER:
        if registration.body_id is None:
            return None
        return heater_binding_id(registration.objnam, registration.body_id)
    if kind is RegistrationKind.FEATURE_RPM:
        return REMOVE_OLD_FEATURE_RPM_SENSORS
    if kind is RegistrationKind.PUMP_CIRCUIT:
        return REMOVE_OLD_PUMP_CIRCUIT_SENSORS
    if kind is RegistrationKind.PUMP_METRIC and registration.metric in METRIC_SUFFIXES:
        kind_of_pump = pump_kind(registration.pump_type)
        if registration.metric == GPM_ATTR and kind_of_pump in NO_GPM_PUMP_KINDS:
            return REMOVE_VS_VF_GPM_SENSORS
        return pump_metric_id(registration.objnam, registration.metric)
    return None


class ICRegistry:
    """Registrations keyed by id, plus the heater indices.

    Maps:
        accessories: registration id -> registration (every kind)
        heaters: heater binding id -> registration
        heater_instances: heater binding id -> live heater state
    """

    def __init__(self, listener: ICSessionListener | None = None) -> None:
        self._listener = listener
        self.accessories: dict[str, ICRegistration] = {}
        self.heaters: dict[str, ICRegistration] = {}
        self.heater_instances: dict[str, Any] = {}

    def get(self, registration_id: str) -> ICRegistration | None:
        """Return the registration with the given id."""
        return self.accessories.get(registration_id)

    def __contains__(self, registration_id: object) -> bool:
        return registration_id in self.accessories

    def __len__(self) -> int:
        return len(self.accessories)

    def restore(self, registrations: Iterable[ICRegistration]) -> None:
        """Load registrations cached by the host from a previous run.

        No listener notification is sent; the host already knows them.
        """
        for registration in registrations:
            self._store(registration)

    def register(self, registration: ICRegistration) -> bool:
        """Add or refresh a registration.

        Returns:
            True if the registration is new.
        """
        is_new = registration.id not in self.accessories
        self._store(registration)
        if is_new:
            _LOGGER.info(
                "Registering %s %s (%s)",
                registration.kind.value,
                registration.name,
                registration.id,
            )
            notify(self._listener, "on_registered", registration)
        return is_new

    def _store(self, registration: ICRegistration) -> None:
        self.accessories[registration.id] = registration
        if registration.kind is RegistrationKind.HEATER:
            self.heaters[registration.id] = registration

    def unregister(self, registration_id: str) -> ICRegistration | None:
        """Remove a registration from every index."""
        registration = self.accessories.pop(registration_id, None)
        self.heaters.pop(registration_id, None)
        self.heater_instances.pop(registration_id, None)
        if registration is not None:
            notify(self._listener, "on_unregistered", registration)
        return registration

    def cleanup_orphans(self, discovered_ids: set[str]) -> list[str]:
        """Remove registrations whose expected id was not discovered.

        Args:
            discovered_ids: Every id produced by the latest discovery cycle.

        Returns:
            The ids of the removed registrations.
        """
        removed: list[str] = []
        for registration in list(self.accessories.values()):
            expected = expected_id(registration)
            if expected is None or expected in discovered_ids:
                continue
            _LOGGER.info(
                "Removing orphaned %s %s (%s): %s no longer discovered",
                registration.kind.value,
                registration.name,
                registration.id,
                expected,
            )
            self.unregister(registration.id)
            removed.append(registration.id)
        return removed

    def clear(self) -> None:
        """Drop every registration without notifying."""
        self.accessories.clear()
        self.heaters.clear()
        self.heater_instances.clear()
