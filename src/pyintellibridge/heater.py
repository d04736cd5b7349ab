"""Heater state and commands for a heater bound to one body.

A heater's state lives on the body it serves (HEATER, HTSRC, HTMODE,
LOTMP, HITMP). ICHeaterState reads those fields live from the arena
entities and builds the SetParamList requests that change them. Display
values are always Celsius; the controller's unit comes from the config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .attributes import (
    HCOMBO_SUBTYPE,
    HEAT_MODE_DEFAULT_ON,
    HEAT_MODE_OFF,
    HEATER_ATTR,
    HITMP_ATTR,
    HTMODE_COOLING,
    LOTMP_ATTR,
    MODE_ATTR,
    NO_HEATER_ID,
    ON_STATUS,
    STATUS_ATTR,
)
from .codec import IntelliCenterRequest, build_set_params
from .registry import heater_binding_id

if TYPE_CHECKING:
    from .config import ICBridgeConfig
    from .model import Body, Heater

_LOGGER = logging.getLogger(__name__)


def fahrenheit_to_celsius(value: float) -> float:
    """Convert a Fahrenheit temperature to Celsius."""
    return (value - 32) * 5 / 9


def celsius_to_fahrenheit(value: float) -> float:
    """Convert a Celsius temperature to Fahrenheit."""
    return value * 9 / 5 + 32


class HeatingState(Enum):
    """What the heater is doing right now."""

    OFF = "off"
    HEAT = "heat"
    COOL = "cool"


class HeatingMode(Enum):
    """What the heater has been asked to do."""

    OFF = "off"
    HEAT = "heat"
    AUTO = "auto"


def _heating_state_from_mode(heat_mode: int) -> HeatingState:
    if heat_mode == HTMODE_COOLING:
        return HeatingState.COOL
    if heat_mode >= 1:
        return HeatingState.HEAT
    return HeatingState.OFF


@dataclass(frozen=True)
class ICHeaterSnapshot:
    """Comparable view of a heater state, in Celsius."""

    current_state: HeatingState
    target_mode: HeatingMode
    current_temperature: float | None
    heating_setpoint: float | None
    cooling_setpoint: float | None


class ICHeaterState:
    """Live state of a heater serving a body.

    Args:
        heater: The heater entity.
        body: The body entity it serves.
        config: Session configuration (temperature unit, heat mode override).
    """

    def __init__(self, heater: Heater, body: Body, config: ICBridgeConfig) -> None:
        self.heater = heater
        self.body = body
        self._config = config
        self._last: ICHeaterSnapshot | None = None

    @property
    def id(self) -> str:
        """Return the binding id ('{heater}.{body}')."""
        return heater_binding_id(self.heater.id, self.body.id)

    @property
    def name(self) -> str:
        return f"{self.body.name} {self.heater.name}"

    @property
    def is_multi_mode(self) -> bool:
        """Return True if the heater is driven through MODE rather than HEATER."""
        return self.heater.type == HCOMBO_SUBTYPE or self._config.heat_mode_override is not None

    @property
    def is_selected(self) -> bool:
        """Return True if the body has this heater selected."""
        return self.body.heater_id == self.heater.id

    # unit conversion

    def to_celsius(self, value: float | None) -> float | None:
        """Convert a controller temperature to Celsius."""
        if value is None:
            return None
        return fahrenheit_to_celsius(value) if self._config.is_fahrenheit else value

    def _to_device(self, celsius: float) -> str:
        if self._config.is_fahrenheit:
            return str(round(celsius_to_fahrenheit(celsius)))
        return f"{celsius:g}"

    # display values

    @property
    def current_temperature(self) -> float | None:
        return self.to_celsius(self.body.temperature)

    @property
    def heating_setpoint(self) -> float | None:
        return self.to_celsius(self.body.low_temperature)

    @property
    def cooling_setpoint(self) -> float | None:
        return self.to_celsius(self.body.high_temperature)

    @property
    def min_setpoint(self) -> float:
        return self.to_celsius(self._config.minimum_temperature) or 0.0

    @property
    def max_setpoint(self) -> float:
        return self.to_celsius(self._config.maximum_temperature) or 0.0

    def current_state(self) -> HeatingState:
        """Resolve what the heater is doing.

        HTSRC and HTMODE, when reported, win over comparing temperatures.
        """
        body = self.body
        if body.heat_source:
            if body.heat_source == NO_HEATER_ID or body.heat_source != self.heater.id:
                return HeatingState.OFF
            if body.heat_mode is not None:
                return _heating_state_from_mode(body.heat_mode)

        if not self.is_selected:
            return HeatingState.OFF
        if body.heat_mode is not None:
            return _heating_state_from_mode(body.heat_mode)

        temperature = body.temperature
        low = body.low_temperature
        if temperature is None or low is None:
            return HeatingState.OFF
        if self.heater.cooling_enabled:
            high = body.high_temperature
            if high is not None and temperature > high:
                return HeatingState.COOL
            if temperature < low:
                return HeatingState.HEAT
            return HeatingState.OFF
        return HeatingState.HEAT if temperature < low else HeatingState.OFF

    def target_mode(self) -> HeatingMode:
        """Resolve the mode the heater has been asked for."""
        if not self.is_selected:
            return HeatingMode.OFF
        return HeatingMode.AUTO if self.heater.cooling_enabled else HeatingMode.HEAT

    def snapshot(self) -> ICHeaterSnapshot:
        return ICHeaterSnapshot(
            current_state=self.current_state(),
            target_mode=self.target_mode(),
            current_temperature=self.current_temperature,
            heating_setpoint=self.heating_setpoint,
            cooling_setpoint=self.cooling_setpoint,
        )

    def update(self) -> bool:
        """Recompute the state, returning True if it changed since last time."""
        snapshot = self.snapshot()
        changed = snapshot != self._last
        self._last = snapshot
        if changed:
            _LOGGER.debug("%s: %s", self.id, snapshot)
        return changed

    # commands

    def mode_commands(self, on: bool) -> list[IntelliCenterRequest]:
        """Return the requests turning the heater on or off for the body."""
        requests = []
        if on:
            requests.append(build_set_params(self.body.id, {STATUS_ATTR: ON_STATUS}))
        if self.is_multi_mode:
            mode = HEAT_MODE_OFF
            if on:
                mode = self._config.heat_mode_override or HEAT_MODE_DEFAULT_ON
            _LOGGER.info("[%s] Sending MODE=%d on body=%s", self.heater.name, mode, self.body.id)
            requests.append(build_set_params(self.body.id, {MODE_ATTR: str(mode)}))
        else:
            heater = self.heater.id if on else NO_HEATER_ID
            _LOGGER.info(
                "[%s] Sending HEATER=%s on body=%s", self.heater.name, heater, self.body.id
            )
            requests.append(build_set_params(self.body.id, {HEATER_ATTR: heater}))
        return requests

    def heating_setpoint_command(self, celsius: float) -> IntelliCenterRequest:
        """Return the request setting the heating target (LOTMP)."""
        return build_set_params(self.body.id, {LOTMP_ATTR: self._to_device(celsius)})

    def cooling_setpoint_command(self, celsius: float) -> IntelliCenterRequest:
        """Return the request setting the cooling target (HITMP)."""
        return build_set_params(self.body.id, {HITMP_ATTR: self._to_device(celsius)})

    target_temperature_command = heating_setpoint_command

    def __repr__(self) -> str:
        return f"ICHeaterState(id={self.id!r}, state={self.current_state().value})"
