"""Pytest fixtures for pyintellibridge tests."""

from __future__ import annotations

from typing import Any

import pytest

from pyintellibridge import (
    ICBridgeConfig,
    ICSessionListenerBase,
    ICTopology,
    ICTopologyBuilder,
    transform_panels,
)
from tests.hardware import merged_tree


class RecordingListener(ICSessionListenerBase):
    """Listener recording every hook call as (hook, args)."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def _record(self, hook: str, *args: Any) -> None:
        self.calls.append((hook, args))

    def hooks(self, name: str) -> list[tuple[Any, ...]]:
        """Return the arguments of every call to one hook."""
        return [args for hook, args in self.calls if hook == name]

    def on_registered(self, registration):
        self._record("on_registered", registration)

    def on_unregistered(self, registration):
        self._record("on_unregistered", registration)

    def on_discovery_complete(self, topology):
        self._record("on_discovery_complete", topology)

    def on_circuit_updated(self, circuit):
        self._record("on_circuit_updated", circuit)

    def on_body_updated(self, body):
        self._record("on_body_updated", body)

    def on_heater_updated(self, state):
        self._record("on_heater_updated", state)

    def on_sensor_updated(self, sensor):
        self._record("on_sensor_updated", sensor)

    def on_color_changed(self, circuit, color):
        self._record("on_color_changed", circuit, color)

    def on_pump_metrics(self, pump, rpm, gpm, watts):
        self._record("on_pump_metrics", pump, rpm, gpm, watts)

    def on_temperature_unit_warning(self, result):
        self._record("on_temperature_unit_warning", result)


@pytest.fixture
def hardware_tree() -> list[dict[str, Any]]:
    """Return a fresh merged hardware definition."""
    return merged_tree()


@pytest.fixture
def raw_config() -> dict[str, Any]:
    """Return a minimal valid host configuration."""
    return {"ipAddress": "192.168.1.100", "temperatureUnits": "F"}


@pytest.fixture
def config() -> ICBridgeConfig:
    """Return a validated Fahrenheit configuration."""
    return ICBridgeConfig(host="192.168.1.100")


@pytest.fixture
def listener() -> RecordingListener:
    """Return a listener recording every notification."""
    return RecordingListener()


@pytest.fixture
def topology(hardware_tree) -> ICTopology:
    """Return the topology built from the hardware tree (no VSP sensors)."""
    return ICTopologyBuilder().build(transform_panels(hardware_tree))


@pytest.fixture
def vsp_topology(hardware_tree) -> ICTopology:
    """Return the topology built with pump metric sensors enabled."""
    return ICTopologyBuilder(support_vsp=True).build(transform_panels(hardware_tree))
