"""Tests for the registration registry and orphan cleanup."""

from __future__ import annotations

from pyintellibridge.registry import (
    REMOVE_OLD_FEATURE_RPM_SENSORS,
    REMOVE_OLD_PUMP_CIRCUIT_SENSORS,
    REMOVE_VS_VF_GPM_SENSORS,
    ICRegistration,
    ICRegistry,
    RegistrationKind,
    expected_id,
    heater_binding_id,
    pump_metric_id,
)


def circuit(objnam: str) -> ICRegistration:
    return ICRegistration(objnam, RegistrationKind.CIRCUIT, objnam, objnam)


def heater(heater_id: str, body_id: str) -> ICRegistration:
    return ICRegistration(
        heater_binding_id(heater_id, body_id),
        RegistrationKind.HEATER,
        "Heater",
        heater_id,
        body_id=body_id,
    )


def metric(pump_id: str, attr: str, pump_type: str = "SPEED") -> ICRegistration:
    return ICRegistration(
        pump_metric_id(pump_id, attr),
        RegistrationKind.PUMP_METRIC,
        f"Pump {attr}",
        pump_id,
        metric=attr,
        pump_type=pump_type,
    )


class TestExpectedId:
    """Tests for expected_id."""

    def test_circuits_and_sensors_use_objnam(self):
        """Test that plain registrations expect their object name."""
        assert expected_id(circuit("C0003")) == "C0003"
        sensor = ICRegistration("SSS11", RegistrationKind.SENSOR, "Air", "SSS11")
        assert expected_id(sensor) == "SSS11"

    def test_heater_binding(self):
        """Test that heaters expect '{heater}.{body}'."""
        assert expected_id(heater("H0001", "B1101")) == "H0001.B1101"
        unbound = ICRegistration("H0001", RegistrationKind.HEATER, "Heater", "H0001")
        assert expected_id(unbound) is None

    def test_legacy_registrations_are_never_discovered(self):
        """Test the markers of registration shapes that are no longer produced."""
        feature_rpm = ICRegistration("C0003-rpm", RegistrationKind.FEATURE_RPM, "x", "C0003")
        pump_circuit = ICRegistration("p0101", RegistrationKind.PUMP_CIRCUIT, "x", "p0101")

        assert expected_id(feature_rpm) == REMOVE_OLD_FEATURE_RPM_SENSORS
        assert expected_id(pump_circuit) == REMOVE_OLD_PUMP_CIRCUIT_SENSORS

    def test_pump_metrics(self):
        """Test that GPM on VS and VF pumps is marked for removal."""
        assert expected_id(metric("PMP01", "RPM")) == "PMP01-rpm"
        assert expected_id(metric("PMP01", "GPM")) == REMOVE_VS_VF_GPM_SENSORS
        assert expected_id(metric("PMP01", "GPM", "FLOW")) == REMOVE_VS_VF_GPM_SENSORS
        assert expected_id(metric("PMP01", "GPM", "VSF")) == "PMP01-gpm"


class TestRegistry:
    """Tests for ICRegistry."""

    def test_register_notifies_only_new(self, listener):
        """Test that re-registering refreshes silently."""
        registry = ICRegistry(listener)

        assert registry.register(circuit("C0003")) is True
        assert registry.register(circuit("C0003")) is False

        assert len(listener.hooks("on_registered")) == 1
        assert "C0003" in registry
        assert len(registry) == 1

    def test_restore_is_silent(self, listener):
        """Test that cached registrations are loaded without notification."""
        registry = ICRegistry(listener)

        registry.restore([circuit("C0003"), heater("H0001", "B1101")])

        assert listener.calls == []
        assert set(registry.heaters) == {"H0001.B1101"}

    def test_unregister_clears_every_index(self, listener):
        """Test that unregistering removes heater indices too."""
        registry = ICRegistry(listener)
        registry.register(heater("H0001", "B1101"))
        registry.heater_instances["H0001.B1101"] = object()

        removed = registry.unregister("H0001.B1101")

        assert removed.id == "H0001.B1101"
        assert registry.heaters == {}
        assert registry.heater_instances == {}
        assert len(listener.hooks("on_unregistered")) == 1
        assert registry.unregister("H0001.B1101") is None

    def test_cleanup_orphans(self, listener):
        """Test that registrations missing from discovery are removed."""
        registry = ICRegistry(listener)
        registry.restore(
            [
                circuit("C0003"),
                circuit("C0099"),
                heater("H0001", "B1101"),
                heater("H0001", "B1202"),
                metric("PMP01", "RPM"),
                metric("PMP01", "GPM"),
                ICRegistration("p0101", RegistrationKind.PUMP_CIRCUIT, "old", "p0101"),
            ]
        )

        removed = registry.cleanup_orphans({"C0003", "H0001.B1101", "PMP01-rpm", "PMP01-gpm"})

        assert sorted(removed) == ["C0099", "H0001.B1202", "PMP01-gpm", "p0101"]
        assert set(registry.accessories) == {"C0003", "H0001.B1101", "PMP01-rpm"}
        assert len(listener.hooks("on_unregistered")) == 4

    def test_cleanup_keeps_registrations_without_expected_id(self):
        """Test that registrations not subject to cleanup survive."""
        registry = ICRegistry()
        registry.restore([ICRegistration("H0001", RegistrationKind.HEATER, "Heater", "H0001")])

        assert registry.cleanup_orphans(set()) == []
        assert "H0001" in registry

    def test_clear(self):
        """Test that clear empties every map."""
        registry = ICRegistry()
        registry.register(heater("H0001", "B1101"))
        registry.heater_instances["H0001.B1101"] = object()

        registry.clear()

        assert len(registry) == 0
        assert registry.heaters == {}
        assert registry.heater_instances == {}
