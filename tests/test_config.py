"""Tests for configuration validation."""

from __future__ import annotations

import pytest

from pyintellibridge.config import (
    PLACEHOLDER_PASSWORD,
    PLACEHOLDER_USERNAME,
    ICConfigValidator,
    validate_config,
)


class TestValidConfig:
    """Tests for configurations that validate."""

    def test_defaults(self, raw_config):
        """Test a minimal configuration gets every default."""
        result = validate_config(raw_config)

        assert result.is_valid
        assert result.warnings == []
        config = result.config
        assert config.host == "192.168.1.100"
        assert config.port == 6681
        assert config.temperature_units == "F"
        assert config.minimum_temperature == 40.0
        assert config.maximum_temperature == 104.0
        assert config.support_vsp is False
        assert config.air_temp is True
        assert config.include_all_circuits is False
        assert config.heat_mode_override is None
        assert config.max_buffer_size == 1_048_576
        assert config.username == PLACEHOLDER_USERNAME
        assert config.password == PLACEHOLDER_PASSWORD

    def test_celsius_defaults(self):
        """Test that Celsius gets its own default setpoint range."""
        result = validate_config({"ipAddress": "10.0.0.5", "temperatureUnits": "C"})

        assert result.config.minimum_temperature == 4.0
        assert result.config.maximum_temperature == 40.0
        assert result.config.is_fahrenheit is False

    def test_missing_units_warns(self):
        """Test that a missing unit defaults to Fahrenheit with a warning."""
        result = validate_config({"ipAddress": "192.168.1.100"})

        assert result.is_valid
        assert result.config.temperature_units == "F"
        assert any("temperatureUnits" in w for w in result.warnings)

    def test_public_address_warns(self):
        """Test that a public address is accepted with a warning."""
        result = validate_config({"ipAddress": "8.8.8.8", "temperatureUnits": "F"})

        assert result.is_valid
        assert any("public network" in w for w in result.warnings)

    def test_string_values_are_coerced(self):
        """Test that stringly typed host values are normalized."""
        result = validate_config(
            {
                "ipAddress": " 172.16.0.9 ",
                "port": "6680",
                "temperatureUnits": "F",
                "minimumTemperature": "50.04",
                "maximumTemperature": "95",
                "supportVSP": "true",
                "airTemp": "no",
                "includeAllCircuits": True,
                "heatModeOverride": "9",
                "maxBufferSize": "131072",
            }
        )

        assert result.is_valid, result.errors
        config = result.config
        assert config.host == "172.16.0.9"
        assert config.port == 6680
        assert config.minimum_temperature == 50.0
        assert config.maximum_temperature == 95.0
        assert config.support_vsp is True
        assert config.air_temp is False
        assert config.include_all_circuits is True
        assert config.heat_mode_override == 9
        assert config.max_buffer_size == 131072

    def test_heat_mode_override_zero_is_auto(self):
        """Test that 0 means no override."""
        result = validate_config({"ipAddress": "192.168.1.100", "heatModeOverride": 0})

        assert result.config.heat_mode_override is None

    @pytest.mark.parametrize(
        ("value", "fragment"),
        [
            (1, "Heat Source OFF"),
            (16, "between 2 and 15"),
            ("abc", "between 2 and 15"),
        ],
    )
    def test_bad_heat_mode_override_warns(self, value, fragment):
        """Test that unusable overrides are ignored with a warning."""
        result = validate_config({"ipAddress": "192.168.1.100", "heatModeOverride": value})

        assert result.is_valid
        assert result.config.heat_mode_override is None
        assert any(fragment in w for w in result.warnings)

    @pytest.mark.parametrize(
        ("value", "fragment"),
        [
            (1024, "at least 64KB"),
            (32_000_000, "at most 16MB"),
            (-5, "must be positive"),
            ("big", "must be a number"),
        ],
    )
    def test_bad_buffer_size_falls_back(self, value, fragment):
        """Test that an invalid buffer size warns and uses the default."""
        result = validate_config({"ipAddress": "192.168.1.100", "maxBufferSize": value})

        assert result.is_valid
        assert result.config.max_buffer_size == 1_048_576
        assert any(fragment in w for w in result.warnings)


class TestInvalidConfig:
    """Tests for configurations that fail validation."""

    def test_not_a_mapping(self):
        """Test that a non-mapping is rejected."""
        result = ICConfigValidator().validate(None)

        assert not result.is_valid
        assert result.config is None

    @pytest.mark.parametrize(
        ("host", "fragment"),
        [
            (None, "required"),
            ("", "required"),
            ("pool.local", "valid IPv4"),
            ("192.168.1.256", "between 0 and 255"),
        ],
    )
    def test_bad_host(self, host, fragment):
        """Test host validation errors."""
        result = validate_config({"ipAddress": host, "temperatureUnits": "F"})

        assert not result.is_valid
        assert any(fragment in e for e in result.errors)

    def test_bad_units(self):
        """Test that units other than F and C are rejected."""
        result = validate_config({"ipAddress": "192.168.1.100", "temperatureUnits": "K"})

        assert result.errors == ["temperatureUnits must be 'F' or 'C'"]

    @pytest.mark.parametrize("port", [0, 70000, "http"])
    def test_bad_port(self, port):
        """Test port range validation."""
        result = validate_config({"ipAddress": "192.168.1.100", "port": port})

        assert not result.is_valid

    def test_min_not_below_max(self):
        """Test that the minimum must be below the maximum."""
        result = validate_config(
            {
                "ipAddress": "192.168.1.100",
                "temperatureUnits": "F",
                "minimumTemperature": 90,
                "maximumTemperature": 80,
            }
        )

        assert "Minimum temperature must be less than maximum temperature" in result.errors

    def test_out_of_range_temperatures(self):
        """Test the per-unit allowed bounds."""
        result = validate_config(
            {
                "ipAddress": "192.168.1.100",
                "temperatureUnits": "C",
                "minimumTemperature": -5,
                "maximumTemperature": 60,
            }
        )

        assert "Minimum temperature must be between 0°C and 50°C" in result.errors
        assert "Maximum temperature must be between 10°C and 50°C" in result.errors

    def test_non_numeric_temperature(self):
        """Test that a temperature that is not a number is rejected."""
        result = validate_config(
            {"ipAddress": "192.168.1.100", "minimumTemperature": "warm"}
        )

        assert "Temperature values must be valid numbers" in result.errors

    def test_every_error_is_collected(self):
        """Test that validation does not stop at the first error."""
        result = validate_config({"ipAddress": "bad", "temperatureUnits": "K", "port": -1})

        assert len(result.errors) == 3


class TestSchemas:
    """Tests for the voluptuous schemas behind the validator."""

    def test_loopback_is_private(self):
        """Test that a loopback address is accepted without a warning."""
        result = validate_config({"ipAddress": "127.0.0.1", "temperatureUnits": "F"})

        assert result.is_valid
        assert result.warnings == []

    def test_unknown_boolean_takes_default(self):
        """Test that an unrecognized flag value falls back to its default."""
        result = validate_config(
            {"ipAddress": "192.168.1.100", "airTemp": "sometimes", "supportVSP": "maybe"}
        )

        assert result.config.air_temp is True
        assert result.config.support_vsp is False

    def test_celsius_bounds_follow_unit(self):
        """Test that setpoint bounds are checked against the configured unit."""
        result = validate_config(
            {"ipAddress": "192.168.1.100", "temperatureUnits": "C", "maximumTemperature": 104}
        )

        assert result.errors == ["Maximum temperature must be between 10°C and 50°C"]

    def test_identical_messages_are_reported_once(self):
        """Test that two unparsable temperatures give one error."""
        result = validate_config(
            {
                "ipAddress": "192.168.1.100",
                "minimumTemperature": "nan",
                "maximumTemperature": "hot",
            }
        )

        assert result.errors == ["Temperature values must be valid numbers"]
