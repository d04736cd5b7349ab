"""Configuration validation for an IntelliCenter session.

The host hands over a loosely typed mapping (camelCase keys, values that
may be strings). ICConfigValidator runs it through voluptuous schemas and
normalizes it into a frozen ICBridgeConfig, collecting every error and
warning rather than stopping at the first one.

Example:
    result = validate_config({"ipAddress": "192.168.1.100", "temperatureUnits": "F"})
    if not result.is_valid:
        raise ICConfigError(result.errors)
    config = result.config
"""

from __future__ import annotations

import ipaddress
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import voluptuous as vol

from .attributes import DEFAULT_MAX_BUFFER_SIZE, DEFAULT_PORT, MAX_BUFFER_SIZE, MIN_BUFFER_SIZE

_LOGGER = logging.getLogger(__name__)

FAHRENHEIT = "F"
CELSIUS = "C"

# Placeholders stored in place of the vestigial credentials
PLACEHOLDER_USERNAME = "unused_placeholder"
PLACEHOLDER_PASSWORD = "unused_placeholder_password"

# Default setpoint bounds per unit
DEFAULT_TEMPERATURE_RANGE = {
    FAHRENHEIT: (40.0, 104.0),
    CELSIUS: (4.0, 40.0),
}

# Allowed bounds for (minimum, maximum) per unit
TEMPERATURE_LIMITS = {
    FAHRENHEIT: ((32.0, 120.0), (50.0, 120.0)),
    CELSIUS: ((0.0, 50.0), (10.0, 50.0)),
}

HEAT_MODE_OVERRIDE_MIN = 2
HEAT_MODE_OVERRIDE_MAX = 15

HOST_REQUIRED = "ipAddress is required and must be a string"
HOST_FORMAT = "ipAddress is invalid: Must be a valid IPv4 address (e.g., 192.168.1.100)"
HOST_OCTETS = "ipAddress is invalid: IP address octets must be between 0 and 255"
NOT_A_NUMBER = "Temperature values must be valid numbers"

BOOLEAN_DEFAULTS = {
    "supportVSP": False,
    "airTemp": True,
    "includeAllCircuits": False,
}


def _ipv4_host(value: Any) -> str:
    """Trim and check a dotted-quad IPv4 address."""
    if not isinstance(value, str):
        raise vol.Invalid(HOST_REQUIRED)
    host = value.strip()
    try:
        ipaddress.IPv4Address(host)
    except ipaddress.AddressValueError as err:
        if "> 255" in str(err):
            raise vol.Invalid(HOST_OCTETS) from err
        raise vol.Invalid(HOST_FORMAT) from err
    return host


def _not_nan(value: float) -> float:
    if math.isnan(value):
        raise vol.Invalid(NOT_A_NUMBER)
    return value


CONNECTION_SCHEMA = vol.Schema(
    {
        vol.Required("ipAddress", msg=HOST_REQUIRED): _ipv4_host,
        vol.Optional("port", default=DEFAULT_PORT): vol.All(
            vol.Coerce(int),
            vol.Range(min=1, max=65535),
            msg="port must be a number between 1 and 65535",
        ),
        vol.Optional("temperatureUnits", default=FAHRENHEIT): vol.In(
            [FAHRENHEIT, CELSIUS], msg="temperatureUnits must be 'F' or 'C'"
        ),
    },
    extra=vol.ALLOW_EXTRA,
)

HEAT_MODE_OVERRIDE = vol.Schema(
    vol.All(vol.Coerce(int), vol.Range(min=0, max=HEAT_MODE_OVERRIDE_MAX))
)

BUFFER_SIZE = vol.Schema(
    vol.All(
        vol.Coerce(int, msg="Buffer size must be a number"),
        vol.Range(min=1, msg="Buffer size must be positive"),
        vol.Range(
            min=MIN_BUFFER_SIZE,
            msg=f"Buffer size must be at least 64KB ({MIN_BUFFER_SIZE} bytes)",
        ),
        vol.Range(
            max=MAX_BUFFER_SIZE,
            msg=f"Buffer size must be at most 16MB ({MAX_BUFFER_SIZE} bytes)",
        ),
    )
)

BOOLEAN = vol.Schema(vol.Boolean())


def _temperature(low: float, high: float, label: str, units: str) -> vol.All:
    return vol.All(
        vol.Coerce(float, msg=NOT_A_NUMBER),
        _not_nan,
        vol.Range(
            min=low,
            max=high,
            msg=f"{label} temperature must be between {low:g}°{units} and {high:g}°{units}",
        ),
        lambda value: round(value, 1),
    )


def temperature_schema(units: str) -> vol.Schema:
    """Return the setpoint bounds schema for a unit."""
    default_min, default_max = DEFAULT_TEMPERATURE_RANGE[units]
    (min_low, min_high), (max_low, max_high) = TEMPERATURE_LIMITS[units]
    return vol.Schema(
        {
            vol.Optional("minimumTemperature", default=default_min): _temperature(
                min_low, min_high, "Minimum", units
            ),
            vol.Optional("maximumTemperature", default=default_max): _temperature(
                max_low, max_high, "Maximum", units
            ),
        },
        extra=vol.ALLOW_EXTRA,
    )


@dataclass(frozen=True)
class ICBridgeConfig:
    """Validated session configuration."""

    host: str
    port: int = DEFAULT_PORT
    username: str = PLACEHOLDER_USERNAME
    password: str = PLACEHOLDER_PASSWORD
    temperature_units: str = FAHRENHEIT
    minimum_temperature: float = 40.0
    maximum_temperature: float = 104.0
    support_vsp: bool = False
    air_temp: bool = True
    include_all_circuits: bool = False
    heat_mode_override: int | None = None
    max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE

    @property
    def is_fahrenheit(self) -> bool:
        """Return True if the controller reports Fahrenheit."""
        return self.temperature_units == FAHRENHEIT


@dataclass
class ICValidationResult:
    """Outcome of a configuration validation."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    config: ICBridgeConfig | None = None

    @property
    def is_valid(self) -> bool:
        """Return True if no error was found."""
        return not self.errors

    def add_errors(self, err: vol.MultipleInvalid) -> None:
        for error in err.errors:
            if error.msg not in self.errors:
                self.errors.append(error.msg)


class ICConfigValidator:
    """Validate and normalize raw session configuration."""

    def validate(self, raw: Any) -> ICValidationResult:
        """Validate raw, returning every error and warning found.

        Empty strings and None count as missing keys.

        Args:
            raw: The host supplied configuration mapping.

        Returns:
            An ICValidationResult; config is only set when it is valid.
        """
        result = ICValidationResult()
        if not isinstance(raw, Mapping):
            result.errors.append("Configuration is required and must be an object")
            return result
        data = {key: value for key, value in raw.items() if value is not None and value != ""}

        connection: dict[str, Any] | None = None
        try:
            connection = CONNECTION_SCHEMA(data)
        except vol.MultipleInvalid as err:
            result.add_errors(err)

        if "temperatureUnits" not in data:
            result.warnings.append("temperatureUnits not specified, defaulting to Fahrenheit")
        units = data.get("temperatureUnits")
        if units not in TEMPERATURE_LIMITS:
            units = FAHRENHEIT

        temperatures: dict[str, Any] | None = None
        try:
            temperatures = temperature_schema(units)(data)
        except vol.MultipleInvalid as err:
            result.add_errors(err)
        if (
            temperatures is not None
            and temperatures["minimumTemperature"] >= temperatures["maximumTemperature"]
        ):
            result.errors.append("Minimum temperature must be less than maximum temperature")

        override = self._heat_mode_override(data.get("heatModeOverride"), result)
        buffer_size = self._buffer_size(data.get("maxBufferSize"), result)

        if result.errors or connection is None or temperatures is None:
            return result

        host = connection["ipAddress"]
        if not ipaddress.IPv4Address(host).is_private:
            result.warnings.append(
                "IP address appears to be on a public network. "
                "Ensure your IntelliCenter is properly secured."
            )

        flags = {
            key: _boolean(data.get(key), default) for key, default in BOOLEAN_DEFAULTS.items()
        }
        result.config = ICBridgeConfig(
            host=host,
            port=connection["port"],
            temperature_units=connection["temperatureUnits"],
            minimum_temperature=temperatures["minimumTemperature"],
            maximum_temperature=temperatures["maximumTemperature"],
            support_vsp=flags["supportVSP"],
            air_temp=flags["airTemp"],
            include_all_circuits=flags["includeAllCircuits"],
            heat_mode_override=override,
            max_buffer_size=buffer_size,
        )
        return result

    def _heat_mode_override(self, value: Any, result: ICValidationResult) -> int | None:
        if value is None:
            return None
        try:
            mode = HEAT_MODE_OVERRIDE(value)
        except vol.Invalid:
            mode = None
        if mode == 0:
            return None
        if mode == 1:
            result.warnings.append(
                'heatModeOverride=1 is "Heat Source OFF" and cannot be used as an ON mode, '
                "ignoring"
            )
            return None
        if mode is None:
            result.warnings.append(
                f"heatModeOverride must be 0 (auto) or a number between "
                f"{HEAT_MODE_OVERRIDE_MIN} and {HEAT_MODE_OVERRIDE_MAX}, "
                f"ignoring value: {value}"
            )
        return mode

    def _buffer_size(self, value: Any, result: ICValidationResult) -> int:
        if value is None:
            return DEFAULT_MAX_BUFFER_SIZE
        try:
            return BUFFER_SIZE(value)
        except vol.Invalid as err:
            result.warnings.append(f"Invalid maxBufferSize: {err.msg}. Using default.")
            return DEFAULT_MAX_BUFFER_SIZE


def _boolean(value: Any, default: bool) -> bool:
    if value is None:
        return default
    try:
        return BOOLEAN(value)
    except vol.Invalid:
        _LOGGER.debug("Ignoring non-boolean value %r", value)
        return default


def validate_config(raw: Any) -> ICValidationResult:
    """Validate raw configuration with the default validator."""
    return ICConfigValidator().validate(raw)
