"""Attribute, command and object type definitions for the IntelliCenter protocol."""

from .constants import *  # noqa: F403
from .equipment import (
    BODY_KEYS,
    COLOR_FEATURE_KEYS,
    COLOR_LIGHT_SUBTYPES,
    FEATURE_KEYS,
    INTELLIBRITE_COLORS,
    INTELLIBRITE_OPTIONS,
    INTELLIBRITE_SHOWS,
    PUMP_CIRCUIT_KEYS,
    PUMP_TYPE_MAPPING,
    SENSOR_KEYS,
    VARIABLE_SPEED_PUMP_SUBTYPES,
)  # noqa: F401
