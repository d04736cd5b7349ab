"""Equipment attribute sets (subscriptions, pump kinds, light options)."""

from .constants import (
    ACT_ATTR,
    GPM_ATTR,
    HEATER_ATTR,
    HITMP_ATTR,
    HTMODE_ATTR,
    HTSRC_ATTR,
    INTELLIBRITE_SUBTYPE,
    LIGHT_SHOW_SUBTYPE,
    LOTMP_ATTR,
    LSTTMP_ATTR,
    MODE_ATTR,
    PROBE_ATTR,
    RPM_ATTR,
    SELECT_ATTR,
    SPEED_ATTR,
    STATUS_ATTR,
    USE_ATTR,
    WATTS_ATTR,
)

# Keys subscribed for each pump circuit
PUMP_CIRCUIT_KEYS: tuple[str, ...] = (
    STATUS_ATTR,  # (ON/OFF)
    ACT_ATTR,  # (str) active setting
    SPEED_ATTR,  # (int) speed setting, RPM or GPM depending on SELECT
    SELECT_ATTR,  # 'RPM' or 'GPM'
    RPM_ATTR,  # (int) real time RPM
    GPM_ATTR,  # (int) real time flow
    WATTS_ATTR,  # (int) real time power
)

# Keys subscribed for each body of water
BODY_KEYS: tuple[str, ...] = (
    STATUS_ATTR,  # (ON/OFF)
    LSTTMP_ATTR,  # (int) last water temperature
    HTSRC_ATTR,  # (objnam) heater currently engaged, '00000' for none
    HEATER_ATTR,  # (objnam) heater selected for the body
    HTMODE_ATTR,  # (int) 0 idle, 1..8 heating, 9 cooling
    MODE_ATTR,  # (int) multi-mode heater setting
    HITMP_ATTR,  # (int) cooling setpoint
    LOTMP_ATTR,  # (int) heating setpoint
)

# Keys subscribed for a plain feature circuit
FEATURE_KEYS: tuple[str, ...] = (STATUS_ATTR, ACT_ATTR)

# Keys subscribed for a color light or light show
COLOR_FEATURE_KEYS: tuple[str, ...] = (STATUS_ATTR, ACT_ATTR, USE_ATTR)

# Keys subscribed for a temperature sensor
SENSOR_KEYS: tuple[str, ...] = (PROBE_ATTR,)

COLOR_LIGHT_SUBTYPES = frozenset([INTELLIBRITE_SUBTYPE, LIGHT_SHOW_SUBTYPE])

# Telnet SUBTYP to pump kind
PUMP_TYPE_MAPPING: dict[str, str] = {
    "SPEED": "VS",  # variable speed
    "VSF": "VSF",  # variable speed/flow
    "FLOW": "VF",  # variable flow
    "SINGLE": "SS",  # single speed
    "DUAL": "DS",  # dual speed
}

VARIABLE_SPEED_PUMP_SUBTYPES = frozenset(["SPEED", "VSF"])

# IntelliBrite fixed colors, as (ACT code, label)
INTELLIBRITE_COLORS: tuple[tuple[str, str], ...] = (
    ("WHITER", "White"),
    ("REDR", "Red"),
    ("GREENR", "Green"),
    ("BLUER", "Blue"),
    ("MAGNTAR", "Magenta"),
)

# IntelliBrite light shows, as (ACT code, label)
INTELLIBRITE_SHOWS: tuple[tuple[str, str], ...] = (
    ("SAMMOD", "Sam"),
    ("PARTY", "Party"),
    ("ROMAN", "Romance"),
    ("CARIB", "Caribbean"),
    ("AMERCA", "American"),
    ("SSET", "Sunset"),
    ("ROYAL", "Royal"),
)

INTELLIBRITE_OPTIONS = INTELLIBRITE_COLORS + INTELLIBRITE_SHOWS
