"""Wire-level constants for the IntelliCenter protocol."""

# ---------------------------------------------------------------------------
# Transport

DEFAULT_PORT = 6681  # raw TCP (Telnet negotiation is not mandatory)
DEFAULT_MAX_BUFFER_SIZE = 1_048_576  # 1 MiB of unterminated data
MIN_BUFFER_SIZE = 65_536  # 64KB
MAX_BUFFER_SIZE = 16_777_216  # 16MB

# ---------------------------------------------------------------------------
# Message envelope keys

COMMAND_KEY = "command"
MESSAGE_ID_KEY = "messageID"
RESPONSE_KEY = "response"
DESCRIPTION_KEY = "description"
ARGUMENTS_KEY = "arguments"
QUERY_NAME_KEY = "queryName"
ANSWER_KEY = "answer"
OBJECT_LIST_KEY = "objectList"
OBJNAM_KEY = "objnam"
PARAMS_KEY = "params"
KEYS_KEY = "keys"
CHANGES_KEY = "changes"

# ---------------------------------------------------------------------------
# Commands

GET_QUERY = "GetQuery"  # request: enumerate hardware
REQUEST_PARAM_LIST = "RequestParamList"  # request: subscribe to keys
SET_PARAM_LIST = "SetParamList"  # request: write keys

SEND_QUERY = "SendQuery"  # response to GetQuery
NOTIFY_LIST = "NotifyList"  # pushed status changes
WRITE_PARAM_LIST = "WriteParamList"  # echo of a write
ERROR_COMMAND = "Error"

REQUEST_COMMANDS = frozenset([GET_QUERY, REQUEST_PARAM_LIST, SET_PARAM_LIST])
STATUS_COMMANDS = frozenset([NOTIFY_LIST, WRITE_PARAM_LIST])

GET_HARDWARE_DEFINITION = "GetHardwareDefinition"

RESPONSE_OK = "200"
RESPONSE_BAD_REQUEST = "400"
PARSE_ERROR_MARKER = "ParseError"

# Hardware categories, queried in this order during discovery
DISCOVERY_COMMANDS: tuple[str, ...] = (
    "CIRCUITS",
    "PUMPS",
    "CHEMS",
    "VALVES",
    "HEATERS",
    "SENSORS",
    "GROUPS",
)

# ---------------------------------------------------------------------------
# Object attributes

OBJTYP_ATTR = "OBJTYP"
SUBTYP_ATTR = "SUBTYP"
SNAME_ATTR = "SNAME"
OBJLIST_ATTR = "OBJLIST"
CIRCUITS_ATTR = "CIRCUITS"
CIRCUIT_ATTR = "CIRCUIT"
PARENT_ATTR = "PARENT"
FEATR_ATTR = "FEATR"
BODY_ATTR = "BODY"
COOL_ATTR = "COOL"

STATUS_ATTR = "STATUS"
ACT_ATTR = "ACT"
USE_ATTR = "USE"
LSTTMP_ATTR = "LSTTMP"
HTSRC_ATTR = "HTSRC"
HEATER_ATTR = "HEATER"
MODE_ATTR = "MODE"
HTMODE_ATTR = "HTMODE"
LOTMP_ATTR = "LOTMP"
HITMP_ATTR = "HITMP"
SPEED_ATTR = "SPEED"
SELECT_ATTR = "SELECT"
PROBE_ATTR = "PROBE"
GPM_ATTR = "GPM"
WATTS_ATTR = "WATTS"
RPM_ATTR = "RPM"

MIN_ATTR = "MIN"  # pump minimum RPM
MAX_ATTR = "MAX"  # pump maximum RPM
MINF_ATTR = "MINF"  # pump minimum GPM
MAXF_ATTR = "MAXF"  # pump maximum GPM

# ---------------------------------------------------------------------------
# Object types

PANEL_TYPE = "PANEL"
MODULE_TYPE = "MODULE"
CIRCUIT_TYPE = "CIRCUIT"
BODY_TYPE = "BODY"
HEATER_TYPE = "HEATER"
PUMP_TYPE = "PUMP"
PMPCIRC_TYPE = "PMPCIRC"
SENSE_TYPE = "SENSE"

# ---------------------------------------------------------------------------
# Values

ON_STATUS = "ON"
OFF_STATUS = "OFF"
NO_HEATER_ID = "00000"  # body has no heater selected
NO_COLOR = "65535"  # ACT placeholder when a light has no active color

SPEED_TYPE_RPM = "RPM"
SPEED_TYPE_GPM = "GPM"

SENSOR_AIR = "AIR"
SENSOR_POOL = "POOL"

INTELLIBRITE_SUBTYPE = "INTELLI"
LIGHT_SHOW_SUBTYPE = "LITSHO"
HCOMBO_SUBTYPE = "HCOMBO"

# Heat mode values understood by multi-mode heaters (UltraTemp ETi Hybrid)
HEAT_MODE_OFF = 1
HEAT_MODE_GAS_ONLY = 7
HEAT_MODE_HEAT_PUMP_ONLY = 8
HEAT_MODE_HYBRID = 9
HEAT_MODE_DUAL = 10
HEAT_MODE_DEFAULT_ON = HEAT_MODE_DUAL

# HTMODE reported on a body while it is cooling
HTMODE_COOLING = 9
