"""Wire codec for the IntelliCenter line-delimited JSON protocol.

The controller speaks newline terminated JSON objects in both directions.
This module turns raw socket chunks back into complete messages and
serializes outbound requests:

- ICFrameDecoder buffers partial chunks (bounded), splits complete ones on
  newlines and decodes every brace-delimited line with orjson
- IntelliCenterRequest / IntelliCenterResponse are the typed records
- sanitize_request / encode_request prepare a request for the wire
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import orjson

from .attributes import (
    ANSWER_KEY,
    ARGUMENTS_KEY,
    CHANGES_KEY,
    COMMAND_KEY,
    DEFAULT_MAX_BUFFER_SIZE,
    DESCRIPTION_KEY,
    GET_HARDWARE_DEFINITION,
    GET_QUERY,
    KEYS_KEY,
    MESSAGE_ID_KEY,
    OBJECT_LIST_KEY,
    OBJNAM_KEY,
    PARAMS_KEY,
    QUERY_NAME_KEY,
    REQUEST_PARAM_LIST,
    RESPONSE_KEY,
    RESPONSE_OK,
    SET_PARAM_LIST,
)
from .exceptions import ICProtocolError

_LOGGER = logging.getLogger(__name__)

# Maximum number of objects per RequestParamList
MAX_OBJECTS_PER_REQUEST = 50

# Number of characters from each end of an undecodable line kept in logs
LOG_EXCERPT_LENGTH = 50

NEWLINE = 10  # byte value of '\n'

MESSAGE_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

# Characters removed from free-text arguments
_UNSAFE_ARGUMENT_CHARS = re.compile(r"[<>\"'&;]")
# Characters allowed in object names
_UNSAFE_OBJNAM_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def new_message_id() -> str:
    """Return a fresh UUID v4 message ID."""
    return str(uuid.uuid4())


def is_valid_message_id(message_id: Any) -> bool:
    """Return True if message_id is a UUID formatted string."""
    return isinstance(message_id, str) and MESSAGE_ID_PATTERN.match(message_id) is not None


# ---------------------------------------------------------------------------
# Records


@dataclass
class IntelliCenterRequest:
    """An outbound request.

    Attributes:
        command: GetQuery, RequestParamList or SetParamList.
        message_id: UUID string echoed back by the controller.
        arguments: Free-text argument (the hardware category for GetQuery).
        query_name: Query name for GetQuery.
        object_list: Subscribe entries ({objnam, keys}) or set entries
            ({objnam, params}).
    """

    command: str
    message_id: str = field(default_factory=new_message_id)
    arguments: str | None = None
    query_name: str | None = None
    object_list: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire dictionary."""
        result: dict[str, Any] = {COMMAND_KEY: self.command, MESSAGE_ID_KEY: self.message_id}
        if self.query_name is not None:
            result[QUERY_NAME_KEY] = self.query_name
        if self.arguments is not None:
            result[ARGUMENTS_KEY] = self.arguments
        if self.object_list is not None:
            result[OBJECT_LIST_KEY] = self.object_list
        return result

    @property
    def objnams(self) -> list[str]:
        """Return the object names addressed by this request."""
        return [entry[OBJNAM_KEY] for entry in self.object_list or () if OBJNAM_KEY in entry]


@dataclass
class IntelliCenterResponse:
    """An inbound message, either a response or an unsolicited notification."""

    command: str
    response: str | None = None
    description: str | None = None
    message_id: str | None = None
    query_name: str | None = None
    answer: Any = None
    object_list: list[dict[str, Any]] | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, msg: Mapping[str, Any]) -> IntelliCenterResponse:
        """Build a response from a decoded JSON object.

        Raises:
            ICProtocolError: If the message has no command.
        """
        command = msg.get(COMMAND_KEY)
        if not isinstance(command, str):
            raise ICProtocolError("message has no command")
        object_list = msg.get(OBJECT_LIST_KEY)
        return cls(
            command=command,
            response=_as_optional_str(msg.get(RESPONSE_KEY)),
            description=_as_optional_str(msg.get(DESCRIPTION_KEY)),
            message_id=_as_optional_str(msg.get(MESSAGE_ID_KEY)),
            query_name=_as_optional_str(msg.get(QUERY_NAME_KEY)),
            answer=msg.get(ANSWER_KEY),
            object_list=list(object_list) if isinstance(object_list, list) else None,
            raw=dict(msg),
        )

    @property
    def is_ok(self) -> bool:
        """Return True unless the response carries a non-200 code."""
        return self.response is None or self.response == RESPONSE_OK

    @property
    def is_hardware_definition(self) -> bool:
        """Return True for an answer to a GetHardwareDefinition query."""
        return self.query_name == GET_HARDWARE_DEFINITION


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def iter_changes(object_list: Iterable[Mapping[str, Any]]) -> Iterable[Mapping[str, Any]]:
    """Yield every status change in an objectList.

    An entry may carry a nested 'changes' list, otherwise the entry itself
    is the change.
    """
    for entry in object_list:
        changes = entry.get(CHANGES_KEY)
        if isinstance(changes, list):
            yield from changes
        else:
            yield entry


# ---------------------------------------------------------------------------
# Decoding


class ICFrameDecoder:
    """Reassemble newline terminated JSON messages from socket chunks.

    A chunk that does not end with a newline is held in a bounded buffer.
    A chunk that does end with one flushes the buffer: the combined bytes
    are split on newlines and every non-empty line is decoded. The buffer
    works on bytes so that multibyte characters split across chunks are
    reassembled intact.

    Example:
        decoder = ICFrameDecoder()
        for response in decoder.feed(data):
            handle(response)
    """

    def __init__(
        self,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_buffer_size = max_buffer_size
        self._clock = clock
        self._buffer = bytearray()
        self.last_received: float | None = None
        self.dropped_bytes = 0
        self.malformed_lines = 0

    @property
    def buffered(self) -> int:
        """Return the number of bytes waiting for a newline."""
        return len(self._buffer)

    def reset(self) -> None:
        """Discard any partial data."""
        self._buffer.clear()

    def feed(self, chunk: bytes | str) -> list[IntelliCenterResponse]:
        """Consume a chunk, returning every message it completes."""
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if not chunk:
            return []

        if chunk[-1] != NEWLINE:
            if len(self._buffer) + len(chunk) > self._max_buffer_size:
                _LOGGER.error(
                    "Exceeded max buffer size (%d + %d > %d) without a newline. Discarding buffer.",
                    len(self._buffer),
                    len(chunk),
                    self._max_buffer_size,
                )
                self.dropped_bytes += len(self._buffer) + len(chunk)
                self._buffer.clear()
            else:
                self._buffer.extend(chunk)
            return []

        self.last_received = self._clock()
        data = bytes(self._buffer) + chunk
        self._buffer.clear()

        messages: list[IntelliCenterResponse] = []
        for raw_line in data.split(b"\n"):
            line = raw_line.strip()
            if not line:
                continue
            message = self.decode_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def decode_line(self, line: bytes) -> IntelliCenterResponse | None:
        """Decode a single trimmed line, or log and return None."""
        if not (line.startswith(b"{") and line.endswith(b"}")):
            self.malformed_lines += 1
            _LOGGER.warning(
                "Skipping malformed JSON line (not properly bracketed): %s",
                _excerpt(line),
            )
            return None
        try:
            return IntelliCenterResponse.from_dict(orjson.loads(line))
        except orjson.JSONDecodeError as err:
            self.malformed_lines += 1
            _LOGGER.error(
                "Failed to parse JSON line (length %d): %s ... %s - %s",
                len(line),
                line[:LOG_EXCERPT_LENGTH].decode("utf-8", errors="replace"),
                line[-LOG_EXCERPT_LENGTH:].decode("utf-8", errors="replace"),
                err,
            )
        except ICProtocolError as err:
            self.malformed_lines += 1
            _LOGGER.error("Dropping message (length %d): %s", len(line), err)
        return None


def _excerpt(line: bytes) -> str:
    if len(line) <= LOG_EXCERPT_LENGTH * 2:
        return line.decode("utf-8", errors="replace")
    head = line[:LOG_EXCERPT_LENGTH].decode("utf-8", errors="replace")
    tail = line[-LOG_EXCERPT_LENGTH:].decode("utf-8", errors="replace")
    return f"{head}...{tail} (length {len(line)})"


# ---------------------------------------------------------------------------
# Encoding


def sanitize_request(request: IntelliCenterRequest) -> IntelliCenterRequest:
    """Return a copy of request that is safe to put on the wire.

    Free-text arguments lose the characters <>"'&; , object names keep only
    [A-Za-z0-9_-], and a missing or malformed message ID is replaced with a
    new one. This is hygiene, not a trust boundary.
    """
    changes: dict[str, Any] = {}

    if request.arguments is not None:
        cleaned = _UNSAFE_ARGUMENT_CHARS.sub("", request.arguments)
        if cleaned != request.arguments:
            changes["arguments"] = cleaned

    if not is_valid_message_id(request.message_id):
        new_id = new_message_id()
        _LOGGER.warning(
            "Invalid messageID %r on %s, regenerating as %s",
            request.message_id,
            request.command,
            new_id,
        )
        changes["message_id"] = new_id

    if request.object_list is not None:
        object_list = []
        for entry in request.object_list:
            objnam = entry.get(OBJNAM_KEY)
            if isinstance(objnam, str):
                entry = {**entry, OBJNAM_KEY: _UNSAFE_OBJNAM_CHARS.sub("", objnam)}
            object_list.append(entry)
        changes["object_list"] = object_list

    return replace(request, **changes) if changes else request


def encode_request(request: IntelliCenterRequest) -> bytes:
    """Serialize request as a newline terminated JSON frame."""
    return orjson.dumps(request.to_dict()) + b"\n"


# ---------------------------------------------------------------------------
# Request builders


def build_query(category: str, message_id: str | None = None) -> IntelliCenterRequest:
    """Build a GetHardwareDefinition query for one hardware category."""
    return IntelliCenterRequest(
        command=GET_QUERY,
        message_id=message_id or new_message_id(),
        query_name=GET_HARDWARE_DEFINITION,
        arguments=category,
    )


def build_subscribe(objnams: Iterable[str], keys: Iterable[str]) -> list[IntelliCenterRequest]:
    """Build RequestParamList requests subscribing objnams to keys.

    Objects are batched, at most MAX_OBJECTS_PER_REQUEST per request.
    """
    key_list = list(keys)
    entries = [{OBJNAM_KEY: objnam, KEYS_KEY: key_list} for objnam in objnams]
    return [
        IntelliCenterRequest(
            command=REQUEST_PARAM_LIST,
            object_list=entries[i : i + MAX_OBJECTS_PER_REQUEST],
        )
        for i in range(0, len(entries), MAX_OBJECTS_PER_REQUEST)
    ]


def build_set_params(objnam: str, params: Mapping[str, Any]) -> IntelliCenterRequest:
    """Build a SetParamList request writing params on objnam."""
    return IntelliCenterRequest(
        command=SET_PARAM_LIST,
        object_list=[{OBJNAM_KEY: objnam, PARAMS_KEY: dict(params)}],
    )
