"""Exception hierarchy for pyintellibridge.

All errors raised by the library derive from ICError so that callers can
catch a single base class. Transient transport and framing problems are
handled inside the session and never reach collaborators; the exceptions
below surface only from explicit calls (construction, connect helpers,
resilience primitives used directly).
"""

from __future__ import annotations

import errno as _errno
import socket

# errno values treated as transient connectivity failures
RETRYABLE_ERRNOS = frozenset(
    {
        _errno.ECONNREFUSED,
        _errno.ETIMEDOUT,
        _errno.EHOSTUNREACH,
        _errno.ENETUNREACH,
    }
)


class ICError(Exception):
    """Base exception for all pyintellibridge errors."""


class ICConnectionError(ICError):
    """Raised when the TCP session cannot be established or is lost.

    Attributes:
        errno: The underlying OS errno, when one is known.
        retryable: True if the failure belongs to a transient class
            (refused, timed out, unreachable, DNS lookup failure).
    """

    def __init__(
        self, message: str, *, errno: int | None = None, retryable: bool | None = None
    ) -> None:
        super().__init__(message)
        self.errno = errno
        if retryable is None:
            retryable = errno in RETRYABLE_ERRNOS
        self.retryable = retryable

    @classmethod
    def from_os_error(cls, err: OSError, host: str, port: int) -> ICConnectionError:
        """Wrap an OSError raised while connecting to host:port."""
        # socket.gaierror carries a resolver code rather than an errno
        retryable = err.errno in RETRYABLE_ERRNOS or isinstance(err, socket.gaierror)
        return cls(
            f"failed to connect to {host}:{port}: {err}",
            errno=err.errno,
            retryable=retryable,
        )


class ICTimeoutError(ICError, TimeoutError):
    """Raised when an operation does not complete in time."""


class ICCircuitOpenError(ICError):
    """Raised when the circuit breaker rejects a call without attempting it."""


class ICProtocolError(ICError):
    """Raised for wire-level framing or encoding problems."""


class ICResponseError(ICError):
    """Raised when the controller answers with a non-OK response code.

    Attributes:
        code: The response code reported by the controller (e.g. "400").
        description: The description field from the response, if any.
    """

    def __init__(self, code: str, description: str | None = None) -> None:
        super().__init__(f"IntelliCenter error {code}: {description or 'no description'}")
        self.code = code
        self.description = description


class ICConfigError(ICError):
    """Raised when the session configuration is invalid.

    Attributes:
        errors: Every individual validation failure, in discovery order.
    """

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid configuration: " + "; ".join(errors))
        self.errors = list(errors)


def is_retryable(err: BaseException) -> bool:
    """Return True if err belongs to the transient connectivity class."""
    if isinstance(err, ICConnectionError):
        return err.retryable
    if isinstance(err, TimeoutError):
        return True
    if isinstance(err, OSError):
        return err.errno in RETRYABLE_ERRNOS or isinstance(err, socket.gaierror)
    return False


def is_connection_related(err: BaseException) -> bool:
    """Return True if a send failure suggests the socket itself is gone."""
    if isinstance(err, (ICConnectionError, ConnectionError)):
        return True
    text = str(err).lower()
    return "connection" in text or "socket" in text
