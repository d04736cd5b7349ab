"""Locate IntelliCenter controllers on the LAN with mDNS.

Requires the optional zeroconf dependency:
`pip install pyintellibridge[discovery]`.

Example:
    host = await locate_controller_host(timeout=5.0)
    if host:
        session = ICSessionManager({"ipAddress": host})
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .attributes import DEFAULT_PORT

if TYPE_CHECKING:
    from zeroconf import Zeroconf
    from zeroconf.asyncio import AsyncZeroconf

_LOGGER = logging.getLogger(__name__)

SERVICE_TYPES = ("_http._tcp.local.", "_pentair._tcp.local.")
LOCATE_TIMEOUT = 10.0  # seconds to browse
RESOLVE_TIMEOUT_MS = 3000  # per service, as zeroconf expects milliseconds
MARKERS = ("pentair", "intellicenter")
MODEL_PROPERTY = b"model"


@dataclass(frozen=True)
class ICControllerInfo:
    """A controller found on the network."""

    name: str
    host: str
    port: int = DEFAULT_PORT
    model: str | None = None


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    return "" if value is None else str(value)


def is_intellicenter_service(name: str, properties: Mapping[Any, Any] | None) -> bool:
    """Return True if the service name or TXT properties mention Pentair/IntelliCenter."""
    texts = [name]
    for key, value in (properties or {}).items():
        texts.append(_decode(key))
        texts.append(_decode(value))
    return any(marker in text.lower() for text in texts for marker in MARKERS)


class _ServiceCollector:
    """zeroconf service listener forwarding events onto the event loop.

    zeroconf calls the listener from its own thread, so events are handed
    over with call_soon_threadsafe.
    """

    def __init__(
        self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[tuple[str, str]]
    ) -> None:
        self._loop = loop
        self._queue = queue

    def _forward(self, service_type: str, name: str) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, (service_type, name))

    def add_service(self, zc: Zeroconf, service_type: str, name: str) -> None:  # noqa: ARG002
        self._forward(service_type, name)

    def update_service(self, zc: Zeroconf, service_type: str, name: str) -> None:  # noqa: ARG002
        self._forward(service_type, name)

    def remove_service(self, zc: Zeroconf, service_type: str, name: str) -> None:  # noqa: ARG002
        _LOGGER.debug("Service removed: %s", name)


async def _resolve(
    aiozc: AsyncZeroconf, service_type: str, name: str
) -> ICControllerInfo | None:
    info = await aiozc.async_get_service_info(service_type, name, timeout=RESOLVE_TIMEOUT_MS)
    if info is None:
        return None
    service_name = info.name or name
    if not is_intellicenter_service(service_name, info.properties):
        return None
    addresses = info.parsed_addresses()
    if not addresses:
        _LOGGER.debug("Service %s has no address", service_name)
        return None
    model = _decode((info.properties or {}).get(MODEL_PROPERTY)) or None
    return ICControllerInfo(
        name=service_name,
        host=addresses[0],
        port=info.port or DEFAULT_PORT,
        model=model,
    )


async def locate_controllers(
    timeout: float = LOCATE_TIMEOUT,
    service_types: Iterable[str] = SERVICE_TYPES,
) -> list[ICControllerInfo]:
    """Browse the LAN for IntelliCenter controllers.

    Args:
        timeout: How long to browse, in seconds.
        service_types: mDNS service types to browse.

    Returns:
        Every controller found, in discovery order.

    Raises:
        ImportError: If zeroconf is not installed.
    """
    try:
        from zeroconf import ServiceBrowser
        from zeroconf.asyncio import AsyncZeroconf
    except ImportError as err:
        raise ImportError(
            "Locating controllers requires zeroconf. "
            "Install it with: pip install pyintellibridge[discovery]"
        ) from err

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
    collector = _ServiceCollector(loop, queue)
    found: dict[str, ICControllerInfo] = {}

    aiozc = AsyncZeroconf()
    browsers = []
    try:
        for service_type in service_types:
            browsers.append(ServiceBrowser(aiozc.zeroconf, service_type, collector))

        deadline = loop.time() + timeout
        while (remaining := deadline - loop.time()) > 0:
            try:
                async with asyncio.timeout(remaining):
                    service_type, name = await queue.get()
            except TimeoutError:
                break
            try:
                controller = await _resolve(aiozc, service_type, name)
            except Exception:  # noqa: BLE001 - One bad service must not stop browsing
                _LOGGER.exception("Failed to resolve %s", name)
                continue
            if controller is not None and name not in found:
                _LOGGER.debug(
                    "Found %s at %s:%d", controller.name, controller.host, controller.port
                )
                found[name] = controller
    finally:
        for browser in browsers:
            browser.cancel()
        await aiozc.async_close()

    return list(found.values())


async def locate_controller_host(timeout: float = LOCATE_TIMEOUT) -> str | None:
    """Return the address of the first controller found, if any."""
    controllers = await locate_controllers(timeout)
    return controllers[0].host if controllers else None
