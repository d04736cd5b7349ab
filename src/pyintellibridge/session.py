"""Session manager for a Pentair IntelliCenter controller.

ICSessionManager owns the TCP session to one controller and everything that
hangs off it: the frame decoder, the outbound command queue, the discovery
cycle, the entity store and registry, the dispatch router and the
temperature unit monitor.

Features:
- Handshake through a circuit breaker wrapping a retry with backoff
- Heartbeat that recycles the socket after a long silence
- Debounced reconnects after connection loss or repeated parse errors
- Rate limited, single worker command queue with a dead letter queue
- Idempotent cleanup and SIGTERM/SIGINT wiring

Example:
    session = ICSessionManager({"ipAddress": "192.168.1.100"}, listener)
    if await session.connect():
        session.set_circuit("C0003", True)
"""

from __future__ import annotations

import asyncio
import collections
import contextlib
import logging
import signal
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, cast

from .attributes import (
    ACT_ATTR,
    ERROR_COMMAND,
    OFF_STATUS,
    ON_STATUS,
    PARSE_ERROR_MARKER,
    REQUEST_COMMANDS,
    RESPONSE_BAD_REQUEST,
    SEND_QUERY,
    STATUS_ATTR,
    STATUS_COMMANDS,
)
from .codec import (
    ICFrameDecoder,
    IntelliCenterRequest,
    IntelliCenterResponse,
    build_set_params,
    build_subscribe,
    encode_request,
    iter_changes,
    sanitize_request,
)
from .config import ICConfigValidator
from .discovery import (
    DISCOVERY_PACING,
    DISCOVERY_SETTLE,
    DISCOVERY_TIMEOUT,
    ICDiscoveryOrchestrator,
    ICDiscoveryTimings,
)
from .dispatch import ICDispatchRouter
from .exceptions import (
    ICCircuitOpenError,
    ICConfigError,
    ICConnectionError,
    ICTimeoutError,
    is_connection_related,
)
from .heater import ICHeaterState
from .listener import notify
from .model import ICEntityStore
from .monitor import VALIDATION_INTERVAL, VALIDATION_WINDOW, ICTemperatureUnitMonitor
from .registry import ICRegistry
from .resilience import (
    CircuitState,
    ICCircuitBreaker,
    ICDeadLetterQueue,
    ICHealthMonitor,
    ICRateLimiter,
    with_retry,
)
from .topology import ICTopology, ICTopologyBuilder, transform_panels

if TYPE_CHECKING:
    from .config import ICBridgeConfig
    from .listener import ICSessionListener
    from .monitor import ICUnitConsistency
    from .topology import HeaterPumpScorer

_LOGGER = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 60.0  # seconds between silence checks
SILENCE_LIMIT = 4 * 60 * 60.0  # recycle the socket after this long without data
RECONNECT_DELAY = 30.0  # wait after a connection loss before reconnecting
RECONNECT_DEBOUNCE = 30.0  # minimum time between reconnect attempts
NETWORK_CHECK_TIMEOUT = 5.0
HANDSHAKE_TIMEOUT = 10.0
COMMAND_DELAY = 0.2  # pause after every write, the controller chokes on bursts

PARSE_ERROR_WINDOW = 300.0  # seconds before the parse error count restarts
PARSE_ERROR_WARN_LIMIT = 3  # counts up to this are warnings
PARSE_ERROR_FIRMWARE_COUNT = 4  # count at which a firmware hint is logged
PARSE_ERROR_RECONNECT_COUNT = 10  # count from which the socket is recycled


@dataclass(frozen=True)
class ICSessionTimings:
    """Timing settings of a session, in seconds."""

    heartbeat_interval: float = HEARTBEAT_INTERVAL
    silence_limit: float = SILENCE_LIMIT
    reconnect_delay: float = RECONNECT_DELAY
    reconnect_debounce: float = RECONNECT_DEBOUNCE
    network_check_timeout: float = NETWORK_CHECK_TIMEOUT
    handshake_timeout: float = HANDSHAKE_TIMEOUT
    command_delay: float = COMMAND_DELAY
    discovery_timeout: float = DISCOVERY_TIMEOUT
    discovery_pacing: float = DISCOVERY_PACING
    discovery_settle: float = DISCOVERY_SETTLE
    validation_interval: float = VALIDATION_INTERVAL
    validation_window: float = VALIDATION_WINDOW

    @property
    def discovery(self) -> ICDiscoveryTimings:
        return ICDiscoveryTimings(
            timeout=self.discovery_timeout,
            pacing=self.discovery_pacing,
            settle=self.discovery_settle,
        )


@dataclass
class ICSessionState:
    """Mutable connection state of a session."""

    socket_alive: bool = False
    reconnecting: bool = False
    last_reconnect_attempt: float | None = None
    last_message_received: float | None = None
    parse_error_count: int = 0
    parse_error_window_start: float = field(default_factory=time.monotonic)
    connect_count: int = 0
    shutting_down: bool = False


class ICSessionProtocol(asyncio.Protocol):
    """Forward socket events to the owning session manager."""

    def __init__(self, session: ICSessionManager) -> None:
        self._session = session
        self.transport: asyncio.Transport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast("asyncio.Transport", transport)
        self._session.connection_made(self, self.transport)

    def data_received(self, data: bytes) -> None:
        self._session.data_received(self, data)

    def connection_lost(self, exc: Exception | None) -> None:
        self.transport = None
        self._session.connection_lost(self, exc)


class ICSessionManager:
    """Manage the session to one IntelliCenter controller.

    Args:
        raw_config: Host configuration (camelCase keys, see ICConfigValidator).
        listener: Receives registrations and entity updates.
        timings: Timing overrides.
        skip_network_check: Skip the TCP reachability pre-check.
        scorer: Heater pump-circuit heuristic override.
        clock: Monotonic clock used for debouncing and parse error windows.

    Raises:
        ICConfigError: If the configuration is invalid.
    """

    def __init__(
        self,
        raw_config: Mapping[str, Any],
        listener: ICSessionListener | None = None,
        *,
        timings: ICSessionTimings | None = None,
        skip_network_check: bool = False,
        scorer: HeaterPumpScorer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        result = ICConfigValidator().validate(raw_config)
        for warning in result.warnings:
            _LOGGER.warning("Configuration: %s", warning)
        if not result.is_valid or result.config is None:
            raise ICConfigError(result.errors)

        self.config: ICBridgeConfig = result.config
        self.listener = listener
        self.timings = timings or ICSessionTimings()
        self._skip_network_check = skip_network_check
        self._scorer = scorer
        self._clock = clock

        self.state = ICSessionState(parse_error_window_start=clock())

        self.breaker = ICCircuitBreaker(clock=clock)
        self.health = ICHealthMonitor()
        self.limiter = ICRateLimiter(clock=clock)
        self.dead_letters = ICDeadLetterQueue()
        self.decoder = ICFrameDecoder(self.config.max_buffer_size)

        self.store = ICEntityStore()
        self.registry = ICRegistry(listener)
        self.monitor = ICTemperatureUnitMonitor(
            self.config.temperature_units,
            self._on_unit_warning,
            interval=self.timings.validation_interval,
            window=self.timings.validation_window,
        )
        self.router = ICDispatchRouter(self.store, self.registry, listener, self.monitor.collect)
        self.discovery = ICDiscoveryOrchestrator(
            self.send_command,
            self._on_discovery_complete,
            timings=self.timings.discovery,
        )
        self.topology: ICTopology | None = None

        self._protocol: ICSessionProtocol | None = None
        self._transport: asyncio.Transport | None = None
        self._queue: collections.deque[IntelliCenterRequest] = collections.deque()
        self._worker_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[Any] | None = None

    def __repr__(self) -> str:
        return (
            f"ICSessionManager(host={self.config.host!r}, port={self.config.port}, "
            f"alive={self.state.socket_alive})"
        )

    @property
    def connected(self) -> bool:
        """Return True while the socket is open."""
        return self.state.socket_alive and self._transport is not None

    @property
    def command_queue_length(self) -> int:
        return len(self._queue)

    # -----------------------------------------------------------------------
    # connecting

    async def connect(self) -> bool:
        """Open the session.

        Returns:
            True if the socket is open. Transport errors are logged and
            recorded as health failures, never raised.
        """
        self.state.shutting_down = False
        host, port = self.config.host, self.config.port

        if not self._skip_network_check and not await self._check_network():
            return False

        loop = asyncio.get_running_loop()
        started = loop.time()

        def log_retry(attempt: int, err: BaseException, delay: float) -> None:
            _LOGGER.warning(
                "Connection attempt %d to %s:%d failed (%s), retrying in %.1fs",
                attempt,
                host,
                port,
                err,
                delay,
            )

        try:
            await self.breaker.execute(lambda: with_retry(self._open, on_retry=log_retry))
        except ICCircuitOpenError as err:
            self.health.record_failure(str(err))
            _LOGGER.error("Not connecting to %s:%d: %s", host, port, err)
            return False
        except Exception as err:  # noqa: BLE001 - Connecting must not raise
            self.health.record_failure(str(err))
            if self.breaker.state is CircuitState.OPEN:
                _LOGGER.error(
                    "Failed to connect to %s:%d: %s (circuit breaker is now OPEN)",
                    host,
                    port,
                    err,
                )
            else:
                _LOGGER.error("Failed to connect to %s:%d: %s", host, port, err)
            return False

        self.health.record_success(loop.time() - started)
        _LOGGER.info("Connected to IntelliCenter at %s:%d", host, port)
        return True

    async def _check_network(self) -> bool:
        host, port = self.config.host, self.config.port
        try:
            async with asyncio.timeout(self.timings.network_check_timeout):
                _reader, writer = await asyncio.open_connection(host, port)
        except (OSError, TimeoutError) as err:
            self.health.record_failure(f"network check failed: {err}")
            _LOGGER.error("IntelliCenter at %s:%d is not reachable: %s", host, port, err)
            return False
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True

    async def _open(self) -> None:
        host, port = self.config.host, self.config.port
        loop = asyncio.get_running_loop()
        try:
            async with asyncio.timeout(self.timings.handshake_timeout):
                await loop.create_connection(lambda: ICSessionProtocol(self), host, port)
        except TimeoutError as err:
            raise ICTimeoutError(
                f"handshake with {host}:{port} timed out after {self.timings.handshake_timeout}s"
            ) from err
        except OSError as err:
            raise ICConnectionError.from_os_error(err, host, port) from err

    # -----------------------------------------------------------------------
    # socket events

    def connection_made(self, protocol: ICSessionProtocol, transport: asyncio.Transport) -> None:
        """Adopt a freshly opened socket and start discovery."""
        self._protocol = protocol
        self._transport = transport
        self.state.socket_alive = True
        self.state.connect_count += 1
        self.state.last_message_received = time.time()
        self.decoder.reset()
        self.discovery.reset()

        try:
            self.discovery.start()
        except Exception:  # noqa: BLE001 - Socket callback must not crash
            _LOGGER.exception("Failed to start discovery")
        self._ensure_worker()

        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def data_received(self, protocol: ICSessionProtocol, data: bytes) -> None:
        """Decode a chunk and handle every message it completes."""
        if protocol is not self._protocol:
            return
        self.state.last_message_received = time.time()
        for response in self.decoder.feed(data):
            try:
                self.handle_response(response)
            except Exception:  # noqa: BLE001 - Socket callback must not crash
                _LOGGER.exception("Failed to handle %s message", response.command)

    def connection_lost(self, protocol: ICSessionProtocol, exc: Exception | None) -> None:
        """Mark the socket dead and schedule a reconnect."""
        if protocol is not self._protocol:
            _LOGGER.debug("Ignoring connection loss of a previous socket")
            return
        self._protocol = None
        self._transport = None
        self.state.socket_alive = False
        if exc is not None:
            _LOGGER.warning("Connection to %s lost: %s", self.config.host, exc)
        else:
            _LOGGER.info("Connection to %s closed", self.config.host)

        if self._heartbeat_task and self._heartbeat_task is not asyncio.current_task():
            self._heartbeat_task.cancel()
        self._heartbeat_task = None

        if not self.state.shutting_down and not self.state.reconnecting:
            self._schedule_reconnect(self.timings.reconnect_delay)

    def _close_transport(self) -> None:
        transport = self._transport
        self.state.socket_alive = False
        if transport is not None and not transport.is_closing():
            transport.close()

    async def _heartbeat_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.timings.heartbeat_interval)
                last = self.state.last_message_received
                if not self.state.socket_alive or last is None:
                    continue
                silence = time.time() - last
                if silence > self.timings.silence_limit:
                    _LOGGER.warning(
                        "No data from %s for %.0fs, recycling the connection",
                        self.config.host,
                        silence,
                    )
                    self._close_transport()
                    self._schedule_reconnect(self.timings.reconnect_delay)
                    return
        except asyncio.CancelledError:
            _LOGGER.debug("Heartbeat cancelled")
        except Exception:  # noqa: BLE001 - Background task must not crash
            _LOGGER.exception("Heartbeat loop failed")

    # -----------------------------------------------------------------------
    # reconnecting

    def _schedule_reconnect(self, delay: float = 0.0, *, force: bool = False) -> None:
        if self.state.shutting_down:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_later(delay, force))

    async def _reconnect_later(self, delay: float, force: bool = False) -> None:
        try:
            while True:
                await asyncio.sleep(delay)
                if self.state.shutting_down:
                    return
                if self.state.socket_alive and not force:
                    return
                force = False
                if await self.maybe_reconnect():
                    return
                delay = self.timings.reconnect_delay
        except asyncio.CancelledError:
            _LOGGER.debug("Scheduled reconnect cancelled")
        except Exception:  # noqa: BLE001 - Background task must not crash
            _LOGGER.exception("Scheduled reconnect failed")

    def request_reconnect(self) -> None:
        """Recycle the socket from synchronous code, even if it still looks open."""
        self._schedule_reconnect(force=True)

    async def maybe_reconnect(self) -> bool:
        """Reconnect unless one is in flight or the last attempt was too recent.

        Returns:
            True if a reconnect ran and succeeded.
        """
        state = self.state
        if state.reconnecting:
            _LOGGER.warning("Reconnect already in progress, skipping")
            return False
        now = self._clock()
        if (
            state.last_reconnect_attempt is not None
            and now - state.last_reconnect_attempt < self.timings.reconnect_debounce
        ):
            _LOGGER.warning(
                "Last reconnect attempt was %.1fs ago, skipping",
                now - state.last_reconnect_attempt,
            )
            return False

        state.reconnecting = True
        state.last_reconnect_attempt = now
        _LOGGER.info("Reconnecting to %s:%d", self.config.host, self.config.port)
        try:
            self._close_transport()
            return await self.connect()
        finally:
            state.reconnecting = False

    # -----------------------------------------------------------------------
    # inbound

    def handle_response(self, response: IntelliCenterResponse) -> None:
        """Dispatch one decoded message."""
        command = response.command
        if not response.is_ok:
            if (
                command == ERROR_COMMAND
                and response.response == RESPONSE_BAD_REQUEST
                and PARSE_ERROR_MARKER in (response.description or "")
            ):
                self._record_parse_error(response)
            else:
                _LOGGER.error(
                    "IntelliCenter returned %s for %s (%s): %s",
                    response.response,
                    command,
                    response.message_id,
                    response.description,
                )
            return

        if command in REQUEST_COMMANDS:
            _LOGGER.debug("%s acknowledged (%s)", command, response.message_id)
        elif command == SEND_QUERY and response.is_hardware_definition:
            self.discovery.handle_response(response)
        elif command in STATUS_COMMANDS:
            if response.object_list is None:
                _LOGGER.error("%s without objectList: %s", command, response.raw)
                return
            for change in iter_changes(response.object_list):
                self.router.route(change)
        else:
            _LOGGER.debug("Ignoring %s message", command)

    def _record_parse_error(self, response: IntelliCenterResponse) -> None:
        state = self.state
        now = self._clock()
        if now - state.parse_error_window_start > PARSE_ERROR_WINDOW:
            state.parse_error_count = 0
            state.parse_error_window_start = now
        state.parse_error_count += 1
        count = state.parse_error_count

        if count <= PARSE_ERROR_WARN_LIMIT:
            _LOGGER.warning(
                "IntelliCenter could not parse a request (%d): %s", count, response.description
            )
        elif count == PARSE_ERROR_FIRMWARE_COUNT:
            _LOGGER.error(
                "Repeated parse errors from IntelliCenter (%d in %.0fs). "
                "This usually points to a firmware issue; consider updating the controller.",
                count,
                PARSE_ERROR_WINDOW,
            )
        else:
            _LOGGER.debug("Parse error %d: %s", count, response.description)

        if count >= PARSE_ERROR_RECONNECT_COUNT:
            _LOGGER.error("%d parse errors, reconnecting", count)
            self.request_reconnect()

    # -----------------------------------------------------------------------
    # outbound

    def send_command(self, request: IntelliCenterRequest) -> bool:
        """Queue a request for the writer (fire-and-forget).

        Returns:
            False if the rate limiter dropped the request.
        """
        if not self.limiter.try_acquire():
            _LOGGER.debug("Rate limit reached, dropping %s", request.command)
            return False
        if not self.state.socket_alive:
            _LOGGER.warning("Socket is not connected, queueing %s", request.command)
            self.request_reconnect()
        self._queue.append(sanitize_request(request))
        self._ensure_worker()
        return True

    def _ensure_worker(self) -> None:
        if self._worker_task and not self._worker_task.done():
            return
        if not self.state.socket_alive or not self._queue:
            return
        self._worker_task = asyncio.create_task(self._drain_queue())

    async def _drain_queue(self) -> None:
        try:
            while self._queue and self.state.socket_alive:
                request = self._queue.popleft()
                try:
                    if self._transport is None:
                        raise ICConnectionError("socket is not connected")
                    data = encode_request(request)
                    _LOGGER.debug("Sending %s", data)
                    self._transport.write(data)
                    await asyncio.sleep(self.timings.command_delay)
                except asyncio.CancelledError:
                    raise
                except Exception as err:  # noqa: BLE001 - Queue worker must not crash
                    self.dead_letters.add(request.to_dict(), 1, str(err), request.message_id)
                    _LOGGER.error("Failed to send %s: %s", request.command, err)
                    if isinstance(err, OSError) or is_connection_related(err):
                        self.request_reconnect()
                        break
        except asyncio.CancelledError:
            _LOGGER.debug("Command worker cancelled")

    def set_params(self, objnam: str, params: Mapping[str, Any]) -> bool:
        """Write params on one object."""
        return self.send_command(build_set_params(objnam, params))

    def subscribe(self, objnams: Iterable[str], keys: Iterable[str]) -> bool:
        """Subscribe objects to change notifications of keys."""
        results = [self.send_command(request) for request in build_subscribe(objnams, keys)]
        return all(results)

    def request_parameters(self, objnam: str, keys: Iterable[str]) -> bool:
        """Ask for the current values of keys on one object."""
        return self.subscribe([objnam], keys)

    # control shortcuts

    def set_circuit(self, objnam: str, on: bool) -> bool:
        """Turn a circuit, feature or body on or off."""
        return self.set_params(objnam, {STATUS_ATTR: ON_STATUS if on else OFF_STATUS})

    def set_light_color(self, objnam: str, color: str) -> bool:
        """Turn a color light on with the given color or show code."""
        return self.set_params(objnam, {STATUS_ATTR: ON_STATUS, ACT_ATTR: color})

    def heater_state(self, binding_id: str) -> ICHeaterState | None:
        """Return the live state of a heater binding ('{heater}.{body}')."""
        return self.registry.heater_instances.get(binding_id)

    def set_heater_mode(self, binding_id: str, on: bool) -> bool:
        """Turn a heater on or off for its body."""
        state = self.heater_state(binding_id)
        if state is None:
            _LOGGER.warning("Unknown heater %s", binding_id)
            return False
        return all([self.send_command(request) for request in state.mode_commands(on)])

    def set_heater_setpoint(
        self, binding_id: str, celsius: float, *, cooling: bool = False
    ) -> bool:
        """Set the heating (or cooling) setpoint of a heater's body."""
        state = self.heater_state(binding_id)
        if state is None:
            _LOGGER.warning("Unknown heater %s", binding_id)
            return False
        if cooling:
            return self.send_command(state.cooling_setpoint_command(celsius))
        return self.send_command(state.heating_setpoint_command(celsius))

    # -----------------------------------------------------------------------
    # discovery

    def _on_discovery_complete(self, tree: Any) -> None:
        config = self.config
        panels = transform_panels(tree, config.include_all_circuits)
        topology = ICTopologyBuilder(
            air_temp=config.air_temp,
            support_vsp=config.support_vsp,
            scorer=self._scorer,
        ).build(panels)

        self.store.replace_with(topology.store)
        for registration in topology.registrations:
            self.registry.register(registration)
        removed = self.registry.cleanup_orphans(topology.discovered_ids)
        if removed:
            _LOGGER.info("Removed %d orphaned registrations", len(removed))

        for binding in topology.heater_bindings:
            heater = self.store.heater(binding.heater_id)
            body = self.store.body(binding.body_id)
            if heater is None or body is None:
                continue
            state = ICHeaterState(heater, body, config)
            state.update()
            self.registry.heater_instances[binding.id] = state

        for keys, objnams in topology.subscriptions.items():
            self.subscribe(objnams, keys)

        self.topology = topology
        _LOGGER.info(
            "Discovered %d panels, %d entities, %d registrations",
            len(panels),
            len(self.store),
            len(self.registry),
        )
        notify(self.listener, "on_discovery_complete", topology)
        self.monitor.start()

    def _on_unit_warning(self, result: ICUnitConsistency) -> None:
        notify(self.listener, "on_temperature_unit_warning", result)

    # -----------------------------------------------------------------------
    # health and lifecycle

    def get_system_health(self) -> dict[str, Any]:
        """Return a snapshot of health, breaker, limiter, DLQ and socket state."""
        return {
            "health": self.health.get_health().to_dict(),
            "circuit_breaker": self.breaker.get_stats().to_dict(),
            "rate_limiter": self.limiter.get_stats().to_dict(),
            "dead_letter_queue_size": len(self.dead_letters),
            "connection": {
                "socket_alive": self.state.socket_alive,
                "last_message_received": self.state.last_message_received,
                "reconnecting": self.state.reconnecting,
                "command_queue_length": len(self._queue),
            },
        }

    def reset_error_handling(self) -> None:
        """Reset the breaker and health monitor and clear the dead letters."""
        self.breaker.reset()
        self.health.reset()
        self.dead_letters.clear()
        _LOGGER.info("Error handling state reset")

    async def cleanup(self) -> None:
        """Tear the session down. Safe to call more than once."""
        self.state.shutting_down = True
        current = asyncio.current_task()
        for task in (self._heartbeat_task, self._reconnect_task, self._worker_task):
            if task and task is not current and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._heartbeat_task = self._reconnect_task = self._worker_task = None
        await self.discovery.cancel()
        await self.monitor.stop()

        self._close_transport()
        self._protocol = None
        self._transport = None

        self.store.clear()
        self.registry.clear()
        self._queue.clear()
        self.decoder.reset()
        self.discovery.reset()
        self.monitor.reset()
        self.topology = None
        self.state = ICSessionState(
            parse_error_window_start=self._clock(), shutting_down=True
        )
        self.reset_error_handling()
        _LOGGER.debug("Session cleaned up")

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Clean up and stop the loop on SIGTERM and SIGINT."""
        loop = loop or asyncio.get_running_loop()

        async def shutdown(sig: signal.Signals) -> None:
            _LOGGER.info("Received %s, shutting down", sig.name)
            await self.cleanup()
            loop.stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: asyncio.ensure_future(shutdown(s)))
