"""Integration tests for pyintellibridge using mock server.

These tests verify the full flow of communication between a session and
an IntelliCenter system: handshake, discovery, subscriptions, writes and
reconnects.
"""

import asyncio

import pytest

from pyintellibridge import ICSessionManager, ICSessionTimings
from pyintellibridge.attributes import DISCOVERY_COMMANDS
from pyintellibridge.codec import IntelliCenterRequest
from tests.hardware import hardware_answers
from tests.mock_server import MockIntelliCenterServer

FAST = ICSessionTimings(
    heartbeat_interval=60,
    reconnect_delay=0.1,
    reconnect_debounce=0,
    command_delay=0,
    discovery_timeout=0.5,
    discovery_pacing=0,
    discovery_settle=0,
    validation_interval=60,
)


async def wait_for(predicate, timeout: float = 5.0) -> None:
    """Poll predicate until it holds or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.01)


class TestSessionIntegration:
    """Integration tests for ICSessionManager."""

    @pytest.fixture
    async def server(self):
        """Create and start mock server."""
        async with MockIntelliCenterServer() as server:
            for category, answer in hardware_answers().items():
                server.set_answer(category, answer)
            server.set_object("SSS11", PROBE="70")
            server.set_object("FTR01", STATUS="OFF", ACT="OFF")
            yield server

    @pytest.fixture
    async def session(self, server, listener):
        """Create a session against the mock server."""
        session = ICSessionManager(
            {"ipAddress": server.host, "port": server.port, "temperatureUnits": "F"},
            listener,
            timings=FAST,
            skip_network_check=True,
        )
        yield session
        await session.cleanup()

    @pytest.mark.asyncio
    async def test_connect_and_discover(self, server, session, listener):
        """Test that connecting runs a full discovery cycle."""
        assert await session.connect() is True
        assert session.connected is True

        await wait_for(lambda: listener.hooks("on_discovery_complete"))

        assert server.queried_categories() == list(DISCOVERY_COMMANDS)
        assert len(listener.hooks("on_registered")) == 7
        assert session.store.pump("PMP01") is not None

    @pytest.mark.asyncio
    async def test_subscriptions_deliver_current_values(self, server, session):
        """Test that subscribing yields the controller's current values."""
        await session.connect()

        await wait_for(lambda: len(server.requests_for("RequestParamList")) == 5)
        await wait_for(lambda: session.store.sensor("SSS11").probe == 70.0)

    @pytest.mark.asyncio
    async def test_notification(self, server, session, listener):
        """Test that a pushed NotifyList updates the entity."""
        await session.connect()
        await wait_for(lambda: listener.hooks("on_discovery_complete"))

        await server.send_notification(
            [{"objnam": "C0003", "params": {"STATUS": "ON", "USE": "PARTY"}}]
        )

        await wait_for(lambda: session.store.circuit("C0003").is_on)
        assert [args[1] for args in listener.hooks("on_color_changed")] == ["PARTY"]

    @pytest.mark.asyncio
    async def test_set_circuit(self, server, session, listener):
        """Test that a write reaches the controller and its echo updates the entity."""
        await session.connect()
        await wait_for(lambda: listener.hooks("on_discovery_complete"))

        assert session.set_circuit("FTR01", True) is True

        await wait_for(lambda: server.get_object("FTR01")["STATUS"] == "ON")
        await wait_for(lambda: session.store.circuit("FTR01").is_on)
        (_pump, rpm, _gpm, _watts) = listener.hooks("on_pump_metrics")[-1]
        assert rpm == 3000

    @pytest.mark.asyncio
    async def test_silent_category_is_retried(self, server, session, listener):
        """Test that a category the controller ignored once is asked again."""
        server.drop_first("PUMPS")

        await session.connect()
        await wait_for(lambda: listener.hooks("on_discovery_complete"))

        assert server.queried_categories().count("PUMPS") == 2
        assert session.discovery.failed == ["PUMPS"]
        assert session.store.pump("PMP01") is not None

    @pytest.mark.asyncio
    async def test_parse_error_is_counted(self, server, session, listener):
        """Test that a ParseError from the controller is recorded."""
        await session.connect()
        await wait_for(lambda: listener.hooks("on_discovery_complete"))

        session.send_command(IntelliCenterRequest(command="Bogus"))

        await wait_for(lambda: session.state.parse_error_count == 1)

    @pytest.mark.asyncio
    async def test_reconnect_after_disconnect(self, server, session, listener):
        """Test that the session reconnects and rediscovers after losing the socket."""
        await session.connect()
        await wait_for(lambda: listener.hooks("on_discovery_complete"))

        await server.disconnect_clients()

        await wait_for(lambda: server.connection_count == 2)
        await wait_for(lambda: len(listener.hooks("on_discovery_complete")) == 2)
        assert session.connected is True
        assert session.state.connect_count == 2
        assert len(listener.hooks("on_registered")) == 7
