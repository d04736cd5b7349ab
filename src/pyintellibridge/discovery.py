"""Hardware discovery for an IntelliCenter system.

The controller does not answer a single "describe everything" query
reliably, so discovery asks for one hardware category at a time and merges
the partial answers into a single hardware definition tree.

Features:
- Serial GetHardwareDefinition queries, one category at a time
- Per-query timeout with a single retry pass for categories that timed out
- Pacing between queries so the controller is not overwhelmed
- Pure, idempotent deep merge of the partial answers
- Completion reported exactly once per cycle, with partial data if needed

Example:
    orchestrator = ICDiscoveryOrchestrator(session.send_command, on_tree)
    orchestrator.start()
    ...
    orchestrator.handle_response(response)  # for every SendQuery received
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .attributes import DISCOVERY_COMMANDS, OBJNAM_KEY
from .codec import build_query

if TYPE_CHECKING:
    from .codec import IntelliCenterRequest, IntelliCenterResponse

_LOGGER = logging.getLogger(__name__)

DISCOVERY_TIMEOUT = 30.0  # seconds to wait for each category
DISCOVERY_PACING = 0.5  # delay between successful queries
DISCOVERY_SETTLE = 1.0  # delay after a timeout and before each retry


# ---------------------------------------------------------------------------
# Merge


def merge_answer(base: Any, addition: Any) -> Any:
    """Deep merge addition into base, returning a new tree.

    - object + object: keys are merged recursively
    - array + array: items sharing an 'objnam' are merged, other items are
      appended unless an equal item is already present
    - anything else: addition wins

    Neither input is modified, and merging a tree with itself returns an
    equal tree.
    """
    if isinstance(base, dict) and isinstance(addition, dict):
        merged = dict(base)
        for key, value in addition.items():
            merged[key] = merge_answer(merged[key], value) if key in merged else value
        return merged

    if isinstance(base, list) and isinstance(addition, list):
        merged_list = list(base)
        for item in addition:
            objnam = item.get(OBJNAM_KEY) if isinstance(item, dict) else None
            if objnam is not None:
                index = _index_of_objnam(merged_list, objnam)
                if index is not None:
                    merged_list[index] = merge_answer(merged_list[index], item)
                    continue
            if item not in merged_list:
                merged_list.append(item)
        return merged_list

    return addition


def _index_of_objnam(items: list[Any], objnam: str) -> int | None:
    for index, item in enumerate(items):
        if isinstance(item, dict) and item.get(OBJNAM_KEY) == objnam:
            return index
    return None


# ---------------------------------------------------------------------------
# Orchestrator


class DiscoveryState(Enum):
    """Discovery cycle states."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"


@dataclass(frozen=True)
class ICDiscoveryTimings:
    """Discovery timing settings, in seconds."""

    timeout: float = DISCOVERY_TIMEOUT
    pacing: float = DISCOVERY_PACING
    settle: float = DISCOVERY_SETTLE


class ICDiscoveryOrchestrator:
    """Sequence the hardware queries of a discovery cycle.

    Queries are sent one at a time through send. Responses must be handed
    back through handle_response. When every category has answered (or
    timed out twice) on_complete is called once with the merged tree.
    """

    def __init__(
        self,
        send: Callable[[IntelliCenterRequest], Any],
        on_complete: Callable[[Any], Any],
        commands: Sequence[str] = DISCOVERY_COMMANDS,
        timings: ICDiscoveryTimings | None = None,
    ) -> None:
        self._send = send
        self._on_complete = on_complete
        self._commands = tuple(commands)
        self._timings = timings or ICDiscoveryTimings()

        self._state = DiscoveryState.IDLE
        self._task: asyncio.Task[None] | None = None
        self._tree: Any = None
        self._sent: list[str] = []
        self._failed: list[str] = []
        self._answered: list[str] = []
        self._pending_id: str | None = None
        self._pending_command: str | None = None
        self._pending_future: asyncio.Future[None] | None = None
        self._timed_out_ids: dict[str, str] = {}
        self._completed = False

    @property
    def state(self) -> DiscoveryState:
        """Return the current cycle state."""
        return self._state

    @property
    def tree(self) -> Any:
        """Return the merged hardware definition accumulated so far."""
        return self._tree

    @property
    def sent(self) -> list[str]:
        """Return every category sent this cycle, in order (retries included)."""
        return list(self._sent)

    @property
    def failed(self) -> list[str]:
        """Return the categories that timed out at least once this cycle."""
        return list(self._failed)

    @property
    def answered(self) -> list[str]:
        """Return the categories that were answered this cycle."""
        return list(self._answered)

    def reset(self) -> None:
        """Forget the bookkeeping of the current cycle."""
        self._state = DiscoveryState.IDLE
        self._tree = None
        self._sent = []
        self._failed = []
        self._answered = []
        self._pending_id = None
        self._pending_command = None
        self._pending_future = None
        self._timed_out_ids = {}
        self._completed = False

    def start(self) -> asyncio.Task[None]:
        """Start a new discovery cycle, cancelling one still running."""
        if self._task and not self._task.done():
            self._task.cancel()
        self.reset()
        self._state = DiscoveryState.RUNNING
        self._task = asyncio.create_task(self._run())
        return self._task

    async def cancel(self) -> None:
        """Stop the running cycle without completing it."""
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._state is DiscoveryState.RUNNING:
            self._state = DiscoveryState.IDLE

    async def wait(self) -> None:
        """Wait for the running cycle to finish."""
        if self._task:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _run(self) -> None:
        try:
            for index, command in enumerate(self._commands):
                answered = await self._query(command)
                if index < len(self._commands) - 1:
                    await asyncio.sleep(
                        self._timings.pacing if answered else self._timings.settle
                    )

            retries = [c for c in self._failed if self._sent.count(c) == 1]
            if retries:
                _LOGGER.info("Retrying discovery for %s", ", ".join(retries))
            for command in retries:
                await asyncio.sleep(self._timings.settle)
                await self._query(command)
        except asyncio.CancelledError:
            _LOGGER.debug("Discovery cycle cancelled")
            raise
        except Exception:  # noqa: BLE001 - Discovery task must not crash
            _LOGGER.exception("Discovery cycle failed, completing with partial data")
        self._complete()

    async def _query(self, command: str) -> bool:
        """Send one category query and wait for its answer."""
        request = build_query(command)
        loop = asyncio.get_running_loop()
        self._pending_id = request.message_id
        self._pending_command = command
        self._pending_future = loop.create_future()
        self._sent.append(command)
        _LOGGER.debug("Discovering %s (%s)", command, request.message_id)
        self._send(request)

        try:
            async with asyncio.timeout(self._timings.timeout):
                await self._pending_future
        except TimeoutError:
            _LOGGER.warning(
                "Discovery of %s timed out after %.1fs", command, self._timings.timeout
            )
            self._timed_out_ids[request.message_id] = command
            if command not in self._failed:
                self._failed.append(command)
            return False
        finally:
            if self._pending_id == request.message_id:
                self._pending_id = None
                self._pending_command = None
                self._pending_future = None

        if command not in self._answered:
            self._answered.append(command)
        return True

    def handle_response(self, response: IntelliCenterResponse) -> None:
        """Merge a GetHardwareDefinition answer into the tree.

        A response to a query that already timed out is merged without
        affecting the query currently in flight.
        """
        late_command = (
            self._timed_out_ids.pop(response.message_id, None) if response.message_id else None
        )
        self._merge(response.answer)

        if late_command is not None:
            _LOGGER.debug("Merged late discovery answer for %s", late_command)
            if late_command not in self._answered:
                self._answered.append(late_command)
            return

        future = self._pending_future
        if future is not None and not future.done():
            future.set_result(None)
        else:
            _LOGGER.debug("Merged discovery answer with no query pending")

    def _merge(self, answer: Any) -> None:
        if answer is None:
            return
        self._tree = answer if self._tree is None else merge_answer(self._tree, answer)

    def _complete(self) -> None:
        if self._completed:
            return
        self._completed = True
        self._state = DiscoveryState.COMPLETE
        missing = [c for c in self._commands if c not in self._answered]
        if missing:
            _LOGGER.warning("Discovery complete with missing categories: %s", ", ".join(missing))
        else:
            _LOGGER.info("Discovery complete (%d queries)", len(self._sent))
        try:
            self._on_complete(self._tree)
        except Exception:  # noqa: BLE001 - Completion callback must not crash discovery
            _LOGGER.exception("Discovery completion handler failed")
