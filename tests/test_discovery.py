"""Tests for hardware discovery."""

from __future__ import annotations

import asyncio
import copy

import pytest

from pyintellibridge.attributes import DISCOVERY_COMMANDS
from pyintellibridge.codec import IntelliCenterResponse
from pyintellibridge.discovery import (
    DiscoveryState,
    ICDiscoveryOrchestrator,
    ICDiscoveryTimings,
    merge_answer,
)
from tests.hardware import circuits_answer, hardware_answers, pumps_answer

FAST = ICDiscoveryTimings(timeout=0.2, pacing=0, settle=0)


def answer_for(request, answers) -> IntelliCenterResponse:
    return IntelliCenterResponse(
        command="SendQuery",
        response="200",
        message_id=request.message_id,
        query_name="GetHardwareDefinition",
        answer=copy.deepcopy(answers.get(request.arguments, [])),
    )


class AnsweringController:
    """Answers every query right away, except for the categories told to stay silent."""

    def __init__(self, answers, silent=()) -> None:
        self.answers = answers
        self.silent = list(silent)
        self.requests = []
        self.orchestrator: ICDiscoveryOrchestrator | None = None

    def send(self, request) -> bool:
        self.requests.append(request)
        if request.arguments in self.silent:
            self.silent.remove(request.arguments)
            return True
        response = answer_for(request, self.answers)
        asyncio.get_running_loop().call_soon(self.orchestrator.handle_response, response)
        return True


def make_orchestrator(controller, completed) -> ICDiscoveryOrchestrator:
    orchestrator = ICDiscoveryOrchestrator(
        lambda request: controller.send(request), completed.append, timings=FAST
    )
    controller.orchestrator = orchestrator
    return orchestrator


class TestMergeAnswer:
    """Tests for merge_answer."""

    def test_merges_objects_by_objnam(self):
        """Test that panels from two categories are merged into one."""
        merged = merge_answer(circuits_answer(), pumps_answer())

        assert len(merged) == 1
        objlist = merged[0]["params"]["OBJLIST"]
        assert [item["objnam"] for item in objlist] == ["M0101", "FTR01", "PMP01"]

    def test_inputs_are_not_modified(self):
        """Test that merging is pure."""
        base = circuits_answer()
        addition = pumps_answer()
        snapshot = copy.deepcopy(base)

        merge_answer(base, addition)

        assert base == snapshot
        assert addition == pumps_answer()

    def test_idempotent(self):
        """Test that merging a tree with itself changes nothing."""
        tree = circuits_answer()

        assert merge_answer(tree, tree) == tree

    def test_scalars_and_plain_lists(self):
        """Test that scalars are replaced and equal list items are not duplicated."""
        assert merge_answer({"a": 1, "b": [1, 2]}, {"a": 2, "b": [2, 3]}) == {
            "a": 2,
            "b": [1, 2, 3],
        }
        assert merge_answer([1], {"x": 1}) == {"x": 1}


class TestOrchestrator:
    """Tests for ICDiscoveryOrchestrator."""

    @pytest.mark.asyncio
    async def test_queries_every_category_in_order(self):
        """Test a full cycle merges every answer and completes once."""
        completed = []
        controller = AnsweringController(hardware_answers())
        orchestrator = make_orchestrator(controller, completed)

        await orchestrator.start()

        assert [r.arguments for r in controller.requests] == [
            "CIRCUITS",
            "PUMPS",
            "CHEMS",
            "VALVES",
            "HEATERS",
            "SENSORS",
            "GROUPS",
        ]
        assert orchestrator.state is DiscoveryState.COMPLETE
        assert orchestrator.failed == []
        assert len(completed) == 1
        objnams = [item["objnam"] for item in completed[0][0]["params"]["OBJLIST"]]
        assert objnams == ["M0101", "FTR01", "PMP01", "SSS11", "SSW11"]

    @pytest.mark.asyncio
    async def test_timed_out_category_is_retried_once(self):
        """Test that a category that timed out is queried again at the end."""
        completed = []
        controller = AnsweringController(hardware_answers(), silent=["PUMPS"])
        orchestrator = make_orchestrator(controller, completed)

        await orchestrator.start()

        categories = [r.arguments for r in controller.requests]
        assert categories[-1] == "PUMPS"
        assert categories.count("PUMPS") == 2
        assert orchestrator.failed == ["PUMPS"]
        assert "PUMPS" in orchestrator.answered
        assert len(completed) == 1
        objnams = [item["objnam"] for item in completed[0][0]["params"]["OBJLIST"]]
        assert "PMP01" in objnams

    @pytest.mark.asyncio
    async def test_completes_with_partial_data(self):
        """Test that a category failing twice still completes the cycle."""
        completed = []
        controller = AnsweringController(hardware_answers(), silent=["PUMPS", "PUMPS"])
        orchestrator = make_orchestrator(controller, completed)

        await orchestrator.start()

        assert [r.arguments for r in controller.requests].count("PUMPS") == 2
        assert "PUMPS" not in orchestrator.answered
        assert len(completed) == 1
        objnams = [item["objnam"] for item in completed[0][0]["params"]["OBJLIST"]]
        assert "PMP01" not in objnams

    @pytest.mark.asyncio
    async def test_late_answer_is_merged(self):
        """Test that an answer arriving after its timeout is still merged."""
        completed = []
        answers = hardware_answers()
        controller = AnsweringController(answers, silent=["PUMPS", "PUMPS"])
        orchestrator = make_orchestrator(controller, completed)
        late = []

        original_send = controller.send

        def send(request):
            if request.arguments == "CHEMS":
                pumps_request = next(r for r in controller.requests if r.arguments == "PUMPS")
                late.append(answer_for(pumps_request, answers))
                orchestrator.handle_response(late[-1])
            return original_send(request)

        controller.send = send

        await orchestrator.start()

        assert "PUMPS" in orchestrator.answered
        objnams = [item["objnam"] for item in completed[0][0]["params"]["OBJLIST"]]
        assert "PMP01" in objnams

    @pytest.mark.asyncio
    async def test_cancel_does_not_complete(self):
        """Test that a cancelled cycle never reports completion."""
        completed = []
        controller = AnsweringController({}, silent=["CIRCUITS"])
        orchestrator = ICDiscoveryOrchestrator(
            controller.send, completed.append, timings=ICDiscoveryTimings(timeout=10)
        )
        controller.orchestrator = orchestrator

        orchestrator.start()
        await asyncio.sleep(0)
        await orchestrator.cancel()

        assert completed == []
        assert orchestrator.state is DiscoveryState.IDLE

    @pytest.mark.asyncio
    async def test_completion_handler_errors_are_contained(self):
        """Test that a failing completion handler does not break the cycle."""
        controller = AnsweringController(hardware_answers())

        def explode(tree):
            raise RuntimeError("boom")

        orchestrator = ICDiscoveryOrchestrator(controller.send, explode, timings=FAST)
        controller.orchestrator = orchestrator

        await orchestrator.start()

        assert orchestrator.state is DiscoveryState.COMPLETE

    def test_reset(self):
        """Test that reset clears the cycle bookkeeping."""
        orchestrator = ICDiscoveryOrchestrator(lambda request: True, lambda tree: None)
        orchestrator.handle_response(
            IntelliCenterResponse(command="SendQuery", answer=circuits_answer())
        )
        assert orchestrator.tree is not None

        orchestrator.reset()

        assert orchestrator.tree is None
        assert orchestrator.sent == []
        assert orchestrator.state is DiscoveryState.IDLE

    @pytest.mark.asyncio
    async def test_two_silent_categories_recover_on_retry(self):
        """Test that two categories timing out once are both retried and merged."""
        completed = []
        controller = AnsweringController(hardware_answers(), silent=["PUMPS", "SENSORS"])
        orchestrator = make_orchestrator(controller, completed)
        loop = asyncio.get_running_loop()
        started = loop.time()

        await orchestrator.start()
        elapsed = loop.time() - started

        categories = [r.arguments for r in controller.requests]
        assert categories[-2:] == ["PUMPS", "SENSORS"]
        assert sorted(orchestrator.failed) == ["PUMPS", "SENSORS"]
        assert sorted(orchestrator.answered) == sorted(DISCOVERY_COMMANDS)
        assert len(completed) == 1
        objnams = [item["objnam"] for item in completed[0][0]["params"]["OBJLIST"]]
        assert objnams == ["M0101", "FTR01", "PMP01", "SSS11", "SSW11"]
        assert elapsed < 7 * FAST.pacing + 2 * FAST.timeout + 0.5
