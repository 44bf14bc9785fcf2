"""Tests for the agent registry."""

import asyncio
import time

import pytest

from codeorbit.agent import Agent
from codeorbit.errors import DuplicateAgentError
from codeorbit.schemas import AgentResult, Subtask


class EchoAgent(Agent):
    """Echoes input after an optional delay, recording completion order."""

    def __init__(self, agent_id, capabilities=(), delay=0.0, completed=None):
        super().__init__(agent_id, capabilities)
        self.delay = delay
        self.completed = completed if completed is not None else []
        self.hook_calls = []

    async def run(self, input, context=None):
        await asyncio.sleep(self.delay)
        self.completed.append(self.agent_id)
        return AgentResult.ok(f"{self.agent_id}:{input}")

    async def on_subtask_result(self, result, context):
        self.hook_calls.append((result, context))


class FailingAgent(Agent):
    async def run(self, input, context=None):
        raise RuntimeError("boom")


class SyncAgent:
    """Plain object honoring the contract with a synchronous run."""

    def __init__(self, agent_id):
        self.agent_id = agent_id
        self.capabilities = frozenset({"sync"})

    def run(self, input, context=None):
        return f"sync {input}"


class BadReturnAgent(Agent):
    async def run(self, input, context=None):
        return 42


class TestRegistration:
    def test_register_and_get(self, registry):
        agent = EchoAgent("frontend")
        registry.register(agent)

        assert registry.get("frontend") is agent
        assert "frontend" in registry
        assert len(registry) == 1

    def test_duplicate_registration_rejected(self, registry):
        original = EchoAgent("frontend")
        registry.register(original)

        with pytest.raises(DuplicateAgentError) as exc_info:
            registry.register(EchoAgent("frontend"))

        assert "frontend" in str(exc_info.value)
        assert registry.get("frontend") is original
        assert len(registry) == 1

    def test_get_missing_returns_none(self, registry):
        """No fallback substitution on a lookup miss."""
        registry.register(EchoAgent("frontend"))
        assert registry.get("backend") is None

    def test_unregister(self, registry):
        registry.register(EchoAgent("frontend"))
        assert registry.unregister("frontend") is True
        assert registry.unregister("frontend") is False
        assert registry.get("frontend") is None

    def test_clear(self, registry):
        registry.register(EchoAgent("a"))
        registry.register(EchoAgent("b"))
        registry.clear()
        assert registry.list_agents() == []

    def test_list_agents_keeps_registration_order(self, registry):
        for agent_id in ["docs", "backend", "frontend"]:
            registry.register(EchoAgent(agent_id))
        assert [a.agent_id for a in registry.list_agents()] == ["docs", "backend", "frontend"]


class TestFindByCapabilities:
    @pytest.fixture
    def populated(self, registry):
        registry.register(EchoAgent("frontend", ["ui-planning", "component-generation"]))
        registry.register(EchoAgent("designer", ["ui-planning"]))
        registry.register(EchoAgent("backend", ["api-design"]))
        return registry

    def test_superset_match_in_insertion_order(self, populated):
        found = populated.find_by_capabilities(["ui-planning"])
        assert [a.agent_id for a in found] == ["frontend", "designer"]

    def test_all_capabilities_required(self, populated):
        found = populated.find_by_capabilities({"ui-planning", "component-generation"})
        assert [a.agent_id for a in found] == ["frontend"]

    def test_no_match_returns_empty(self, populated):
        assert populated.find_by_capabilities(["quantum"]) == []

    def test_empty_requirement_matches_all(self, populated):
        assert len(populated.find_by_capabilities([])) == 3


class TestExecuteWithAgent:
    @pytest.mark.asyncio
    async def test_success(self, registry):
        registry.register(EchoAgent("frontend"))
        result = await registry.execute_with_agent("frontend", "make ui")

        assert result.success is True
        assert result.output == "frontend:make ui"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_missing_agent_returns_failure(self, registry):
        result = await registry.execute_with_agent("ghost", "hello")

        assert result.success is False
        assert result.error == "Agent not found: ghost"

    @pytest.mark.asyncio
    async def test_agent_fault_is_isolated(self, registry):
        registry.register(FailingAgent("broken"))
        result = await registry.execute_with_agent("broken", "anything")

        assert result.success is False
        assert result.error == "boom"
        assert "boom" in result.output

    @pytest.mark.asyncio
    async def test_sync_agent_string_result_is_wrapped(self, registry):
        registry.register(SyncAgent("plain"))
        result = await registry.execute_with_agent("plain", "go")

        assert result == AgentResult(success=True, output="sync go")

    @pytest.mark.asyncio
    async def test_unsupported_return_type_is_failure(self, registry):
        registry.register(BadReturnAgent("odd"))
        result = await registry.execute_with_agent("odd", "go")

        assert result.success is False
        assert "unsupported type" in result.error

    @pytest.mark.asyncio
    async def test_context_passed_through(self, registry):
        seen = {}

        class ContextAgent(Agent):
            async def run(self, input, context=None):
                seen.update(context or {})
                return AgentResult.ok("ok")

        registry.register(ContextAgent("ctx"))
        await registry.execute_with_agent("ctx", "go", {"user": "alice"})

        assert seen == {"user": "alice"}


class TestExecuteSubtasks:
    @pytest.mark.asyncio
    async def test_empty_input(self, registry):
        assert await registry.execute_subtasks([]) == []

    @pytest.mark.asyncio
    async def test_results_follow_priority_not_completion(self, registry):
        completed = []
        registry.register(EchoAgent("A", delay=0.0, completed=completed))
        registry.register(EchoAgent("B", delay=0.05, completed=completed))

        results = await registry.execute_subtasks([
            Subtask(agent_id="A", input="a", priority=1),
            Subtask(agent_id="B", input="b", priority=5),
        ])

        assert [r.output for r in results] == ["B:b", "A:a"]
        assert completed == ["A", "B"]

    @pytest.mark.asyncio
    async def test_equal_priority_keeps_input_order(self, registry):
        for agent_id in ["x", "y", "z"]:
            registry.register(EchoAgent(agent_id))

        results = await registry.execute_subtasks([
            Subtask(agent_id="x", input="1"),
            Subtask(agent_id="y", input="2", priority=3),
            Subtask(agent_id="z", input="3"),
        ])

        assert [r.output for r in results] == ["y:2", "x:1", "z:3"]

    @pytest.mark.asyncio
    async def test_subtasks_run_concurrently(self, registry):
        for agent_id in ["a", "b", "c"]:
            registry.register(EchoAgent(agent_id, delay=0.2))

        start = time.perf_counter()
        await registry.execute_subtasks([Subtask(agent_id=i, input="x") for i in ["a", "b", "c"]])
        elapsed = time.perf_counter() - start

        assert elapsed < 0.5

    @pytest.mark.asyncio
    async def test_failures_do_not_affect_siblings(self, registry):
        registry.register(FailingAgent("broken"))
        registry.register(EchoAgent("ok"))

        results = await registry.execute_subtasks([
            Subtask(agent_id="broken", input="x"),
            Subtask(agent_id="ok", input="y"),
            Subtask(agent_id="ghost", input="z"),
        ])

        assert [r.success for r in results] == [False, True, False]
        assert results[2].error == "Agent not found: ghost"

    @pytest.mark.asyncio
    async def test_subtask_hook_receives_result_and_context(self, registry):
        agent = EchoAgent("frontend")
        registry.register(agent)

        results = await registry.execute_subtasks([
            Subtask(agent_id="frontend", input="make ui", context={"ticket": 7}),
        ])

        assert len(agent.hook_calls) == 1
        hook_result, hook_context = agent.hook_calls[0]
        assert hook_result == results[0]
        assert hook_context == {"ticket": 7}

    @pytest.mark.asyncio
    async def test_hook_failure_is_logged_not_raised(self, registry, caplog):
        class GrumpyHookAgent(EchoAgent):
            async def on_subtask_result(self, result, context):
                raise ValueError("hook exploded")

        registry.register(GrumpyHookAgent("grumpy"))
        results = await registry.execute_subtasks([Subtask(agent_id="grumpy", input="x")])

        assert results[0].success is True
        assert "hook exploded" in caplog.text

    @pytest.mark.asyncio
    async def test_cancellation_reaches_subtasks(self, registry):
        cancelled = []

        class SlowAgent(Agent):
            async def run(self, input, context=None):
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    cancelled.append(self.agent_id)
                    raise
                return AgentResult.ok("late")

        registry.register(SlowAgent("slow"))
        batch = asyncio.create_task(registry.execute_subtasks([Subtask(agent_id="slow", input="x")]))
        await asyncio.sleep(0.05)
        batch.cancel()

        with pytest.raises(asyncio.CancelledError):
            await batch
        assert cancelled == ["slow"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_initialize_and_shutdown_hooks(self, registry):
        events = []

        class LifecycleAgent(EchoAgent):
            async def initialize(self):
                events.append(f"init:{self.agent_id}")

            def shutdown(self):
                events.append(f"stop:{self.agent_id}")

        registry.register(LifecycleAgent("a"))
        registry.register(LifecycleAgent("b"))
        await registry.initialize()
        await registry.shutdown()

        assert events == ["init:a", "init:b", "stop:a", "stop:b"]

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_others(self, registry, caplog):
        started = []

        class BrokenInit(EchoAgent):
            async def initialize(self):
                raise RuntimeError("no init")

        class GoodInit(EchoAgent):
            async def initialize(self):
                started.append(self.agent_id)

        registry.register(BrokenInit("broken"))
        registry.register(GoodInit("good"))
        await registry.initialize()

        assert started == ["good"]
        assert "no init" in caplog.text

    @pytest.mark.asyncio
    async def test_agents_without_hooks_are_skipped(self, registry):
        registry.register(SyncAgent("plain"))
        await registry.initialize()
        await registry.shutdown()
