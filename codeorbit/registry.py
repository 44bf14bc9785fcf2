"""Agent registry: capability lookup, lifecycle and isolated execution."""

from __future__ import annotations

import asyncio
import logging
from threading import Lock
from typing import Any, Iterable

from codeorbit.agent import AgentProtocol, coerce_result, maybe_await
from codeorbit.errors import AgentExecutionError, DuplicateAgentError
from codeorbit.schemas import AgentResult, Subtask

logger = logging.getLogger(__name__)

# Characters of input echoed into the log
LOG_PREVIEW_CHARS = 100


def _preview(text: str) -> str:
    if len(text) > LOG_PREVIEW_CHARS:
        return text[:LOG_PREVIEW_CHARS] + "..."
    return text


class AgentRegistry:
    """Directory of agents keyed by unique id, in registration order."""

    def __init__(self) -> None:
        self._agents: dict[str, AgentProtocol] = {}
        self._lock = Lock()

    def register(self, agent: AgentProtocol) -> None:
        """Register an agent.

        Raises:
            DuplicateAgentError: If the agent id is already taken
        """
        with self._lock:
            if agent.agent_id in self._agents:
                raise DuplicateAgentError(agent.agent_id)
            self._agents[agent.agent_id] = agent
        logger.info(f"Registered agent: {agent.agent_id}")

    def unregister(self, agent_id: str) -> bool:
        with self._lock:
            removed = self._agents.pop(agent_id, None) is not None
        if removed:
            logger.info(f"Unregistered agent: {agent_id}")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._agents.clear()
        logger.info("Cleared all registered agents")

    def get(self, agent_id: str) -> AgentProtocol | None:
        with self._lock:
            return self._agents.get(agent_id)

    def list_agents(self) -> list[AgentProtocol]:
        with self._lock:
            return list(self._agents.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        with self._lock:
            return agent_id in self._agents

    def find_by_capabilities(self, required: Iterable[str]) -> list[AgentProtocol]:
        """Return agents declaring every capability in ``required``.

        Results keep registration order.
        """
        wanted = set(required)
        return [agent for agent in self.list_agents() if wanted <= set(agent.capabilities)]

    async def execute_with_agent(
        self,
        agent_id: str,
        input: str,
        context: dict[str, Any] | None = None,
    ) -> AgentResult:
        """Run one agent, converting every failure into a failed AgentResult.

        Never raises for a missing agent or an agent fault.
        """
        agent = self.get(agent_id)
        if agent is None:
            logger.error(f"Agent not found: {agent_id}")
            return AgentResult.fail(f"Agent not found: {agent_id}")

        logger.info(f"Executing with agent {agent_id}: {_preview(input)}")
        try:
            result = coerce_result(await maybe_await(agent.run(input, context)))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            fault = AgentExecutionError(agent_id, e)
            logger.error(f"Error executing agent {agent_id}: {fault}", exc_info=True)
            return AgentResult.fail(str(fault), output=f"Error executing agent: {fault}")

        logger.info(f"Agent {agent_id} execution {'succeeded' if result.success else 'failed'}")
        return result

    async def execute_subtasks(self, subtasks: list[Subtask]) -> list[AgentResult]:
        """Run subtasks concurrently, highest priority first.

        The returned list follows the priority-sorted order (ties keep input
        order), not completion order. Cancelling the caller cancels every
        outstanding subtask.
        """
        if not subtasks:
            return []

        ordered = sorted(subtasks, key=lambda s: s.priority, reverse=True)
        logger.info(f"Executing {len(ordered)} subtasks in parallel")

        tasks = [
            asyncio.create_task(self._run_subtask(subtask), name=f"subtask-{i}-{subtask.agent_id}")
            for i, subtask in enumerate(ordered)
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    async def _run_subtask(self, subtask: Subtask) -> AgentResult:
        result = await self.execute_with_agent(subtask.agent_id, subtask.input, subtask.context)

        agent = self.get(subtask.agent_id)
        hook = getattr(agent, "on_subtask_result", None) if agent is not None else None
        if hook is not None:
            try:
                await maybe_await(hook(result, subtask.context))
            except Exception as e:
                logger.error(f"Subtask result hook failed for {subtask.agent_id}: {e}", exc_info=True)
        return result

    async def initialize(self) -> None:
        """Run every agent's initialize hook; failures are logged per agent."""
        await self._lifecycle("initialize")

    async def shutdown(self) -> None:
        """Run every agent's shutdown hook; failures are logged per agent."""
        await self._lifecycle("shutdown")

    async def _lifecycle(self, hook_name: str) -> None:
        for agent in self.list_agents():
            hook = getattr(agent, hook_name, None)
            if hook is None:
                continue
            try:
                await maybe_await(hook())
            except Exception as e:
                logger.error(f"Agent {agent.agent_id} failed to {hook_name}: {e}", exc_info=True)
