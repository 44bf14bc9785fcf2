"""Pytest configuration and fixtures for CodeOrbit tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from codeorbit.memory import ContextMemory
from codeorbit.orchestrator import Orchestrator
from codeorbit.registry import AgentRegistry
from codeorbit.subagents import builtin_agents


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory() -> ContextMemory:
    """In-memory context store with a small bound for eviction tests."""
    return ContextMemory(max_entries_per_agent=3, history_size=5)


@pytest.fixture
def registry() -> AgentRegistry:
    return AgentRegistry()


@pytest.fixture
def orchestrator(registry: AgentRegistry, memory: ContextMemory, clock: FakeClock) -> Orchestrator:
    """Orchestrator over a fresh registry and memory, driven by a fake clock."""
    return Orchestrator(registry=registry, memory=memory, clock=clock)


@pytest.fixture
def builtin_orchestrator(orchestrator: Orchestrator) -> Orchestrator:
    """Orchestrator with every built-in agent registered and no delay."""
    for agent in builtin_agents(delay=0):
        orchestrator.register_agent(agent)
    return orchestrator


@pytest.fixture
def memory_file(tmp_path: Path) -> Path:
    return tmp_path / "state" / "context-memory.json"


@pytest.fixture
def memory_db(tmp_path: Path) -> Path:
    return tmp_path / "context-memory.sqlite"
