"""Runtime settings and service wiring.

Settings load from environment variables (and a ``.env`` file when present):

    CONTEXT_PERSISTENCE      memory | file | database
    CONTEXT_FILE_PATH        JSON snapshot path for file persistence
    CONTEXT_DB_PATH          SQLite path for database persistence
    CODEORBIT_MAX_ENTRIES    keys kept per agent
    CODEORBIT_HISTORY_SIZE   prompts kept in history
    CODEORBIT_RATE_LIMIT_MS  minimum gap between prompts, 0 disables
    CODEORBIT_DEFAULT_AGENT  agent used when no route matches
    CODEORBIT_ROUTES_PATH    JSON routing table replacing the built-in one
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import AliasChoices, Field, PrivateAttr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from codeorbit.memory import (
    DEFAULT_DB_PATH,
    DEFAULT_FILE_PATH,
    DEFAULT_HISTORY_SIZE,
    DEFAULT_MAX_ENTRIES,
    ContextMemory,
    PersistenceMode,
)
from codeorbit.orchestrator import DEFAULT_RATE_LIMIT_WINDOW, Orchestrator
from codeorbit.registry import AgentRegistry
from codeorbit.routing import DEFAULT_AGENT, DEFAULT_ROUTES, RoutingRule, load_routes

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Dispatch core settings."""

    persistence: PersistenceMode = Field(
        default=PersistenceMode.MEMORY,
        validation_alias=AliasChoices("CONTEXT_PERSISTENCE", "persistence"),
    )
    file_path: Path = Field(
        default=DEFAULT_FILE_PATH,
        validation_alias=AliasChoices("CONTEXT_FILE_PATH", "file_path"),
    )
    db_path: Path = Field(
        default=DEFAULT_DB_PATH,
        validation_alias=AliasChoices("CONTEXT_DB_PATH", "db_path"),
    )
    max_entries_per_agent: int = Field(
        default=DEFAULT_MAX_ENTRIES,
        gt=0,
        validation_alias=AliasChoices("CODEORBIT_MAX_ENTRIES", "max_entries_per_agent"),
    )
    history_size: int = Field(
        default=DEFAULT_HISTORY_SIZE,
        gt=0,
        validation_alias=AliasChoices("CODEORBIT_HISTORY_SIZE", "history_size"),
    )
    rate_limit_ms: int = Field(
        default=int(DEFAULT_RATE_LIMIT_WINDOW * 1000),
        ge=0,
        validation_alias=AliasChoices("CODEORBIT_RATE_LIMIT_MS", "rate_limit_ms"),
    )
    default_agent: str = Field(
        default=DEFAULT_AGENT,
        min_length=1,
        validation_alias=AliasChoices("CODEORBIT_DEFAULT_AGENT", "default_agent"),
    )
    routes_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("CODEORBIT_ROUTES_PATH", "routes_path"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    _routes: list[RoutingRule] = PrivateAttr(default_factory=lambda: list(DEFAULT_ROUTES))

    @field_validator("persistence", mode="before")
    @classmethod
    def _normalize_persistence(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _load_routes(self) -> Settings:
        if self.routes_path is not None:
            try:
                self._routes = load_routes(self.routes_path)
            except OSError as e:
                raise ValueError(f"cannot read routes file {self.routes_path}: {e}") from e
        return self

    @property
    def rate_limit_window(self) -> float:
        """Rate limit window in seconds."""
        return self.rate_limit_ms / 1000

    @property
    def routes(self) -> list[RoutingRule]:
        return list(self._routes)


def build_memory(settings: Settings) -> ContextMemory:
    """Create context memory and load its persisted snapshot."""
    memory = ContextMemory(
        max_entries_per_agent=settings.max_entries_per_agent,
        history_size=settings.history_size,
        persistence=settings.persistence,
        file_path=settings.file_path,
        db_path=settings.db_path,
    )
    memory.load()
    return memory


def build_orchestrator(settings: Settings | None = None, register_builtins: bool = True) -> Orchestrator:
    """Wire a registry, context memory and orchestrator from settings."""
    from codeorbit.subagents import builtin_agents

    settings = settings or Settings()
    registry = AgentRegistry()
    if register_builtins:
        for agent in builtin_agents():
            registry.register(agent)

    orchestrator = Orchestrator(
        registry=registry,
        memory=build_memory(settings),
        routes=settings.routes,
        default_agent=settings.default_agent,
        rate_limit_window=settings.rate_limit_window,
    )
    logger.info(
        f"Orchestrator ready: {len(registry)} agents, {len(orchestrator.routes)} routes, "
        f"persistence={settings.persistence.value}"
    )
    return orchestrator
