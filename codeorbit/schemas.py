"""Pydantic schemas for dispatch results and the broker contract."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field, model_validator


class AgentResult(BaseModel):
    """Uniform outcome of a single agent execution."""

    success: bool
    output: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _failure_has_error(self) -> "AgentResult":
        if not self.success and not self.error:
            self.error = self.output or "unknown error"
        return self

    @classmethod
    def ok(cls, output: str) -> "AgentResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str, output: str | None = None) -> "AgentResult":
        return cls(success=False, output=output if output is not None else error, error=error)


class Subtask(BaseModel):
    """One routed unit of work."""

    agent_id: str = Field(..., min_length=1)
    input: str
    priority: int = 0
    context: dict[str, Any] = Field(default_factory=dict)


class PromptRecord(BaseModel):
    """Entry in the rolling prompt history."""

    prompt: str
    timestamp: float = Field(default_factory=time.time)


# --- Broker Schemas ---


class PromptRequest(BaseModel):
    """Request to dispatch a prompt."""

    prompt: str = Field(..., min_length=1, max_length=10_000)


class PromptResponse(BaseModel):
    """Aggregated dispatch output."""

    output: str
    rate_limited: bool = False


class AgentInfo(BaseModel):
    """Registered agent summary."""

    agent_id: str
    capabilities: list[str]


class HealthResponse(BaseModel):
    """Health check response."""

    broker: str = "healthy"
    agents: int = 0
    persistence: str = "memory"


class ErrorResponse(BaseModel):
    """Error response for failed requests."""

    detail: str
    error_code: str | None = None
