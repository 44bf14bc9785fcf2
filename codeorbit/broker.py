"""HTTP broker exposing the orchestrator's public surface."""

from __future__ import annotations

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from codeorbit import __version__
from codeorbit.config import build_orchestrator
from codeorbit.errors import RateLimitedError
from codeorbit.orchestrator import RATE_LIMIT_MESSAGE, Orchestrator
from codeorbit.schemas import (
    AgentInfo,
    ErrorResponse,
    HealthResponse,
    PromptRecord,
    PromptRequest,
    PromptResponse,
)

logger = logging.getLogger(__name__)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


def create_app(orchestrator: Orchestrator | None = None) -> FastAPI:
    """Create the broker app.

    Args:
        orchestrator: Preconfigured orchestrator; built from the environment
            on startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = await asyncio.to_thread(build_orchestrator)
        current: Orchestrator = app.state.orchestrator
        await current.registry.initialize()
        try:
            yield
        finally:
            await current.registry.shutdown()
            await asyncio.to_thread(current.memory.persist)

    app = FastAPI(
        title="CodeOrbit Broker",
        description="HTTP broker routing prompts to registered agents",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    @app.post("/prompt", response_model=PromptResponse)
    async def prompt(
        body: PromptRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> PromptResponse:
        """Dispatch a prompt and return the aggregated agent output."""
        output = await orchestrator.handle_prompt(body.prompt)
        return PromptResponse(output=output)

    @app.get("/agents", response_model=list[AgentInfo])
    async def agents(orchestrator: Orchestrator = Depends(get_orchestrator)) -> list[AgentInfo]:
        """List registered agents in registration order."""
        return [
            AgentInfo(agent_id=agent.agent_id, capabilities=sorted(agent.capabilities))
            for agent in orchestrator.registry.list_agents()
        ]

    @app.get("/history", response_model=list[PromptRecord])
    async def history(orchestrator: Orchestrator = Depends(get_orchestrator)) -> list[PromptRecord]:
        """Recent sanitized prompts, most recent last."""
        return orchestrator.memory.get_history()

    @app.get("/health", response_model=HealthResponse)
    async def health(orchestrator: Orchestrator = Depends(get_orchestrator)) -> HealthResponse:
        return HealthResponse(
            agents=len(orchestrator.registry),
            persistence=orchestrator.memory.persistence.value,
        )

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
        """Report a throttled prompt as 429."""
        return JSONResponse(
            status_code=429,
            content=PromptResponse(output=RATE_LIMIT_MESSAGE, rate_limited=True).model_dump(),
            headers={"Retry-After": str(max(1, math.ceil(exc.retry_after)))},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                detail=str(exc),
                error_code="INTERNAL_ERROR",
            ).model_dump(),
        )

    return app


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


app = create_app()
