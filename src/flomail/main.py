"""FloMail agent server: FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from flomail import __version__
from flomail.agent.catalog import build_registry
from flomail.agent.loop import AgentLoop
from flomail.config import get_config
from flomail.llm.gateway import LLMGateway
from flomail.logging import setup_logging
from flomail.mail.gmail import GmailMailbox

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup/shutdown lifecycle."""
    config = get_config()
    setup_logging(level=config.log_level, fmt=config.log_format)

    logger.info(
        "flomail.starting",
        version=__version__,
        provider=config.llm.default_provider,
        max_iterations=config.agent.max_iterations,
    )

    gateway = LLMGateway(config.llm)
    mailbox = GmailMailbox(config.mailbox)

    # Built once; the agent only ever reads it
    registry = build_registry(config, mailbox)

    agent = AgentLoop(gateway=gateway, registry=registry, config=config.agent)

    app.state.config = config
    app.state.gateway = gateway
    app.state.mailbox = mailbox
    app.state.registry = registry
    app.state.agent = agent

    logger.info("flomail.ready", tools=list(registry.names), tool_count=len(registry.names))

    yield

    logger.info("flomail.stopped", llm_stats=gateway.stats)


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title="FloMail Agent",
        version=__version__,
        description="Tool-calling email assistant with a streaming agent loop.",
        lifespan=lifespan,
    )

    from flomail.api.routes.chat import router as chat_router
    from flomail.api.routes.health import router as health_router

    app.include_router(health_router, tags=["health"])
    app.include_router(chat_router, tags=["chat"])

    return app


app = create_app()


def main() -> None:
    """Run the server directly."""
    config = get_config()
    setup_logging(level=config.log_level, fmt=config.log_format)
    uvicorn.run(
        "flomail.main:app",
        host=config.host,
        port=config.port,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
