"""Health check endpoint."""

from __future__ import annotations

import time

from fastapi import APIRouter, Request

from flomail import __version__
from flomail.agent.tools import ToolKind

router = APIRouter()

_start_time = time.time()


@router.get("/health")
async def health(request: Request) -> dict:
    """Health check: status, uptime, tool catalog and LLM usage."""
    config = request.app.state.config
    gateway = request.app.state.gateway
    registry = request.app.state.registry

    kinds = [registry.classify(name) for name in registry.names]
    return {
        "status": "ok",
        "version": __version__,
        "uptime_seconds": round(time.time() - _start_time, 1),
        "default_provider": config.llm.default_provider,
        "llm_stats": gateway.stats,
        "tools": {
            "server": kinds.count(ToolKind.SERVER),
            "client": kinds.count(ToolKind.CLIENT),
        },
        "max_iterations": config.agent.max_iterations,
        "web_search_configured": bool(config.search.tavily_api_key),
    }
