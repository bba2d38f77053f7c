"""Agent loop: FloMail's tool-calling state machine.

Each request runs Think → Act → Observe until the model stops asking the
server for work:
1. Think:   Send the conversation + tool catalog to the model. Only the
            first call streams; later calls block and are sent whole.
2. Act:     Run the server tools it asked for, one after another. Client
            tools are held for the app to confirm.
3. Observe: Append the model's text and the tool results, then loop.
4. Stop:    No tool calls, only client tool calls, or the step ceiling.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from flomail.agent import events
from flomail.agent.events import StreamEvent
from flomail.agent.prompt import build_system_prompt, draft_context_turns, filler_for
from flomail.agent.tools import ToolContext, ToolKind, ToolRegistry
from flomail.config import AgentConfig
from flomail.llm.errors import LLMError
from flomail.llm.gateway import LLMGateway
from flomail.llm.types import (
    ChatTurn,
    ModelTurn,
    TextDelta,
    ToolCall,
    ToolCallArgsDelta,
    ToolCallCompleted,
    ToolCallStarted,
    TurnSummary,
)
from flomail.mail.models import Draft, EmailThread

logger = structlog.get_logger()

MAX_STEPS_MESSAGE = "Reached maximum steps. Here's what I have so far."
THINKING_MESSAGE = "Thinking..."

TOOL_STATUS = {
    "web_search": "Searching the web...",
    "browse_url": "Reading the page...",
    "search_emails": "Searching your emails...",
    "snooze_email": "Snoozing...",
    "unsnooze_email": "Unsnoozing...",
}


class TerminationReason(str, Enum):
    NO_TOOL_CALLS = "no_tool_calls"
    CLIENT_WILL_HANDLE = "client_will_handle"
    MAX_ITERATIONS = "max_iterations"
    ERROR = "error"


class AgentError(Exception):
    """The loop ended on an unrecovered failure."""


@dataclass
class AgentRequest:
    """Everything one chat request brings to the loop."""

    messages: list[ChatTurn]
    thread: EmailThread | None = None
    folder: str = "inbox"
    provider: str | None = None
    model: str | None = None
    access_token: str | None = None
    current_draft: Draft | None = None


@dataclass
class AgentRunState:
    """Mutable state of one run. Owned by a single request, never shared."""

    turns: list[ChatTurn]
    iteration: int = 0
    client_tool_calls: list[ToolCall] = field(default_factory=list)
    content: str = ""
    stop_reason: str = ""
    termination: TerminationReason | None = None
    last_turn: ModelTurn | None = None


@dataclass
class AgentOutcome:
    """Result of a non-streaming run."""

    content: str
    tool_calls: list[ToolCall]
    iterations: int
    stop_reason: str


class AgentLoop:
    """Drives the model through tool calls for one request at a time."""

    def __init__(self, gateway: LLMGateway, registry: ToolRegistry, config: AgentConfig) -> None:
        self.gateway = gateway
        self.registry = registry
        self.config = config

    def start(self, request: AgentRequest) -> AgentRunState:
        """Fresh run state; the client's turn list is copied, never mutated."""
        turns = draft_context_turns(request.current_draft) + list(request.messages)
        return AgentRunState(turns=turns)

    async def run(self, request: AgentRequest, *, stream: bool = True) -> AsyncIterator[StreamEvent]:
        """Run the loop, yielding events. The last event is ``done`` or ``error``."""
        state = self.start(request)
        system = build_system_prompt(request.thread, request.folder)
        tools = self.registry.describe()
        context = ToolContext(access_token=request.access_token, thread=request.thread)

        try:
            while True:
                if state.iteration >= self.config.max_iterations:
                    logger.warning("agent.max_iterations", iterations=state.iteration)
                    state.termination = TerminationReason.MAX_ITERATIONS
                    state.stop_reason = TerminationReason.MAX_ITERATIONS.value
                    yield events.status(MAX_STEPS_MESSAGE)
                    break

                state.iteration += 1
                logger.info(
                    "agent.iteration",
                    iteration=state.iteration,
                    max=self.config.max_iterations,
                    turns=len(state.turns),
                    deferred=len(state.client_tool_calls),
                )

                # --- THINK ---
                if stream and state.iteration == 1:
                    async for event in self._streamed_turn(state, request, system, tools):
                        yield event
                else:
                    yield events.status(THINKING_MESSAGE)
                    turn = await self.gateway.complete(
                        state.turns,
                        provider=request.provider,
                        model=request.model,
                        system=system,
                        tools=tools,
                    )
                    state.last_turn = turn
                    for event in self._batch_turn_events(turn):
                        yield event

                turn = state.last_turn
                if turn.content:
                    state.content = turn.content

                # --- CLASSIFY ---
                parts = self.registry.partition(turn.tool_calls)
                for call in parts.unknown:
                    logger.warning(
                        "agent.unknown_tool", tool=call.name, call_id=call.id, iteration=state.iteration
                    )
                state.client_tool_calls.extend(parts.client)

                if not parts.server:
                    state.termination = (
                        TerminationReason.CLIENT_WILL_HANDLE
                        if parts.client
                        else TerminationReason.NO_TOOL_CALLS
                    )
                    state.stop_reason = turn.stop_reason
                    break

                # --- ACT ---
                observations: list[str] = []
                for call in parts.server:
                    yield events.status(TOOL_STATUS.get(call.name, f"Running {call.name}..."))
                    logger.info(
                        "agent.tool_call", tool=call.name, call_id=call.id, iteration=state.iteration
                    )
                    outcome = await self.registry.execute(call.name, call.arguments, context)
                    yield events.search_result(call, outcome.success, outcome.result)
                    observations.append(f"[Tool result: {call.name}]\n{outcome.result}")

                # --- OBSERVE ---
                known = parts.server + parts.client
                state.turns.append(
                    ChatTurn(role="assistant", content=turn.content or filler_for(known))
                )
                state.turns.append(ChatTurn(role="user", content="\n\n".join(observations)))

        except LLMError as e:
            state.termination = TerminationReason.ERROR
            logger.error("agent.llm_error", error=str(e), iteration=state.iteration)
            yield events.error(str(e))
            return
        except Exception as e:
            state.termination = TerminationReason.ERROR
            logger.exception("agent.error", error=str(e), iteration=state.iteration)
            yield events.error(f"{type(e).__name__}: {e}")
            return

        logger.info(
            "agent.complete",
            iterations=state.iteration,
            reason=state.termination.value if state.termination else None,
            client_tool_calls=[c.name for c in state.client_tool_calls],
        )
        yield events.done(state.iteration, state.client_tool_calls, state.content, state.stop_reason)

    async def _streamed_turn(
        self,
        state: AgentRunState,
        request: AgentRequest,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        """Stream one model call, leaving its summary on ``state.last_turn``."""
        full_content = ""
        state.last_turn = None

        async for item in self.gateway.stream(
            state.turns,
            provider=request.provider,
            model=request.model,
            system=system,
            tools=tools,
        ):
            if isinstance(item, TextDelta):
                full_content += item.text
                yield events.text(item.text, full_content)
            elif isinstance(item, ToolCallStarted):
                if self._visible(item.name):
                    yield events.tool_start(item.id, item.name)
            elif isinstance(item, ToolCallArgsDelta):
                if item.preview is not None and self._visible(item.name):
                    yield events.tool_args(item.id, item.name, item.preview)
            elif isinstance(item, ToolCallCompleted):
                if self._visible(item.tool_call.name):
                    yield events.tool_done(item.tool_call)
            elif isinstance(item, TurnSummary):
                state.last_turn = item.to_model_turn()

        if state.last_turn is None:
            raise LLMError("Model stream ended without a summary")

    def _batch_turn_events(self, turn: ModelTurn) -> list[StreamEvent]:
        out: list[StreamEvent] = []
        if turn.content:
            out.append(events.text(turn.content, turn.content))
        for call in turn.tool_calls:
            if self._visible(call.name):
                out.append(events.tool_start(call.id, call.name))
                out.append(events.tool_done(call))
        return out

    def _visible(self, name: str) -> bool:
        return self.registry.classify(name) is not ToolKind.UNKNOWN

    async def run_to_completion(self, request: AgentRequest) -> AgentOutcome:
        """Run without token streaming and return the final result."""
        async for event in self.run(request, stream=False):
            if event.type == "error":
                raise AgentError(event.data["message"])
            if event.type == "done":
                data = event.data
                calls = [ToolCall(**c) for c in data["clientToolCalls"]]
                return AgentOutcome(
                    content=data["content"],
                    tool_calls=calls,
                    iterations=data["iterations"],
                    stop_reason=data["stopReason"],
                )
        raise AgentError("Agent loop ended without a result")
