"""Mailbox search: budgeted, batched thread fetching for the ``search_emails`` tool."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Generic, TypeVar

import structlog

from flomail.agent.tools import Tool, ToolContext, ToolResult
from flomail.config import MailboxConfig
from flomail.mail.gmail import MailboxError, MailboxProvider, MailMessage

logger = structlog.get_logger()

T = TypeVar("T")

BODY_TRUNCATION_MARKER = "... [truncated]"


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""
    return len(text) // 4


class TokenBudgetLedger:
    """Running token estimate for one tool call.

    The total only grows, and once a batch is refused the ledger stays
    stopped for the rest of the call.
    """

    def __init__(self, budget: int) -> None:
        self.budget = budget
        self.used = 0
        self.stopped_early = False

    def project(self, tokens: int) -> int:
        return self.used + tokens

    def accept(self, tokens: int) -> bool:
        if self.stopped_early or self.project(tokens) > self.budget:
            self.stopped_early = True
            return False
        self.used += tokens
        return True


@dataclass
class BatchOutcome(Generic[T]):
    items: list[T] = field(default_factory=list)
    batches_run: int = 0
    failures: int = 0
    stopped_early: bool = False
    tokens_used: int = 0


class BudgetedBatchFetcher(Generic[T]):
    """Fetch candidates in fixed-size concurrent batches under a token budget.

    Each batch fans out ``fetch`` for every candidate and waits for all of
    them. Failed fetches are dropped. A batch is only accepted if the
    projected total stays within budget; the first refused batch ends the
    run, keeping everything accepted so far.
    """

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[T]],
        weigh: Callable[[T], int],
        *,
        batch_size: int,
        delay_s: float,
        token_budget: int,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._fetch = fetch
        self._weigh = weigh
        self.batch_size = batch_size
        self.delay_s = delay_s
        self.token_budget = token_budget

    async def _fetch_one(self, candidate: str) -> T | None:
        try:
            return await self._fetch(candidate)
        except Exception as e:
            logger.warning("mail_search.fetch_failed", candidate=candidate, error=str(e))
            return None

    async def run(self, candidates: Sequence[str]) -> BatchOutcome[T]:
        ledger = TokenBudgetLedger(self.token_budget)
        outcome: BatchOutcome[T] = BatchOutcome()

        for start in range(0, len(candidates), self.batch_size):
            if start > 0:
                await asyncio.sleep(self.delay_s)

            batch = candidates[start : start + self.batch_size]
            fetched = await asyncio.gather(*(self._fetch_one(c) for c in batch))
            outcome.batches_run += 1

            items = [item for item in fetched if item is not None]
            outcome.failures += len(batch) - len(items)

            batch_tokens = sum(self._weigh(item) for item in items)
            if not ledger.accept(batch_tokens):
                logger.info(
                    "mail_search.budget_exhausted",
                    used=ledger.used,
                    projected=ledger.project(batch_tokens),
                    budget=ledger.budget,
                    accepted=len(outcome.items),
                )
                break
            outcome.items.extend(items)

        outcome.stopped_early = ledger.stopped_early
        outcome.tokens_used = ledger.used
        return outcome


@dataclass
class FetchedThread:
    id: str
    subject: str
    participants: list[str]
    messages: list[MailMessage]

    @property
    def token_estimate(self) -> int:
        return estimate_tokens(
            "".join(m.sender + m.date + m.subject + m.body for m in self.messages)
        )


def truncate_body(body: str, max_chars: int) -> str:
    if len(body) > max_chars:
        return body[:max_chars] + BODY_TRUNCATION_MARKER
    return body


def _parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None


def _date_range(threads: Sequence[FetchedThread]) -> tuple[datetime, datetime] | None:
    dates = [d for t in threads for m in t.messages if (d := _parse_date(m.date)) is not None]
    if not dates:
        return None
    try:
        return min(dates), max(dates)
    except TypeError:
        # naive and aware dates mixed
        return None


def format_search_results(
    query: str, total_found: int, outcome: BatchOutcome[FetchedThread]
) -> str:
    threads = outcome.items
    lines = [
        "EMAIL SEARCH RESULTS",
        f'Query: "{query}"',
        f"Found: {total_found} total threads, showing {len(threads)} with content",
    ]

    participants: list[str] = []
    for t in threads:
        for p in t.participants:
            if p not in participants:
                participants.append(p)
    if participants:
        lines.append(f"Participants: {', '.join(participants)}")
    span = _date_range(threads)
    if span:
        lines.append(f"Date range: {span[0]:%Y-%m-%d} to {span[1]:%Y-%m-%d}")
    lines.append("")

    for i, t in enumerate(threads, start=1):
        lines.append(f'--- Thread {i}: "{t.subject}" ---')
        lines.append(f"Participants: {', '.join(t.participants)}")
        for msg in t.messages:
            lines.extend(["", f"From: {msg.sender}", f"Date: {msg.date}", msg.body])
        lines.append("")

    if outcome.stopped_early:
        lines.append(
            f"[Note: stopped early after {len(threads)} threads to stay within the "
            "content budget. Refine the query to see other matches.]"
        )
    return "\n".join(lines)


class SearchEmailsTool(Tool):
    def __init__(self, config: MailboxConfig, mailbox: MailboxProvider) -> None:
        self._config = config
        self._mailbox = mailbox

    @property
    def name(self) -> str:
        return "search_emails"

    @property
    def description(self) -> str:
        return (
            "Search the user's mailbox with Gmail query syntax (from:, subject:, "
            "after:, has:attachment, ...) and read the full content of the matching "
            "threads. Use this to answer questions about past conversations."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Gmail search query, e.g. 'from:alice invoice after:2024/01/01'",
                },
                "max_results": {
                    "type": "integer",
                    "description": (
                        f"Threads to read (default {self._config.default_max_results}, "
                        f"max {self._config.max_results_cap})"
                    ),
                },
            },
            "required": ["query"],
        }

    async def execute(
        self, context: ToolContext, query: str = "", max_results: int | None = None
    ) -> ToolResult:
        query = (query or "").strip()
        if not query:
            return ToolResult("Error: query is required.", success=False)
        if not context.access_token:
            return ToolResult(
                "Error: mailbox search needs the user's mail access token.", success=False
            )

        try:
            requested = int(max_results) if max_results is not None else None
        except (TypeError, ValueError):
            requested = None
        limit = min(
            max(requested or self._config.default_max_results, 1),
            self._config.max_results_cap,
        )

        token = context.access_token
        try:
            page = await self._mailbox.list_conversations(token, query, limit)
        except MailboxError as e:
            return ToolResult(f"Error: email search failed: {e}", success=False)
        candidates = page.ids[:limit]
        logger.info(
            "mail_search.lookup", query=query, limit=limit, candidates=len(candidates)
        )
        if not candidates:
            return ToolResult(f'No emails found matching: "{query}"', success=True)

        async def fetch(thread_id: str) -> FetchedThread:
            messages = await self._mailbox.get_conversation_detail(token, thread_id)
            return self._to_thread(thread_id, messages)

        fetcher: BudgetedBatchFetcher[FetchedThread] = BudgetedBatchFetcher(
            fetch,
            lambda t: t.token_estimate,
            batch_size=self._config.batch_size,
            delay_s=self._config.batch_delay_ms / 1000,
            token_budget=self._config.token_budget,
        )
        outcome = await fetcher.run(candidates)
        logger.info(
            "mail_search.done",
            query=query,
            included=len(outcome.items),
            failures=outcome.failures,
            stopped_early=outcome.stopped_early,
            tokens=outcome.tokens_used,
        )
        total = page.total_estimate or len(candidates)
        return ToolResult(format_search_results(query, total, outcome), success=True)

    def _to_thread(self, thread_id: str, messages: list[MailMessage]) -> FetchedThread:
        excerpts = [
            MailMessage(
                sender=m.sender,
                date=m.date,
                subject=m.subject,
                body=truncate_body(m.body, self._config.max_body_chars),
            )
            for m in messages
        ]
        participants: list[str] = []
        for m in excerpts:
            if m.sender not in participants:
                participants.append(m.sender)
        subject = excerpts[0].subject if excerpts else "(no subject)"
        return FetchedThread(
            id=thread_id, subject=subject, participants=participants, messages=excerpts
        )
