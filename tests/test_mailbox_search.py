from __future__ import annotations

import asyncio

import pytest

from flomail.agent.tools import ToolContext
from flomail.config import MailboxConfig
from flomail.mail.gmail import ConversationPage, MailboxError, MailboxProvider, MailMessage
from flomail.tools.mailbox import (
    BODY_TRUNCATION_MARKER,
    BudgetedBatchFetcher,
    SearchEmailsTool,
    TokenBudgetLedger,
)


class FakeMailbox(MailboxProvider):
    def __init__(self, ids: list[str], *, failing: set[str] = frozenset(), body: str = "x" * 4000) -> None:
        self.ids = ids
        self.failing = failing
        self.body = body
        self.lookups: list[tuple[str, int]] = []
        self.fetched: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_conversations(self, access_token, query, max_results):
        self.lookups.append((query, max_results))
        # Some providers ignore the page size; the tool must cap anyway.
        return ConversationPage(ids=list(self.ids), total_estimate=len(self.ids) + 30)

    async def get_conversation_detail(self, access_token, conversation_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        self.fetched.append(conversation_id)
        if conversation_id in self.failing:
            raise MailboxError("429 rate limited", status_code=429)
        return [
            MailMessage(
                sender="Ana <ana@example.com>",
                date="Mon, 3 Jun 2024 10:00:00 +0000",
                subject="Invoice",
                body=f"[{conversation_id}] {self.body}",
            )
        ]

    async def modify_labels(self, access_token, conversation_id, *, add=None, remove=None):
        return None


def _config(**overrides) -> MailboxConfig:
    values = {"batch_delay_ms": 0}
    values.update(overrides)
    return MailboxConfig(**values)


def _context() -> ToolContext:
    return ToolContext(access_token="token")


def test_ledger_latches_once_a_batch_is_refused() -> None:
    ledger = TokenBudgetLedger(100)

    assert ledger.accept(60)
    assert not ledger.accept(50)
    assert ledger.stopped_early
    assert not ledger.accept(1)
    assert ledger.used == 60


@pytest.mark.asyncio
async def test_fetcher_runs_batches_concurrently_and_in_order() -> None:
    in_flight = 0
    peak = 0

    async def fetch(candidate: str) -> str:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0)
        in_flight -= 1
        return candidate

    fetcher = BudgetedBatchFetcher(fetch, lambda _: 1, batch_size=3, delay_s=0, token_budget=100)
    outcome = await fetcher.run([f"t{i}" for i in range(7)])

    assert outcome.items == [f"t{i}" for i in range(7)]
    assert outcome.batches_run == 3
    assert peak == 3
    assert not outcome.stopped_early


@pytest.mark.asyncio
async def test_zero_results_short_circuit() -> None:
    mailbox = FakeMailbox([])
    tool = SearchEmailsTool(_config(), mailbox)

    result = await tool.execute(_context(), query="invoices", max_results=20)

    assert result.success
    assert result.result == 'No emails found matching: "invoices"'
    assert mailbox.lookups == [("invoices", 10)]
    assert mailbox.fetched == []


@pytest.mark.asyncio
async def test_budget_stops_after_three_batches_and_keeps_them() -> None:
    ids = [f"t{i:02d}" for i in range(12)]
    mailbox = FakeMailbox(ids)
    probe = SearchEmailsTool(_config(), mailbox)
    per_thread = probe._to_thread("t00", await mailbox.get_conversation_detail("token", "t00")).token_estimate
    mailbox.fetched.clear()

    # room for nine threads, not ten
    tool = SearchEmailsTool(_config(token_budget=per_thread * 9 + per_thread // 2), mailbox)
    result = await tool.execute(_context(), query="invoice", max_results=20)

    text = result.result
    assert result.success
    assert "stopped early" in text
    for i in range(9):
        assert f"[t{i:02d}]" in text
    assert "[t09]" not in text
    assert "--- Thread 9:" in text
    assert "--- Thread 10:" not in text
    assert "Found: 42 total threads, showing 9 with content" in text
    # only the capped ten candidates were ever looked at
    assert "t10" not in mailbox.fetched
    assert "t11" not in mailbox.fetched


@pytest.mark.asyncio
async def test_bodies_are_truncated_per_message() -> None:
    mailbox = FakeMailbox(["a"], body="y" * 5000)
    tool = SearchEmailsTool(_config(), mailbox)

    result = await tool.execute(_context(), query="big")

    assert BODY_TRUNCATION_MARKER in result.result
    assert "y" * 1600 not in result.result


@pytest.mark.asyncio
async def test_failed_fetches_only_reduce_the_count() -> None:
    mailbox = FakeMailbox(["a", "b", "c", "d"], failing={"a", "b", "c"}, body="short")
    tool = SearchEmailsTool(_config(), mailbox)

    result = await tool.execute(_context(), query="q", max_results=4)

    assert result.success
    assert "showing 1 with content" in result.result
    assert "[d]" in result.result
    assert "stopped early" not in result.result


@pytest.mark.asyncio
async def test_synopsis_lists_participants_and_date_range() -> None:
    mailbox = FakeMailbox(["a", "b"], body="hello")
    tool = SearchEmailsTool(_config(), mailbox)

    result = await tool.execute(_context(), query="q")

    assert "Participants: Ana <ana@example.com>" in result.result
    assert "Date range: 2024-06-03 to 2024-06-03" in result.result


@pytest.mark.asyncio
async def test_missing_token_or_query_fail_softly() -> None:
    tool = SearchEmailsTool(_config(), FakeMailbox(["a"]))

    no_token = await tool.execute(ToolContext(), query="q")
    no_query = await tool.execute(_context(), query="  ")

    assert not no_token.success
    assert not no_query.success
