"""Mailbox provider: the narrow slice of Gmail the agent's server tools use."""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from bs4 import BeautifulSoup

from flomail.config import MailboxConfig

logger = structlog.get_logger()


class MailboxError(Exception):
    """A mailbox API call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ConversationPage:
    """Result of a conversation lookup: candidate ids plus the provider's total estimate."""

    ids: list[str] = field(default_factory=list)
    total_estimate: int = 0


@dataclass
class MailMessage:
    sender: str
    date: str
    subject: str
    body: str


class MailboxProvider(ABC):
    """Interface the mailbox tools depend on."""

    @abstractmethod
    async def list_conversations(
        self, access_token: str, query: str, max_results: int
    ) -> ConversationPage: ...

    @abstractmethod
    async def get_conversation_detail(
        self, access_token: str, conversation_id: str
    ) -> list[MailMessage]: ...

    @abstractmethod
    async def modify_labels(
        self,
        access_token: str,
        conversation_id: str,
        *,
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> None: ...


def decode_base64url(data: str) -> str:
    """Decode Gmail's base64url body data, tolerating missing padding."""
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError):
        return data
    return raw.decode("utf-8", errors="replace")


def html_to_text(html: str) -> str:
    """Readable text from an HTML body."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "head"]):
        tag.decompose()
    text = soup.get_text(separator=" ")
    return " ".join(text.split())


def extract_body(payload: dict[str, Any]) -> str:
    """Prefer the text/plain part of a message payload, fall back to stripped HTML."""
    text, html = _collect_parts(payload)
    if text:
        return text
    if html:
        return html_to_text(html)
    return ""


def _collect_parts(payload: dict[str, Any]) -> tuple[str, str]:
    text = ""
    html = ""
    data = (payload.get("body") or {}).get("data")
    if data:
        decoded = decode_base64url(data)
        if payload.get("mimeType") == "text/html":
            html = decoded
        else:
            text = decoded

    for part in payload.get("parts") or []:
        mime = part.get("mimeType")
        part_data = (part.get("body") or {}).get("data")
        if mime == "text/plain" and part_data:
            text = decode_base64url(part_data)
        elif mime == "text/html" and part_data:
            html = decode_base64url(part_data)
        elif part.get("parts"):
            nested_text, nested_html = _collect_parts(part)
            text = text or nested_text
            html = html or nested_html
    return text, html


def _header(headers: list[dict[str, str]], name: str, default: str = "") -> str:
    for h in headers:
        if h.get("name", "").lower() == name.lower():
            return h.get("value", default)
    return default


class GmailMailbox(MailboxProvider):
    """Gmail REST implementation."""

    def __init__(self, config: MailboxConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.config.api_base.rstrip('/')}/{path.lstrip('/')}"
        headers = {"Authorization": f"Bearer {access_token}"}
        client = self._client or httpx.AsyncClient(timeout=self.config.timeout_s)
        try:
            resp = await client.request(method, url, headers=headers, params=params, json=json)
        except httpx.HTTPError as e:
            raise MailboxError(f"Gmail request failed: {type(e).__name__}: {e}") from e
        finally:
            if client is not self._client:
                await client.aclose()

        if resp.status_code >= 400:
            logger.warning("gmail.api_error", path=path, status=resp.status_code)
            raise MailboxError(f"Gmail API error {resp.status_code}", status_code=resp.status_code)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            logger.warning("gmail.invalid_body", path=path, status=resp.status_code)
            raise MailboxError(
                f"Gmail returned a non-JSON response ({resp.status_code})",
                status_code=resp.status_code,
            ) from e

    async def list_conversations(
        self, access_token: str, query: str, max_results: int
    ) -> ConversationPage:
        data = await self._request(
            "GET",
            "threads",
            access_token,
            params={"q": query, "maxResults": max_results},
        )
        threads = data.get("threads") or []
        ids = [t["id"] for t in threads if t.get("id")]
        return ConversationPage(ids=ids, total_estimate=data.get("resultSizeEstimate") or len(ids))

    async def get_conversation_detail(
        self, access_token: str, conversation_id: str
    ) -> list[MailMessage]:
        data = await self._request(
            "GET", f"threads/{conversation_id}", access_token, params={"format": "full"}
        )
        messages: list[MailMessage] = []
        for message in data.get("messages") or []:
            payload = message.get("payload") or {}
            headers = payload.get("headers") or []
            messages.append(
                MailMessage(
                    sender=_header(headers, "From", "Unknown"),
                    date=_header(headers, "Date"),
                    subject=_header(headers, "Subject", "(no subject)"),
                    body=extract_body(payload),
                )
            )
        return messages

    async def modify_labels(
        self,
        access_token: str,
        conversation_id: str,
        *,
        add: list[str] | None = None,
        remove: list[str] | None = None,
    ) -> None:
        body: dict[str, Any] = {}
        if add:
            body["addLabelIds"] = add
        if remove:
            body["removeLabelIds"] = remove
        await self._request("POST", f"threads/{conversation_id}/modify", access_token, json=body)
        logger.info("gmail.labels_modified", thread_id=conversation_id, add=add, remove=remove)
