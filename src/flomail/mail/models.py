"""Email shapes the agent reads from requests and hands back to the client."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class EmailAddress(_CamelModel):
    name: str | None = None
    email: str


class EmailMessage(_CamelModel):
    id: str = ""
    thread_id: str = ""
    message_id: str | None = None
    subject: str = ""
    from_: EmailAddress = Field(alias="from")
    to: list[EmailAddress] = Field(default_factory=list)
    cc: list[EmailAddress] = Field(default_factory=list)
    date: str = ""
    body: str = ""
    labels: list[str] = Field(default_factory=list)


class EmailThread(_CamelModel):
    id: str
    subject: str = ""
    snippet: str = ""
    messages: list[EmailMessage] = Field(default_factory=list)
    participants: list[EmailAddress] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    last_message_date: str = ""


DraftType = Literal["reply", "forward", "new"]


class Draft(_CamelModel):
    """An email draft prepared for the user to review."""

    thread_id: str | None = None
    to: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    subject: str = ""
    body: str = ""
    type: DraftType = "new"
    in_reply_to: str | None = None
    references: str | None = None
