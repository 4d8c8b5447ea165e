"""Conversation message types shared by the context-window manager."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, Field


class ChatRole(StrEnum):
    """Role of a conversation participant."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """Single turn in a conversation, as supplied by the caller."""

    id: str
    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    retrieved_context: str | None = Field(
        default=None,
        validation_alias=AliasChoices("retrieved_context", "retrievedContext", "ragContext"),
    )

    def render(self) -> str:
        """Render as ``"{role}: {content}"``, the form used for counting and prompting."""
        return f"{self.role.value}: {self.content}"


class RetrievedDocument(BaseModel):
    """Documentation excerpt returned by the retrieval subsystem."""

    title: str
    content: str
    url: str | None = None
    content_type: str = Field(
        default="markdown",
        validation_alias=AliasChoices("content_type", "contentType"),
    )
