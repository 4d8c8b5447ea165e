"""Summarizer — compresses a slice of old turns into one prose blob via the LLM."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from .messages import Message
from .provider import LLMProvider
from .telemetry import trace_summarize
from .tokens import DOCUMENT_SEPARATOR, render_conversation

logger = logging.getLogger(__name__)

FALLBACK_PREFIX = "Summary unavailable. Recent conversation: "

_SYSTEM_TEMPLATE = """\
You are tasked with summarizing a chat conversation and documentation context for {subject}.

CRITICAL REQUIREMENTS:
1. PRESERVE ALL user questions and assistant answers in a condensed but complete form
2. PRESERVE ALL technical details, configuration examples, and specific commands exactly
3. HEAVILY SUMMARIZE the documentation sections - extract only the key technical facts referenced in the conversation
4. Maintain chronological order of the conversation
5. Keep all product names, version numbers, command syntax, identifiers and specific technical terms exact
6. Focus on preserving the technical solutions and configurations discussed

The goal is to reduce token count while preserving all conversational context and technical accuracy.
Format as a flowing summary, not bullet points."""


class SummarizationFailure(Exception):
    """Raised when the summarization call errors, times out, or returns nothing."""


def build_summary_system_prompt(subject: str | None = None) -> str:
    return _SYSTEM_TEMPLATE.format(subject=subject or "a technical assistant")


def build_summary_user_prompt(
    messages: Sequence[Message], retrieved_contexts: Sequence[str]
) -> str:
    """Build the user prompt carrying the turns and their documentation context."""
    body = (
        f"Chat Messages:\n{render_conversation(messages)}\n\n"
        f"Referenced Documentation Context:\n{DOCUMENT_SEPARATOR.join(retrieved_contexts)}"
    )
    return (
        "Please summarize the following technical conversation and documentation context:"
        f"\n\n{body}"
    )


def build_fallback(messages: Sequence[Message], count: int = 3) -> str:
    """Literal rendering of the last *count* messages, used when summarization fails."""
    tail = list(messages)[-count:]
    return FALLBACK_PREFIX + "\n".join(m.render() for m in tail)


class Summarizer:
    """Wraps an :class:`LLMProvider` to produce conversation summaries.

    Each call only sees the slice it is given; callers accumulate results.
    """

    def __init__(
        self,
        provider: LLMProvider,
        timeout: float | None = None,
        subject: str | None = None,
    ) -> None:
        self._provider = provider
        self._timeout = timeout
        self._system_prompt = build_summary_system_prompt(subject)

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def timeout(self) -> float | None:
        return self._timeout

    async def summarize(
        self, messages: Sequence[Message], retrieved_contexts: Sequence[str]
    ) -> str:
        """Return a compressed summary of *messages*.

        Raises:
            SummarizationFailure: on any provider error, on timeout, or when
                the provider returns an empty reply.
        """
        user_prompt = build_summary_user_prompt(messages, retrieved_contexts)
        with trace_summarize(len(messages)) as span:
            try:
                text = await asyncio.wait_for(
                    self._provider.complete(self._system_prompt, user_prompt),
                    timeout=self._timeout,
                )
            except TimeoutError as exc:
                span.set_attribute("summarize.failed", True)
                msg = f"summarization timed out after {self._timeout}s"
                raise SummarizationFailure(msg) from exc
            except Exception as exc:
                span.set_attribute("summarize.failed", True)
                msg = f"summarization call failed: {exc}"
                raise SummarizationFailure(msg) from exc

            if not text or not text.strip():
                span.set_attribute("summarize.failed", True)
                msg = "summarization returned an empty reply"
                raise SummarizationFailure(msg)

            span.set_attribute("summarize.failed", False)
            logger.debug(
                "Summarized %d messages (%d documentation contexts) into %d chars",
                len(messages),
                len(retrieved_contexts),
                len(text),
            )
            return text.strip()
