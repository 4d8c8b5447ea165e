"""Chat pipeline — one retrieval-augmented chat turn on top of the context-window manager."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import BaseModel, Field

from .manager import ContextWindowManager
from .messages import Message, RetrievedDocument
from .provider import LLMProvider
from .session import SessionStats
from .summarizer import Summarizer

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """\
You are a technical documentation assistant. You will be given:
1. A conversation history with the user (if any)
2. Relevant documentation excerpts for the current question

Answer the user's question using the provided information and conversation context.
Be concise and clear. Reference previous conversation when relevant to provide better continuity.
If the provided information does not contain the answer, state that you could not find an answer in the provided documentation.
Do not mention that you were given context. Just answer the question directly."""

_PROMPT_PREVIEW_CHARS = 2000


# ---------------------------------------------------------------------------
# Retrieval boundary
# ---------------------------------------------------------------------------


class Retriever(ABC):
    """Source of documentation excerpts for a query."""

    @abstractmethod
    async def retrieve(self, query: str) -> list[RetrievedDocument]:
        """Return excerpts ordered by relevance."""


class StaticRetriever(Retriever):
    """Returns the same documents for every query. For testing and demos."""

    def __init__(self, documents: Sequence[RetrievedDocument] | None = None) -> None:
        self._documents = list(documents or [])
        self.queries: list[str] = []

    async def retrieve(self, query: str) -> list[RetrievedDocument]:
        self.queries.append(query)
        return list(self._documents)


def format_section(document: RetrievedDocument) -> str:
    """Render one excerpt as a titled documentation section."""
    return f'---\nFrom section: "{document.title}"\n\n{document.content}\n---'


def unique_sources(documents: Sequence[RetrievedDocument]) -> list[RetrievedDocument]:
    """Documents with a URL, first occurrence of each URL only."""
    seen: set[str] = set()
    sources: list[RetrievedDocument] = []
    for doc in documents:
        if doc.url is None or doc.url in seen:
            continue
        seen.add(doc.url)
        sources.append(doc)
    return sources


def build_answer_prompt(context_to_send: str, query: str, documentation_text: str) -> str:
    history = f"Conversation History:\n{context_to_send}\n\n" if context_to_send else ""
    return f"{history}Current Question: {query}\n\nRelevant Documentation:\n{documentation_text}"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ChatReply(BaseModel):
    """Answer plus the sources and session stats the API layer returns."""

    response: str
    sources: list[RetrievedDocument] = Field(default_factory=list)
    stats: SessionStats | None = None
    needs_summarization: bool = False
    summarization_failed: bool = False


class SummaryReport(BaseModel):
    """Result of an explicit summarization request."""

    summary: str
    original_tokens: int
    summary_tokens: int


# ---------------------------------------------------------------------------
# ChatPipeline
# ---------------------------------------------------------------------------


class ChatPipeline:
    """Retrieve, fit to budget, answer, and record provenance for one turn."""

    def __init__(
        self,
        manager: ContextWindowManager,
        provider: LLMProvider,
        retriever: Retriever,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        summarizer: Summarizer | None = None,
    ) -> None:
        self._manager = manager
        self._provider = provider
        self._retriever = retriever
        self._system_prompt = system_prompt
        if summarizer is None:
            summarizer = Summarizer(provider, timeout=manager.config.summarization_timeout)
        self._summarizer = summarizer

    @property
    def manager(self) -> ContextWindowManager:
        return self._manager

    async def run_turn(
        self, session_id: str, messages: Sequence[Message], query: str
    ) -> ChatReply:
        """Answer *query* given the caller's full message list.

        Raises:
            CompletionError: if the answer call itself fails.
        """
        logger.info("Chat turn for session %s, query %r", session_id, query[:200])
        documents = await self._retriever.retrieve(query)
        sections = [format_section(d) for d in documents]

        result = await self._manager.manage_turn(
            session_id, messages, sections, self._system_prompt, query
        )
        logger.info(
            "Session %s: %d tokens, needs_summarization=%s",
            session_id,
            result.token_breakdown.total_tokens,
            result.needs_summarization,
        )

        prompt = build_answer_prompt(result.context_to_send, query, result.documentation_text)
        logger.debug("Prompt preview for session %s: %s", session_id, prompt[:_PROMPT_PREVIEW_CHARS])

        answer = await self._provider.complete(self._system_prompt, prompt)
        await self._manager.record_turn(session_id, query, answer, result.documentation_text)

        return ChatReply(
            response=answer,
            sources=unique_sources(documents),
            stats=self._manager.get_stats(session_id),
            needs_summarization=result.needs_summarization,
            summarization_failed=result.summarization_failed,
        )

    async def summarize_context(
        self, messages: Sequence[Message], retrieved_contexts: Sequence[str]
    ) -> SummaryReport:
        """Summarize an explicit slice of conversation.

        Raises:
            SummarizationFailure: propagated, since the caller asked for a
                summary rather than a best-effort context.
        """
        counter = self._manager.counter
        original = counter.count_conversation(messages).token_count + counter.count_documents(
            retrieved_contexts
        ).token_count
        summary = await self._summarizer.summarize(messages, retrieved_contexts)
        logger.info("Manual summarization of %d messages", len(messages))
        return SummaryReport(
            summary=summary,
            original_tokens=original,
            summary_tokens=counter.count(summary),
        )
