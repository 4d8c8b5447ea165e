"""Context window manager — fits conversation history and documents into a token budget.

Each turn counts the four prompt categories (system, history, documentation,
query). Under the summarization threshold the full history is sent verbatim.
Over it, the last ``preserve_recent_count`` messages are kept verbatim and
everything older is represented by an accumulated summary. Only the slice of
older messages not yet summarized is ever sent to the summarizer, and a failed
summarization never changes what the session has recorded.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .config import ContextWindowConfig
from .messages import ChatRole, Message
from .provider import LLMProvider
from .provider_factory import ProviderFactory
from .session import Session, SessionStats, SessionStore
from .summarizer import SummarizationFailure, Summarizer, build_fallback
from .telemetry import get_tracer, trace_manage_turn
from .tokens import TokenBreakdown, TokenCounter, create_tokenizer

logger = logging.getLogger(__name__)

SUMMARY_HEADER = "Previous conversation summary:"
RECENT_HEADER = "Recent conversation:"


@dataclass
class ContextResult:
    """Outcome of one :meth:`ContextWindowManager.manage_turn` call."""

    processed_messages: list[Message]
    context_to_send: str
    needs_summarization: bool
    token_breakdown: TokenBreakdown
    # Rendered documentation exactly as counted; send this, not a re-join.
    documentation_text: str = ""
    summarization_failed: bool = False


def compose_context(summary: str | None, recent_text: str) -> str:
    if not summary:
        return recent_text
    return f"{SUMMARY_HEADER}\n{summary}\n\n{RECENT_HEADER}\n{recent_text}"


class ContextWindowManager:
    """Per-session context-window bookkeeping and compaction.

    Turns for the same session id are serialized through the store's
    per-session lock; different sessions proceed independently.
    """

    def __init__(
        self,
        summarizer: Summarizer,
        config: ContextWindowConfig | None = None,
        store: SessionStore | None = None,
        counter: TokenCounter | None = None,
    ) -> None:
        self._config = config if config is not None else ContextWindowConfig()
        self._summarizer = summarizer
        if store is None:
            store = SessionStore(
                max_sessions=self._config.max_sessions,
                ttl_seconds=self._config.session_ttl_seconds,
            )
        self._store = store
        if counter is None:
            counter = TokenCounter(create_tokenizer(self._config.tokenizer))
        self._counter = counter

    @classmethod
    def from_provider(
        cls,
        provider: LLMProvider,
        config: ContextWindowConfig | None = None,
        subject: str | None = None,
    ) -> ContextWindowManager:
        """Build a manager whose summarizer calls *provider*."""
        cfg = config if config is not None else ContextWindowConfig()
        summarizer = Summarizer(provider, timeout=cfg.summarization_timeout, subject=subject)
        return cls(summarizer, config=cfg)

    @classmethod
    def from_env(cls) -> ContextWindowManager:
        """Build a manager from ``CHATCTX_*`` environment variables."""
        provider = ProviderFactory.create()
        logger.info(
            "Context window manager summarizing with %s", ProviderFactory.describe(provider)
        )
        return cls.from_provider(provider, ContextWindowConfig.from_env())

    @property
    def config(self) -> ContextWindowConfig:
        return self._config

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def counter(self) -> TokenCounter:
        return self._counter

    # ------------------------------------------------------------------
    # Turn handling
    # ------------------------------------------------------------------

    async def manage_turn(
        self,
        session_id: str,
        messages: Sequence[Message],
        document_sections: Sequence[str],
        system_prompt: str,
        current_query: str,
    ) -> ContextResult:
        """Decide what history to send for this turn, summarizing if over budget.

        Never raises for summarization problems; the returned context is
        always usable.
        """
        async with self._store.hold(session_id) as session:
            with trace_manage_turn(session_id, len(messages)) as span:
                result = await self._manage_locked(
                    session, messages, document_sections, system_prompt, current_query
                )
                span.set_attribute("context.total_tokens", result.token_breakdown.total_tokens)
                span.set_attribute("context.needs_summarization", result.needs_summarization)
                span.set_attribute("context.summarization_failed", result.summarization_failed)
                span.set_attribute("context.last_summarized_index", session.last_summarized_index)
            return result

    async def _manage_locked(
        self,
        session: Session,
        messages: Sequence[Message],
        document_sections: Sequence[str],
        system_prompt: str,
        current_query: str,
    ) -> ContextResult:
        session.replace_messages(messages)
        if session.last_summarized_index >= len(session.messages):
            # Summaries are never un-done; the caller shrank the list.
            logger.warning(
                "Session %s: %d messages supplied but %d already summarized",
                session.id,
                len(session.messages),
                session.last_summarized_index + 1,
            )

        measured = self._counter.measure(
            system_prompt, session.messages, document_sections, current_query
        )
        breakdown = measured.breakdown
        documentation_text = measured.documentation.text
        needs_summarization = breakdown.total_tokens > self._config.summarization_threshold
        logger.debug(
            "Session %s token breakdown: %s (threshold %d)",
            session.id,
            breakdown.model_dump(),
            self._config.summarization_threshold,
        )

        preserve = self._config.preserve_recent_count
        if not needs_summarization or len(session.messages) <= preserve:
            if needs_summarization:
                logger.info(
                    "Session %s over threshold (%d > %d) but only %d messages; sending in full",
                    session.id,
                    breakdown.total_tokens,
                    self._config.summarization_threshold,
                    len(session.messages),
                )
            session.total_tokens = breakdown.total_tokens
            return ContextResult(
                processed_messages=list(session.messages),
                context_to_send=measured.history.text,
                needs_summarization=needs_summarization,
                token_breakdown=breakdown,
                documentation_text=documentation_text,
            )

        split = len(session.messages) - preserve
        old = session.messages[:split]
        recent = session.messages[split:]

        summary, failed = await self._fold_old_messages(session, old)

        session.total_tokens = breakdown.total_tokens
        return ContextResult(
            processed_messages=recent,
            context_to_send=compose_context(
                summary, self._counter.count_conversation(recent).text
            ),
            needs_summarization=True,
            token_breakdown=breakdown,
            documentation_text=documentation_text,
            summarization_failed=failed,
        )

    async def _fold_old_messages(
        self, session: Session, old: list[Message]
    ) -> tuple[str | None, bool]:
        """Summarize the not-yet-summarized part of *old*.

        Returns the summary text to use for this turn and whether the
        summarizer failed. On failure the session is left untouched and a
        literal rendering of the newest old messages stands in for this turn.
        """
        last_old = len(old) - 1
        if session.last_summarized_index >= last_old:
            return session.summarized_context, False

        delta = old[session.last_summarized_index + 1 :]
        contexts = [m.retrieved_context for m in delta if m.retrieved_context is not None]
        start = session.last_summarized_index + 1
        try:
            text = await self._summarizer.summarize(delta, contexts)
        except SummarizationFailure as exc:
            logger.warning(
                "Session %s: summarizing messages %d..%d failed, using fallback: %s",
                session.id,
                start,
                last_old,
                exc,
            )
            get_tracer().record_event(
                "summarize.fallback",
                {"summarize.first_index": start, "summarize.last_index": last_old},
            )
            fallback = build_fallback(delta, self._config.fallback_message_count)
            if session.summarized_context:
                return f"{session.summarized_context}\n\n{fallback}", True
            return fallback, True

        session.append_summary(text, last_old)
        logger.info(
            "Session %s: summarized messages %d..%d (%d documentation contexts)",
            session.id,
            start,
            last_old,
            len(contexts),
        )
        return session.summarized_context, False

    async def record_turn(
        self,
        session_id: str,
        query: str,
        answer_text: str,
        retrieved_context_used: str,
    ) -> None:
        """Attach retrieval provenance to the session's latest assistant message.

        No-op when the session is unknown or its latest message is not an
        assistant message.
        """
        if self._store.get(session_id) is None:
            return
        async with self._store.hold(session_id) as session:
            if not session.messages:
                return
            last = session.messages[-1]
            if last.role != ChatRole.ASSISTANT:
                logger.debug(
                    "Session %s: latest message is %s, not recording provenance for %r",
                    session_id,
                    last.role.value,
                    query[:80],
                )
                return
            session.messages[-1] = last.model_copy(
                update={"retrieved_context": retrieved_context_used}
            )
            session.provenance[last.id] = retrieved_context_used
            logger.debug(
                "Session %s: recorded %d chars of provenance for answer of %d chars",
                session_id,
                len(retrieved_context_used),
                len(answer_text),
            )

    # ------------------------------------------------------------------
    # Session accessors
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session | None:
        return self._store.get(session_id)

    def get_stats(self, session_id: str) -> SessionStats | None:
        return self._store.stats(session_id)

    def clear_session(self, session_id: str) -> None:
        self._store.clear(session_id)
