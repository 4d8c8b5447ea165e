"""Token counting over the four prompt categories: system, history, documents, query."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from pydantic import BaseModel

from .messages import Message

MESSAGE_SEPARATOR = "\n\n"
DOCUMENT_SEPARATOR = "\n---\n"

_DEFAULT_ENCODING = "cl100k_base"


def estimate_tokens(text: str) -> int:
    """Estimate token count from text. Rough heuristic: words * 1.3."""
    if not text:
        return 0
    words = len(text.split())
    return math.ceil(words * 1.3)


# ---------------------------------------------------------------------------
# Tokenizers
# ---------------------------------------------------------------------------


class Tokenizer(ABC):
    """Deterministic text -> token count function."""

    @abstractmethod
    def count(self, text: str) -> int:
        """Return the number of tokens in *text*."""


class HeuristicTokenizer(Tokenizer):
    """Word-based estimate; no tables to download."""

    def count(self, text: str) -> int:
        return estimate_tokens(text)


class TiktokenTokenizer(Tokenizer):
    """Exact BPE counts via ``tiktoken``."""

    def __init__(self, encoding_name: str = _DEFAULT_ENCODING) -> None:
        import tiktoken

        self._encoding_name = encoding_name
        self._encoding = tiktoken.get_encoding(encoding_name)

    @property
    def encoding_name(self) -> str:
        return self._encoding_name

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))


_TOKENIZERS: dict[str, type[Tokenizer]] = {
    "heuristic": HeuristicTokenizer,
    "tiktoken": TiktokenTokenizer,
}

TOKENIZER_NAMES = frozenset(_TOKENIZERS)


def create_tokenizer(name: str) -> Tokenizer:
    """Build a tokenizer by its configured name."""
    key = name.strip().lower()
    if key not in _TOKENIZERS:
        msg = f"Unknown tokenizer '{name}'. Valid values: {', '.join(sorted(_TOKENIZERS))}"
        raise ValueError(msg)
    return _TOKENIZERS[key]()


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenderedCount:
    """A token count together with the exact text that was counted."""

    token_count: int
    text: str


class TokenBreakdown(BaseModel):
    """Per-category token counts for one prompt."""

    system_tokens: int = 0
    history_tokens: int = 0
    documentation_tokens: int = 0
    query_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class PromptCount:
    """Breakdown of one prompt plus the rendered history and documentation it counted."""

    breakdown: TokenBreakdown
    history: RenderedCount
    documentation: RenderedCount


# ---------------------------------------------------------------------------
# TokenCounter
# ---------------------------------------------------------------------------


def render_conversation(messages: Sequence[Message]) -> str:
    return MESSAGE_SEPARATOR.join(m.render() for m in messages)


def render_documents(sections: Sequence[str]) -> str:
    return DOCUMENT_SEPARATOR.join(sections)


class TokenCounter:
    """Counts tokens for raw text and for the structured parts of a prompt.

    The rendered text returned by :meth:`count_conversation` and
    :meth:`count_documents` is what callers must send to the model, so the
    counted value and the sent value never drift apart.
    """

    def __init__(self, tokenizer: Tokenizer | None = None) -> None:
        self._tokenizer = tokenizer if tokenizer is not None else HeuristicTokenizer()

    @property
    def tokenizer(self) -> Tokenizer:
        return self._tokenizer

    def count(self, text: str) -> int:
        return self._tokenizer.count(text)

    def count_conversation(self, messages: Sequence[Message]) -> RenderedCount:
        text = render_conversation(messages)
        return RenderedCount(token_count=self.count(text), text=text)

    def count_documents(self, sections: Sequence[str]) -> RenderedCount:
        text = render_documents(sections)
        return RenderedCount(token_count=self.count(text), text=text)

    def count_all(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        document_sections: Sequence[str],
        current_query: str,
    ) -> TokenBreakdown:
        """Count every prompt category; ``total_tokens`` is their plain sum."""
        return self.measure(system_prompt, messages, document_sections, current_query).breakdown

    def measure(
        self,
        system_prompt: str,
        messages: Sequence[Message],
        document_sections: Sequence[str],
        current_query: str,
    ) -> PromptCount:
        """Like :meth:`count_all`, keeping the rendered history and documentation."""
        system_tokens = self.count(system_prompt)
        history = self.count_conversation(messages)
        documentation = self.count_documents(document_sections)
        query_tokens = self.count(current_query)
        breakdown = TokenBreakdown(
            system_tokens=system_tokens,
            history_tokens=history.token_count,
            documentation_tokens=documentation.token_count,
            query_tokens=query_tokens,
            total_tokens=(
                system_tokens + history.token_count + documentation.token_count + query_tokens
            ),
        )
        return PromptCount(breakdown=breakdown, history=history, documentation=documentation)
