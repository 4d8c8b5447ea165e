"""chatctx — conversational context-window manager for retrieval-augmented chat."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import ContextWindowConfig
from .manager import ContextResult, ContextWindowManager
from .messages import ChatRole, Message, RetrievedDocument
from .pipeline import (
    DEFAULT_SYSTEM_PROMPT,
    ChatPipeline,
    ChatReply,
    Retriever,
    StaticRetriever,
    SummaryReport,
)
from .provider import (
    CompletionError,
    LLMProvider,
    OpenAICompatibleProvider,
    StubLLMProvider,
)
from .provider_factory import ProviderFactory
from .session import Session, SessionStats, SessionStore
from .summarizer import SummarizationFailure, Summarizer, build_fallback
from .telemetry import (
    ContextTracer,
    TelemetryConfig,
    configure_tracing,
    trace_manage_turn,
    trace_summarize,
)
from .tokens import (
    HeuristicTokenizer,
    PromptCount,
    RenderedCount,
    TiktokenTokenizer,
    TokenBreakdown,
    TokenCounter,
    Tokenizer,
    create_tokenizer,
    estimate_tokens,
)

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "ChatPipeline",
    "ChatReply",
    "ChatRole",
    "CompletionError",
    "ContextResult",
    "ContextTracer",
    "ContextWindowConfig",
    "ContextWindowManager",
    "HeuristicTokenizer",
    "LLMProvider",
    "Message",
    "OpenAICompatibleProvider",
    "PromptCount",
    "ProviderFactory",
    "RenderedCount",
    "RetrievedDocument",
    "Retriever",
    "Session",
    "SessionStats",
    "SessionStore",
    "StaticRetriever",
    "StubLLMProvider",
    "SummarizationFailure",
    "Summarizer",
    "SummaryReport",
    "TelemetryConfig",
    "TiktokenTokenizer",
    "TokenBreakdown",
    "TokenCounter",
    "Tokenizer",
    "build_fallback",
    "configure_tracing",
    "create_tokenizer",
    "estimate_tokens",
    "trace_manage_turn",
    "trace_summarize",
]
