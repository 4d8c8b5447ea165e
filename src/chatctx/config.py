"""Deployment-time configuration for the context-window manager."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .tokens import TOKENIZER_NAMES

# Defaults: a 135k-token window with
# compaction starting at ~89% of it.
DEFAULT_MAX_TOKENS = 135_000
DEFAULT_SUMMARIZATION_THRESHOLD = 120_000
DEFAULT_PRESERVE_RECENT = 10
DEFAULT_SUMMARIZATION_TIMEOUT = 60.0


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        msg = f"{name} must be an integer, got '{raw}'"
        raise ValueError(msg) from exc


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        msg = f"{name} must be a number, got '{raw}'"
        raise ValueError(msg) from exc


@dataclass(frozen=True)
class ContextWindowConfig:
    """Token budget and session policy, fixed for the lifetime of a manager.

    Validated on construction so a bad deployment fails at startup rather
    than in the middle of a chat turn.
    """

    max_tokens: int = DEFAULT_MAX_TOKENS
    summarization_threshold: int = DEFAULT_SUMMARIZATION_THRESHOLD
    preserve_recent_count: int = DEFAULT_PRESERVE_RECENT
    summarization_timeout: float | None = DEFAULT_SUMMARIZATION_TIMEOUT
    fallback_message_count: int = 3
    max_sessions: int | None = None
    session_ttl_seconds: float | None = None
    tokenizer: str = "heuristic"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ``ValueError`` describing the first invalid setting."""
        if self.max_tokens <= 0:
            msg = "max_tokens must be positive"
            raise ValueError(msg)
        if not 0 < self.summarization_threshold < self.max_tokens:
            msg = (
                f"summarization_threshold must be between 0 and max_tokens "
                f"({self.max_tokens}), got {self.summarization_threshold}"
            )
            raise ValueError(msg)
        if self.preserve_recent_count < 0:
            msg = "preserve_recent_count must not be negative"
            raise ValueError(msg)
        # Every rendered message costs at least one token.
        if self.preserve_recent_count > self.max_tokens:
            msg = (
                f"preserve_recent_count ({self.preserve_recent_count}) can never fit "
                f"in max_tokens ({self.max_tokens})"
            )
            raise ValueError(msg)
        if self.summarization_timeout is not None and self.summarization_timeout <= 0:
            msg = "summarization_timeout must be positive"
            raise ValueError(msg)
        if self.fallback_message_count < 1:
            msg = "fallback_message_count must be at least 1"
            raise ValueError(msg)
        if self.max_sessions is not None and self.max_sessions <= 0:
            msg = "max_sessions must be positive"
            raise ValueError(msg)
        if self.session_ttl_seconds is not None and self.session_ttl_seconds <= 0:
            msg = "session_ttl_seconds must be positive"
            raise ValueError(msg)
        if self.tokenizer.strip().lower() not in TOKENIZER_NAMES:
            msg = (
                f"Unknown tokenizer '{self.tokenizer}'. "
                f"Valid values: {', '.join(sorted(TOKENIZER_NAMES))}"
            )
            raise ValueError(msg)

    @classmethod
    def from_env(cls) -> ContextWindowConfig:
        """Build a config from ``CHATCTX_*`` environment variables.

        Unset variables fall back to the class defaults.
        """
        return cls(
            max_tokens=_env_int("CHATCTX_MAX_TOKENS", DEFAULT_MAX_TOKENS),
            summarization_threshold=_env_int(
                "CHATCTX_SUMMARIZATION_THRESHOLD", DEFAULT_SUMMARIZATION_THRESHOLD
            ),
            preserve_recent_count=_env_int("CHATCTX_PRESERVE_RECENT", DEFAULT_PRESERVE_RECENT),
            summarization_timeout=_env_float(
                "CHATCTX_SUMMARIZATION_TIMEOUT_SEC", DEFAULT_SUMMARIZATION_TIMEOUT
            ),
            max_sessions=_env_int("CHATCTX_MAX_SESSIONS", None),
            session_ttl_seconds=_env_float("CHATCTX_SESSION_TTL_SEC", None),
            tokenizer=os.environ.get("CHATCTX_TOKENIZER", "").strip() or "heuristic",
        )
