"""LLM provider abstraction — the single completion call used for answers and summaries."""

from __future__ import annotations

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests

_DEFAULT_BASE_URL = "https://api.x.ai/v1"
_DEFAULT_MODEL = "grok-3-mini-fast"
_DEFAULT_TIMEOUT = 120.0


class CompletionError(Exception):
    """Raised when the underlying completion call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# LLMProvider ABC
# ---------------------------------------------------------------------------


class LLMProvider(ABC):
    """Abstract base class for completion backends."""

    @abstractmethod
    def name(self) -> str:
        """Return the canonical provider name (e.g. 'openai', 'stub')."""

    @abstractmethod
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the model's reply to a system + user prompt pair.

        Raises:
            CompletionError: if the backend call fails.
        """


# ---------------------------------------------------------------------------
# Stub implementation (for testing / offline development)
# ---------------------------------------------------------------------------


@dataclass
class CompletionCall:
    """One recorded call to :class:`StubLLMProvider`."""

    system_prompt: str
    user_prompt: str


class StubLLMProvider(LLMProvider):
    """Returns canned responses without making real HTTP calls."""

    _CANNED = "This is a stub response for testing purposes."

    def __init__(self, reply: str | None = None) -> None:
        self._reply = reply if reply is not None else self._CANNED
        self.calls: list[CompletionCall] = []

    def name(self) -> str:
        return "stub"

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return a deterministic canned response and record the call."""
        self.calls.append(CompletionCall(system_prompt=system_prompt, user_prompt=user_prompt))
        return self._reply


# ---------------------------------------------------------------------------
# OpenAI-compatible HTTP implementation
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider(LLMProvider):
    """Calls any ``/chat/completions`` endpoint speaking the OpenAI wire format.

    Defaults target xAI's API. Configuration via environment variables:
        - ``CHATCTX_LLM_BASE_URL``: API root (default ``https://api.x.ai/v1``)
        - ``CHATCTX_LLM_API_KEY``: bearer token
        - ``CHATCTX_LLM_MODEL``: model name (default ``grok-3-mini-fast``)
        - ``CHATCTX_LLM_TIMEOUT_SEC``: HTTP timeout in seconds (default 120)
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ) -> None:
        base = base_url or os.environ.get("CHATCTX_LLM_BASE_URL", _DEFAULT_BASE_URL)
        self._url = f"{base.rstrip('/')}/chat/completions"
        self._api_key = api_key or os.environ.get("CHATCTX_LLM_API_KEY", "")
        self._model = model or os.environ.get("CHATCTX_LLM_MODEL", _DEFAULT_MODEL)
        self._timeout = timeout or float(
            os.environ.get("CHATCTX_LLM_TIMEOUT_SEC", str(_DEFAULT_TIMEOUT))
        )

    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        """Return the configured model name."""
        return self._model

    @property
    def url(self) -> str:
        return self._url

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        return await asyncio.to_thread(self._post, system_prompt, user_prompt)

    def _post(self, system_prompt: str, user_prompt: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        try:
            resp = requests.post(self._url, json=payload, headers=headers, timeout=self._timeout)
        except requests.Timeout as exc:
            msg = f"completion request timed out after {self._timeout}s"
            raise CompletionError(msg) from exc
        except requests.RequestException as exc:
            msg = f"completion request failed: {exc}"
            raise CompletionError(msg) from exc

        if not resp.ok:
            detail = resp.text.strip() or resp.reason or "unknown error"
            msg = f"completion request failed (HTTP {resp.status_code}): {detail}"
            raise CompletionError(msg, status_code=resp.status_code)

        try:
            return resp.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            msg = "malformed completion response"
            raise CompletionError(msg, status_code=resp.status_code) from exc
