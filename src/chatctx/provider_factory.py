"""Provider factory — deterministic provider selection from environment."""

from __future__ import annotations

import os

from .provider import LLMProvider, OpenAICompatibleProvider, StubLLMProvider

# Valid provider names for CHATCTX_LLM_PROVIDER
_VALID_PROVIDERS = frozenset({"openai", "stub"})


class ProviderFactory:
    """Creates the appropriate LLM provider based on configuration.

    Resolution logic:
        1. Read ``CHATCTX_LLM_PROVIDER`` env var (openai | stub).
        2. If set: return that exact provider.
        3. If unset: return stub.
    """

    @staticmethod
    def create() -> LLMProvider:
        """Create a provider based on ``CHATCTX_LLM_PROVIDER``.

        Raises:
            ValueError: If ``CHATCTX_LLM_PROVIDER`` is set to an unknown value.
        """
        env_provider = os.environ.get("CHATCTX_LLM_PROVIDER", "").strip().lower()
        if not env_provider:
            return StubLLMProvider()
        return ProviderFactory.create_named(env_provider)

    @staticmethod
    def create_named(provider_name: str) -> LLMProvider:
        """Create a specific provider by name."""
        if provider_name not in _VALID_PROVIDERS:
            msg = (
                f"Unknown provider '{provider_name}'. "
                f"Valid values for CHATCTX_LLM_PROVIDER: {', '.join(sorted(_VALID_PROVIDERS))}"
            )
            raise ValueError(msg)

        if provider_name == "openai":
            return OpenAICompatibleProvider()
        return StubLLMProvider()

    @staticmethod
    def describe(provider: LLMProvider) -> str:
        """Return a human-readable description of a provider."""
        if isinstance(provider, OpenAICompatibleProvider):
            return f"OpenAICompatibleProvider (model={provider.model}, url={provider.url})"
        if isinstance(provider, StubLLMProvider):
            return "StubLLMProvider (deterministic responses)"
        return f"{type(provider).__name__}"
