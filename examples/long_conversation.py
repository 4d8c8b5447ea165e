"""chatctx long-conversation demo.

Demonstrates the context-window manager end-to-end:
1. Short conversation stays under the threshold and is sent verbatim
2. Growing conversation crosses the threshold and old turns are summarized
3. Repeating a turn does not re-summarize
4. A failing summarizer falls back without losing recorded progress

Uses the stub provider -- no real LLM needed.

Run: python examples/long_conversation.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from chatctx import (
    ChatPipeline,
    ChatRole,
    CompletionError,
    ContextWindowConfig,
    ContextWindowManager,
    LLMProvider,
    Message,
    RetrievedDocument,
    StaticRetriever,
    StubLLMProvider,
)


class _FlakyProvider(LLMProvider):
    """Fails every call while ``down`` is set."""

    def __init__(self) -> None:
        self.down = False
        self._stub = StubLLMProvider(reply="The user configured a bridge and VLAN 10.")

    def name(self) -> str:
        return "flaky"

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        if self.down:
            msg = "provider unavailable"
            raise CompletionError(msg, status_code=503)
        return await self._stub.complete(system_prompt, user_prompt)


def _check(condition: bool, msg: str) -> None:  # noqa: FBT001
    """Raise RuntimeError if *condition* is False (demo validation)."""
    if not condition:
        raise RuntimeError(msg)


def _conversation(turns: int) -> list[Message]:
    messages: list[Message] = []
    for i in range(turns):
        role = ChatRole.USER if i % 2 == 0 else ChatRole.ASSISTANT
        text = f"turn {i}: " + "details about bridges and vlans " * 6
        messages.append(Message(id=f"m{i}", role=role, content=text))
    return messages


async def run_demo() -> None:
    print("=" * 60)
    print("chatctx long-conversation demo")
    print("=" * 60)

    provider = _FlakyProvider()
    config = ContextWindowConfig(
        max_tokens=1_000, summarization_threshold=800, preserve_recent_count=6
    )
    manager = ContextWindowManager.from_provider(provider, config, subject="RouterOS")
    docs = [
        RetrievedDocument(
            title="Bridging", content="Use /interface bridge add.", url="https://docs/bridge"
        )
    ]
    pipeline = ChatPipeline(manager, provider, StaticRetriever(docs))

    print("\n[1/4] Short conversation...")
    reply = await pipeline.run_turn("demo", _conversation(4), "How do I add a port?")
    print(f"  Response: {reply.response}")
    print(f"  Stats   : {reply.stats}")
    _check(not reply.needs_summarization, "short conversation should fit")

    print("\n[2/4] Long conversation crosses the threshold...")
    long_history = _conversation(30)
    result = await manager.manage_turn("demo", long_history, [], "", "next?")
    session = manager.get_session("demo")
    _check(session is not None, "session should exist")
    print(f"  Tokens             : {result.token_breakdown.total_tokens}")
    print(f"  Summarized through : {session.last_summarized_index}")
    _check(result.needs_summarization, "long conversation should need summarization")
    _check(session.last_summarized_index == 23, "old messages 0..23 should be summarized")

    print("\n[3/4] Same turn again...")
    calls_before = len(provider._stub.calls)  # noqa: SLF001
    await manager.manage_turn("demo", long_history, [], "", "next?")
    calls_after = len(provider._stub.calls)  # noqa: SLF001
    _check(calls_after == calls_before, "no re-summarization expected")
    print("  Summarizer not called again")

    print("\n[4/4] Summarizer outage...")
    provider.down = True
    result = await manager.manage_turn("demo", _conversation(36), [], "", "and now?")
    print(f"  Fallback used      : {result.summarization_failed}")
    print(f"  Summarized through : {session.last_summarized_index}")
    _check(result.summarization_failed, "fallback should be used")
    _check(session.last_summarized_index == 23, "progress must not move on failure")

    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(run_demo())
