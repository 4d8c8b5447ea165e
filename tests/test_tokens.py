"""Tests for token counting — tokenizers, rendering contract, breakdown additivity."""

from __future__ import annotations

import pytest

from chatctx.messages import ChatRole, Message
from chatctx.tokens import (
    HeuristicTokenizer,
    TokenCounter,
    Tokenizer,
    create_tokenizer,
    estimate_tokens,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _WordTokenizer(Tokenizer):
    def count(self, text: str) -> int:
        return len(text.split())


def _msg(idx: int, role: ChatRole, content: str) -> Message:
    return Message(id=f"m{idx}", role=role, content=content)


# ---------------------------------------------------------------------------
# Tokenizers
# ---------------------------------------------------------------------------


def test_estimate_tokens():
    assert estimate_tokens("hello world") == 3  # 2 words * 1.3 ~ 2.6 -> 3
    assert estimate_tokens("") == 0
    assert estimate_tokens("   ") == 0
    assert estimate_tokens("a " * 100) > 100


def test_heuristic_is_deterministic():
    tok = HeuristicTokenizer()
    text = "ip address add address=192.168.88.1/24 interface=ether1"
    assert tok.count(text) == tok.count(text)


def test_heuristic_monotonic_under_concatenation():
    tok = HeuristicTokenizer()
    pieces = ["alpha", "beta gamma", "delta", "x y z"]
    text = ""
    previous = 0
    for piece in pieces:
        text = f"{text} {piece}" if text else piece
        current = tok.count(text)
        assert current >= previous
        previous = current


def test_create_tokenizer_heuristic():
    assert isinstance(create_tokenizer("heuristic"), HeuristicTokenizer)
    assert isinstance(create_tokenizer("  Heuristic "), HeuristicTokenizer)


def test_create_tokenizer_unknown_raises():
    with pytest.raises(ValueError, match="Unknown tokenizer"):
        create_tokenizer("sentencepiece")


# ---------------------------------------------------------------------------
# TokenCounter
# ---------------------------------------------------------------------------


def test_count_conversation_renders_role_prefix_and_blank_lines():
    counter = TokenCounter(_WordTokenizer())
    messages = [
        _msg(0, ChatRole.USER, "How do I add a bridge?"),
        _msg(1, ChatRole.ASSISTANT, "Use /interface bridge add."),
    ]
    result = counter.count_conversation(messages)
    assert result.text == "user: How do I add a bridge?\n\nassistant: Use /interface bridge add."
    assert result.token_count == counter.count(result.text)


def test_count_conversation_empty():
    counter = TokenCounter()
    result = counter.count_conversation([])
    assert result.text == ""
    assert result.token_count == 0


def test_count_documents_uses_separator():
    counter = TokenCounter(_WordTokenizer())
    result = counter.count_documents(["first doc", "second doc"])
    assert result.text == "first doc\n---\nsecond doc"
    assert result.token_count == 5  # first doc --- second doc


def test_count_all_is_additive():
    counter = TokenCounter(_WordTokenizer())
    breakdown = counter.count_all(
        "system prompt here",
        [_msg(0, ChatRole.USER, "one two three")],
        ["doc a", "doc b"],
        "the query",
    )
    assert breakdown.system_tokens == 3
    assert breakdown.history_tokens == 4
    assert breakdown.documentation_tokens == 5
    assert breakdown.query_tokens == 2
    assert breakdown.total_tokens == (
        breakdown.system_tokens
        + breakdown.history_tokens
        + breakdown.documentation_tokens
        + breakdown.query_tokens
    )


def test_count_all_with_default_tokenizer_is_additive():
    counter = TokenCounter()
    breakdown = counter.count_all(
        "You answer questions.",
        [_msg(0, ChatRole.USER, "hi"), _msg(1, ChatRole.ASSISTANT, "hello there")],
        [],
        "",
    )
    assert breakdown.documentation_tokens == 0
    assert breakdown.query_tokens == 0
    assert breakdown.total_tokens == breakdown.system_tokens + breakdown.history_tokens


def test_default_tokenizer_is_heuristic():
    assert isinstance(TokenCounter().tokenizer, HeuristicTokenizer)


def test_measure_keeps_the_counted_text():
    counter = TokenCounter(_WordTokenizer())
    messages = [_msg(0, ChatRole.USER, "one two"), _msg(1, ChatRole.ASSISTANT, "three")]

    measured = counter.measure("sys", messages, ["doc a", "doc b"], "q")

    assert measured.breakdown == counter.count_all("sys", messages, ["doc a", "doc b"], "q")
    assert measured.history.text == "user: one two\n\nassistant: three"
    assert measured.history.token_count == measured.breakdown.history_tokens
    assert measured.documentation.text == "doc a\n---\ndoc b"
    assert measured.documentation.token_count == measured.breakdown.documentation_tokens
