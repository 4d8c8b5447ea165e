"""OpenTelemetry tracing integration for chatctx.

Provides spans for context-window turns and summarization calls with
support for stdout, OTLP, and noop exporters.
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.trace import NoOpTracer, Span, Tracer

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class TelemetryConfig:
    """Configuration for the chatctx tracing subsystem."""

    service_name: str = "chatctx"
    enabled: bool = True
    exporter: str = "none"  # "stdout" | "otlp" | "none"
    otlp_endpoint: str = "http://localhost:4317"


# ---------------------------------------------------------------------------
# ContextTracer
# ---------------------------------------------------------------------------


class ContextTracer:
    """Central tracer for chatctx.

    Wraps OpenTelemetry ``TracerProvider`` setup and provides helpers for
    creating spans and recording events.
    """

    def __init__(self, config: TelemetryConfig | None = None) -> None:
        self._config = config if config is not None else TelemetryConfig()
        self._provider: TracerProvider | None = None
        self._tracer: Tracer = NoOpTracer()

    # -- lifecycle -----------------------------------------------------------

    def init(self) -> None:
        """Set up the OTel TracerProvider based on config."""
        cfg = self._config

        if not cfg.enabled or cfg.exporter == "none":
            return

        resource = Resource.create({"service.name": cfg.service_name})

        if cfg.exporter == "stdout":
            from opentelemetry.sdk.trace.export import (
                ConsoleSpanExporter,
                SimpleSpanProcessor,
            )

            provider = TracerProvider(resource=resource)
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        elif cfg.exporter == "otlp":
            try:
                from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                    OTLPSpanExporter,
                )
            except ImportError as exc:
                msg = "OTLP exporter requested but not installed; install chatctx[otlp]"
                raise RuntimeError(msg) from exc
            from opentelemetry.sdk.trace.export import BatchSpanProcessor

            provider = TracerProvider(resource=resource)
            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=cfg.otlp_endpoint, insecure=True))
            )
        else:
            msg = f"Unknown exporter '{cfg.exporter}' (expected stdout, otlp or none)"
            raise ValueError(msg)

        self._provider = provider
        self._tracer = provider.get_tracer(cfg.service_name)

    # -- span helpers --------------------------------------------------------

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[Span, None, None]:
        """Create a span as a context manager.

        Usage::

            with tracer.span("context/manage_turn", {"session.id": sid}) as s:
                ...
        """
        with self._tracer.start_as_current_span(name) as s:
            if attributes:
                for k, v in attributes.items():
                    s.set_attribute(k, v)
            yield s

    def record_event(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        """Record a named event on the current active span (if any)."""
        current_span = trace.get_current_span()
        if current_span.is_recording():
            current_span.add_event(name, dict(attributes) if attributes else {})

    def shutdown(self) -> None:
        """Flush pending spans and shut down the provider.

        Safe to call multiple times.
        """
        if self._provider is not None:
            self._provider.shutdown()
            self._provider = None


# ---------------------------------------------------------------------------
# Module-level default (lazily initialised)
# ---------------------------------------------------------------------------

_DEFAULT_TRACER: ContextTracer | None = None


def get_tracer() -> ContextTracer:
    global _DEFAULT_TRACER  # noqa: PLW0603
    if _DEFAULT_TRACER is None:
        _DEFAULT_TRACER = ContextTracer()
    return _DEFAULT_TRACER


def configure_tracing(config: TelemetryConfig) -> ContextTracer:
    """Replace the default tracer with one built from *config* and initialise it."""
    global _DEFAULT_TRACER  # noqa: PLW0603
    if _DEFAULT_TRACER is not None:
        _DEFAULT_TRACER.shutdown()
    _DEFAULT_TRACER = ContextTracer(config)
    _DEFAULT_TRACER.init()
    return _DEFAULT_TRACER


# ---------------------------------------------------------------------------
# Convenience context managers
# ---------------------------------------------------------------------------


@contextlib.contextmanager
def trace_manage_turn(session_id: str, message_count: int) -> Generator[Span, None, None]:
    """Trace one context-window turn."""
    attrs = {"session.id": session_id, "context.message_count": message_count}
    with get_tracer().span("context/manage_turn", attrs) as s:
        yield s


@contextlib.contextmanager
def trace_summarize(message_count: int) -> Generator[Span, None, None]:
    """Trace a summarization call."""
    with get_tracer().span("context/summarize", {"summarize.message_count": message_count}) as s:
        yield s
