"""Session & SessionStore — the only mutable state of the context-window manager."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import OrderedDict
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field

from pydantic import BaseModel

from .messages import Message

logger = logging.getLogger(__name__)


class SessionStats(BaseModel):
    """Aggregate, read-only view of a session."""

    message_count: int
    total_tokens: int
    has_summary: bool
    last_summarized_index: int


@dataclass
class Session:
    """Conversation state for one session id.

    ``summarized_context`` is set exactly when ``last_summarized_index >= 0``;
    the index never decreases.
    """

    id: str
    messages: list[Message] = field(default_factory=list)
    total_tokens: int = 0
    last_summarized_index: int = -1
    summarized_context: str | None = None
    # message id -> retrieval context recorded after the answer was produced
    provenance: dict[str, str] = field(default_factory=dict)

    def replace_messages(self, messages: Sequence[Message]) -> None:
        """Adopt the caller's list, re-attaching provenance the caller did not send back."""
        adopted: list[Message] = []
        for m in messages:
            if m.retrieved_context is None and m.id in self.provenance:
                m = m.model_copy(update={"retrieved_context": self.provenance[m.id]})
            adopted.append(m)
        self.messages = adopted

    def append_summary(self, text: str, through_index: int) -> None:
        """Fold a new summary in and advance the summarized index."""
        if through_index < self.last_summarized_index:
            msg = (
                f"summarized index cannot move backwards "
                f"({self.last_summarized_index} -> {through_index})"
            )
            raise ValueError(msg)
        if self.summarized_context:
            self.summarized_context = f"{self.summarized_context}\n\n{text}"
        else:
            self.summarized_context = text
        self.last_summarized_index = through_index

    def stats(self) -> SessionStats:
        return SessionStats(
            message_count=len(self.messages),
            total_tokens=self.total_tokens,
            has_summary=bool(self.summarized_context),
            last_summarized_index=self.last_summarized_index,
        )


@dataclass
class _Entry:
    session: Session
    lock: asyncio.Lock
    last_access: float
    # turns holding or queued on the lock
    in_flight: int = 0

    @property
    def busy(self) -> bool:
        return self.in_flight > 0 or self.lock.locked()


class SessionStore:
    """In-memory map of session id -> :class:`Session`.

    Nothing is persisted. Eviction is opt-in: ``max_sessions`` bounds the map
    (least recently used first) and ``ttl_seconds`` drops sessions idle for
    longer than that. A session with a turn in progress, or queued behind one,
    is never evicted.
    """

    def __init__(
        self,
        max_sessions: int | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._max_sessions = max_sessions
        self._ttl = ttl_seconds
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    # -- lookup -------------------------------------------------------------

    def get_or_create(self, session_id: str) -> Session:
        """Return the session for *session_id*, creating it on first use."""
        entry = self._touch(session_id)
        if entry is None:
            entry = _Entry(
                session=Session(id=session_id),
                lock=asyncio.Lock(),
                last_access=self._clock(),
            )
            self._entries[session_id] = entry
            self._enforce_capacity(keep=session_id)
        return entry.session

    def get(self, session_id: str) -> Session | None:
        entry = self._touch(session_id)
        return entry.session if entry is not None else None

    def stats(self, session_id: str) -> SessionStats | None:
        session = self.get(session_id)
        return session.stats() if session is not None else None

    @contextlib.asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[Session]:
        """Serialize work on one session id, creating the session if needed.

        The entry is pinned from before the lock is awaited until it is
        released, so a turn waiting its turn always resumes on the same
        session and lock as the turn ahead of it.
        """
        self.get_or_create(session_id)
        entry = self._entries[session_id]
        entry.in_flight += 1
        try:
            async with entry.lock:
                yield entry.session
        finally:
            entry.in_flight -= 1
            entry.last_access = self._clock()

    # -- removal ------------------------------------------------------------

    def clear(self, session_id: str) -> None:
        """Remove the session entirely; unknown ids are ignored."""
        self._entries.pop(session_id, None)

    def evict_expired(self) -> list[str]:
        """Drop idle sessions past the TTL and return their ids."""
        if self._ttl is None:
            return []
        now = self._clock()
        expired = [
            sid
            for sid, entry in self._entries.items()
            if now - entry.last_access > self._ttl and not entry.busy
        ]
        for sid in expired:
            del self._entries[sid]
        if expired:
            logger.info("Evicted %d idle session(s): %s", len(expired), ", ".join(expired))
        return expired

    # -- internals ----------------------------------------------------------

    def _touch(self, session_id: str) -> _Entry | None:
        self.evict_expired()
        entry = self._entries.get(session_id)
        if entry is not None:
            entry.last_access = self._clock()
            self._entries.move_to_end(session_id)
        return entry

    def _enforce_capacity(self, keep: str) -> None:
        if self._max_sessions is None:
            return
        overflow = len(self._entries) - self._max_sessions
        if overflow <= 0:
            return
        victims: list[str] = []
        for sid, entry in self._entries.items():
            if len(victims) == overflow:
                break
            if sid != keep and not entry.busy:
                victims.append(sid)
        for sid in victims:
            del self._entries[sid]
        if victims:
            logger.info(
                "Evicted %d least recently used session(s): %s", len(victims), ", ".join(victims)
            )
