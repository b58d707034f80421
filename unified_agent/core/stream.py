"""Bounded single-consumer event stream for one run.

Non-terminal events go through a bounded buffer; when it is full new events
are dropped and counted. The terminal `run.completed` is held separately and
handed out after the buffer drains, so it is never lost and always last.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque

from unified_agent.core.api import RunCompleted, RuntimeEvent

log = logging.getLogger(__name__)

DEFAULT_EVENT_BUFFER = 10_000


def resolve_event_buffer(capacity: int | None = None) -> int:
    if capacity is not None:
        return max(1, int(capacity))
    raw = os.getenv("UNIFIED_AGENT_EVENT_BUFFER", "").strip()
    if raw.isdigit() and int(raw) > 0:
        return int(raw)
    return DEFAULT_EVENT_BUFFER


class EventStream:
    def __init__(self, capacity: int = DEFAULT_EVENT_BUFFER, *, run_id: str | None = None):
        self.capacity = capacity
        self.run_id = run_id
        self.dropped = 0
        self._buffer: deque[RuntimeEvent] = deque()
        self._terminal: RunCompleted | None = None
        self._terminal_delivered = False
        self._closed = False
        self._wake = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: RuntimeEvent, *, force: bool = False) -> bool:
        """Buffer a non-terminal event; returns False if it was dropped."""
        if self._closed:
            return False
        if not force and len(self._buffer) >= self.capacity:
            if self.dropped == 0:
                log.warning(
                    "Event buffer full for run %s (capacity=%d); dropping events",
                    self.run_id,
                    self.capacity,
                )
            self.dropped += 1
            return False
        self._buffer.append(event)
        self._wake.set()
        return True

    def finish(self, terminal: RunCompleted) -> None:
        if self._closed:
            return
        self._terminal = terminal
        self._closed = True
        self._wake.set()

    def __aiter__(self) -> EventStream:
        return self

    async def __anext__(self) -> RuntimeEvent:
        while True:
            if self._buffer:
                return self._buffer.popleft()
            if self._terminal is not None and not self._terminal_delivered:
                self._terminal_delivered = True
                return self._terminal
            if self._closed:
                raise StopAsyncIteration
            self._wake.clear()
            await self._wake.wait()
