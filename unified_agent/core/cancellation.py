"""Cooperative cancellation tokens.

A token is handed by reference to every backend invocation. Engines either
poll `aborted`, await `wait()`, or register a one-shot listener that stops
the underlying process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

log = logging.getLogger(__name__)

AbortListener = Callable[[object], None]


class CancellationToken:
    def __init__(self):
        self._aborted = False
        self._reason: object = None
        self._listeners: list[AbortListener] = []
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> object:
        return self._reason

    def abort(self, reason: object = None) -> None:
        """Trigger the token. Subsequent calls are no-ops."""
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason if reason is not None else "aborted"
        self._event.set()

        listeners = self._listeners
        self._listeners = []
        for listener in listeners:
            try:
                listener(self._reason)
            except Exception:
                log.exception("Cancellation listener failed")

    def add_listener(self, listener: AbortListener) -> Callable[[], None]:
        """Register a one-shot listener; returns a function that unregisters it.

        A listener added to a token that is already aborted runs immediately.
        """
        if self._aborted:
            listener(self._reason)
            return lambda: None
        self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: AbortListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    async def wait(self) -> object:
        await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        if self._aborted:
            return f"CancellationToken(aborted, reason={self._reason!r})"
        return "CancellationToken(pending)"
