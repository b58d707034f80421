"""Exceptions raised at the unified session boundary.

Failures inside a run never escape as exceptions; they surface as canonical
`error` / `run.completed` events. The types here cover what callers can see
directly (busy sessions) and what backend engines raise into the lifecycle
controller so it can format the failure consistently.
"""

from __future__ import annotations


class UnifiedAgentError(RuntimeError):
    """Base class for unified-agent errors."""


class SessionBusyError(UnifiedAgentError):
    """A run was requested while another run is still active."""

    code = "SESSION_BUSY"

    def __init__(self, active_run_id: str):
        self.active_run_id = active_run_id
        super().__init__(self.__str__())

    def __str__(self) -> str:
        return f"Session is busy (active_run_id={self.active_run_id})."


class BackendProcessError(UnifiedAgentError):
    """The backend CLI exited without producing a usable event stream."""

    def __init__(
        self,
        backend: str,
        *,
        returncode: int | None = None,
        output_preview: str | None = None,
    ):
        self.backend = backend
        self.returncode = returncode
        self.output_preview = output_preview
        super().__init__(self.__str__())

    def __str__(self) -> str:
        head = f"{self.backend} process exited"
        if self.returncode is not None:
            head += f" with code {self.returncode}"
        preview = (self.output_preview or "").strip()
        if preview:
            return f"{head}: {preview}"
        return head


class BackendProtocolError(UnifiedAgentError):
    """Malformed/invalid data from a backend engine."""

    def __init__(self, backend: str, message: str, *, payload_preview: str | None = None):
        self.backend = backend
        self.message = message
        self.payload_preview = payload_preview
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.payload_preview:
            return f"{self.backend} protocol error: {self.message} (payload={self.payload_preview!r})"
        return f"{self.backend} protocol error: {self.message}"
