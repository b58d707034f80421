"""Ports for the unified runtime.

Callers depend on these contracts rather than on a concrete backend; each
backend ships one runtime/session pair implementing them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from unified_agent.core.api import RunInput, RuntimeCapabilities, SessionHandle, SessionStatus
from unified_agent.core.config import RunConfig, SessionConfig

if TYPE_CHECKING:
    from unified_agent.core.runtime import RunHandle


class AgentSession(Protocol):
    provider: str
    session_id: str | None

    async def capabilities(self) -> RuntimeCapabilities: ...

    async def status(self) -> SessionStatus: ...

    async def run(self, input: RunInput, config: RunConfig | None = None) -> RunHandle: ...

    async def cancel(self, run_id: str | None = None) -> None: ...

    async def snapshot(self) -> SessionHandle: ...

    async def dispose(self) -> None: ...


class AgentRuntime(Protocol):
    provider: str

    async def capabilities(self) -> RuntimeCapabilities: ...

    async def open_session(self, config: SessionConfig | None = None) -> AgentSession: ...

    async def resume_session(self, handle: SessionHandle) -> AgentSession: ...

    async def close(self) -> None: ...
