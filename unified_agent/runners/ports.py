"""Ports (interfaces) for backend engines.

Sessions talk to an engine through one streaming call per turn. The default
engines drive the vendor CLIs; tests and embedders can inject any object
with the same shape.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncGenerator, Protocol

if TYPE_CHECKING:
    from unified_agent.runners.claude.config import ClaudeOptions
    from unified_agent.runners.codex.config import CodexOptions


class ClaudeEngine(Protocol):
    """Streams Claude Code SDK messages (`system`, `assistant`, `result`, ...)."""

    def query(self, prompt: str, options: ClaudeOptions) -> AsyncGenerator[dict, None]:
        ...


class CodexEngine(Protocol):
    """Streams Codex thread events (`thread.started`, `item.*`, `turn.*`)."""

    def run_streamed(self, prompt: str, options: CodexOptions) -> AsyncGenerator[dict, None]:
        ...
