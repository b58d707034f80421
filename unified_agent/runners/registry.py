"""Runtime registry.

This provides a single place to map a backend name to its concrete runtime.
Callers should depend on the `AgentRuntime` port.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping

from unified_agent.core.config import SessionDefaults
from unified_agent.engines import normalize_backend

if TYPE_CHECKING:
    from unified_agent.core.ports import AgentRuntime

# `codex exec` refuses to run outside a git repo unless told otherwise.
CODEX_DEFAULT_PASSTHROUGH = {"skip_git_repo_check": True}


def create_runtime(
    backend: str,
    *,
    home: str | None = None,
    env: Mapping[str, str | None] | None = None,
    defaults: SessionDefaults | None = None,
    engine: object | None = None,
    bin: str | None = None,
    event_buffer: int | None = None,
) -> AgentRuntime:
    name = normalize_backend(backend)

    if name == "claude":
        from unified_agent.runners.claude.config import ClaudeConfig
        from unified_agent.runners.claude.runner import ClaudeRuntime

        return ClaudeRuntime(
            config=ClaudeConfig(claude_bin=bin, home=home, env=dict(env or {})),
            defaults=defaults,
            engine=engine,  # type: ignore[arg-type]
            event_buffer=event_buffer,
        )

    if name == "codex":
        from unified_agent.runners.codex.config import CodexConfig
        from unified_agent.runners.codex.runner import CodexRuntime

        defaults = defaults or SessionDefaults()
        defaults = SessionDefaults(
            workspace=defaults.workspace,
            access=defaults.access,
            model=defaults.model,
            reasoning_effort=defaults.reasoning_effort,
            provider={**CODEX_DEFAULT_PASSTHROUGH, **defaults.provider},
        )
        return CodexRuntime(
            config=CodexConfig(codex_bin=bin, home=home, env=dict(env or {})),
            defaults=defaults,
            engine=engine,  # type: ignore[arg-type]
            event_buffer=event_buffer,
        )

    raise ValueError(f"Unknown backend: {backend}")
