"""Backend registry data: names, aliases and capabilities."""

from __future__ import annotations

from dataclasses import dataclass

from unified_agent.core.api import RuntimeCapabilities


@dataclass(frozen=True)
class BackendSpec:
    name: str
    label: str
    capabilities: RuntimeCapabilities


_STREAMING_AGENT = RuntimeCapabilities(
    streaming_output=True,
    structured_output=True,
    reasoning_events="best_effort",
    cancel=True,
    session_resume=True,
    tool_events=True,
    raw_events=True,
)

BACKEND_SPECS = {
    "claude": BackendSpec(name="claude", label="Claude", capabilities=_STREAMING_AGENT),
    "codex": BackendSpec(name="codex", label="Codex", capabilities=_STREAMING_AGENT),
}

BACKEND_ALIASES = {
    "cc": "claude",
    "claude": "claude",
    "claude-code": "claude",
    "@anthropic-ai/claude-agent-sdk": "claude",
    "codex": "codex",
    "openai-codex": "codex",
    "@openai/codex-sdk": "codex",
}


def normalize_backend(backend: str) -> str | None:
    return BACKEND_ALIASES.get((backend or "").strip().lower())
