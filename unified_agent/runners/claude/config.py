"""Claude engine configuration and per-invocation options."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Mapping

from unified_agent.core.cancellation import CancellationToken
from unified_agent.runners.subprocess_transport import merge_env

if TYPE_CHECKING:
    from unified_agent.runners.claude.access import ToolGate

# Thinking-token budget per reasoning-effort preset.
THINKING_BUDGETS = {
    "none": 0,
    "low": 4_000,
    "medium": 8_000,
    "high": 12_000,
    "xhigh": 16_000,
}

DEFAULT_SETTING_SOURCES = ("user", "project")


def max_thinking_tokens(effort: str) -> int:
    return THINKING_BUDGETS.get(effort, THINKING_BUDGETS["xhigh"])


@dataclass(frozen=True)
class ClaudeConfig:
    """How to launch the Claude Code CLI."""

    claude_bin: str | None = None
    # Claude Code config directory (exported as CLAUDE_CONFIG_DIR).
    home: str | None = None
    env: Mapping[str, str | None] = field(default_factory=dict)
    stdout_limit: int = 10 * 1024 * 1024

    def resolve_bin(self) -> str:
        return self.claude_bin or os.getenv("CLAUDE_BIN", "claude")

    def resolve_env(self) -> dict[str, str]:
        env = merge_env(self.env)
        if "CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC" not in self.env:
            env.setdefault("CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC", "1")
        if self.home:
            env["CLAUDE_CONFIG_DIR"] = os.path.expanduser(self.home)
        return env


@dataclass(frozen=True)
class ClaudeOptions:
    """Everything one Claude invocation needs.

    The first group is owned by the unified session config and access
    mapping; the second group is backend passthrough.
    """

    cwd: str | None = None
    additional_directories: tuple[str, ...] = ()
    resume: str | None = None
    cancel_token: CancellationToken | None = None
    model: str | None = None
    max_thinking_tokens: int | None = None
    permission_mode: str | None = None
    allow_dangerously_skip_permissions: bool = False
    disallowed_tools: tuple[str, ...] = ()
    can_use_tool: ToolGate | None = None
    output_schema: dict | None = None

    allowed_tools: tuple[str, ...] = ()
    system_prompt: str | None = None
    append_system_prompt: str | None = None
    setting_sources: tuple[str, ...] | None = None
    # Settings JSON object, or a string passed through to --settings verbatim.
    settings: dict | str | None = None
    max_turns: int | None = None
    include_partial_messages: bool = True
    env: Mapping[str, str | None] | None = None
    # Extra CLI flags: {"flag": "value"} -> --flag value, {"flag": None} -> --flag.
    extra_args: Mapping[str, str | None] | None = None


CLAUDE_OWNED_OPTIONS = frozenset(
    {
        "cwd",
        "additional_directories",
        "resume",
        "cancel_token",
        "model",
        "max_thinking_tokens",
        "permission_mode",
        "allow_dangerously_skip_permissions",
        "disallowed_tools",
        "can_use_tool",
        "output_schema",
    }
)

CLAUDE_PASSTHROUGH_OPTIONS = frozenset(f.name for f in fields(ClaudeOptions)) - CLAUDE_OWNED_OPTIONS

# CLI flags that would override unified-owned options or the access mapping.
# `allowedTools` pre-approves tools, which skips the access gate.
CLAUDE_OWNED_FLAGS = frozenset(
    {
        "model",
        "resume",
        "continue",
        "fork-session",
        "add-dir",
        "settings",
        "permission-mode",
        "permission-prompt-tool",
        "dangerously-skip-permissions",
        "allow-dangerously-skip-permissions",
        "allowedTools",
        "allowed-tools",
        "disallowedTools",
        "disallowed-tools",
        "json-schema",
        "input-format",
        "output-format",
    }
)
