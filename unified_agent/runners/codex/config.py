"""Codex engine configuration and per-invocation options."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Mapping

from unified_agent.core.cancellation import CancellationToken
from unified_agent.runners.subprocess_transport import merge_env


@dataclass(frozen=True)
class CodexConfig:
    """How to launch the Codex CLI."""

    codex_bin: str | None = None
    # Codex config directory (exported as CODEX_HOME).
    home: str | None = None
    env: Mapping[str, str | None] = field(default_factory=dict)
    stdout_limit: int = 10 * 1024 * 1024

    def resolve_bin(self) -> str:
        return self.codex_bin or os.getenv("CODEX_BIN", "codex")

    def resolve_env(self) -> dict[str, str]:
        env = merge_env(self.env)
        if self.home:
            env["CODEX_HOME"] = os.path.expanduser(self.home)
        return env


@dataclass(frozen=True)
class CodexOptions:
    """Everything one Codex turn needs.

    The first group is owned by the unified session config and access
    mapping; the second group is backend passthrough.
    """

    thread_id: str | None = None
    working_directory: str | None = None
    additional_directories: tuple[str, ...] = ()
    model: str | None = None
    model_reasoning_effort: str | None = None
    sandbox_mode: str | None = None
    approval_policy: str | None = None
    network_access_enabled: bool | None = None
    web_search_enabled: bool | None = None
    output_schema: dict | None = None
    images: tuple[str, ...] = ()
    cancel_token: CancellationToken | None = None

    skip_git_repo_check: bool = False
    # Extra `--config key=value` overrides.
    config_overrides: Mapping[str, object] | None = None
    env: Mapping[str, str | None] | None = None


CODEX_PASSTHROUGH_OPTIONS = frozenset({"skip_git_repo_check", "config_overrides", "env"})
CODEX_OWNED_OPTIONS = frozenset(f.name for f in fields(CodexOptions)) - CODEX_PASSTHROUGH_OPTIONS


# `--config` keys (and their tables) derived from unified-owned options.
CODEX_OWNED_CONFIG_KEYS = frozenset(
    {
        "model",
        "model_reasoning_effort",
        "sandbox_mode",
        "approval_policy",
        "sandbox_workspace_write",
        "features.web_search_request",
        "tools.web_search",
    }
)


def is_owned_config_key(key: str) -> bool:
    """Whether a `--config` override would touch a unified-owned setting.

    A table key such as `features` counts when it contains an owned key.
    """
    return any(
        key == owned or key.startswith(owned + ".") or owned.startswith(key + ".")
        for owned in CODEX_OWNED_CONFIG_KEYS
    )


def map_reasoning_effort(effort: str) -> str:
    if effort == "none":
        return "minimal"
    return effort
