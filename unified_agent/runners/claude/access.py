"""Map unified access presets onto Claude Code permission primitives.

Claude Code has no fine-grained OS sandbox for `low`, so besides the native
permission mode / sandbox settings this module supplies the tool gate the
CLI consults (over the stdio control protocol) before every tool use.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Callable, Literal

from unified_agent.core.access import (
    canonicalize_path,
    command_write_targets,
    is_mutating_command,
    is_networked_command,
    is_path_within_workspace,
    is_read_only_command,
)
from unified_agent.core.config import ResolvedAccess, WorkspaceConfig

log = logging.getLogger("claude")

LOCAL_DOMAINS = ("localhost", "127.0.0.1", "::1")

# The sandbox network is allow-list driven; keep medium usable for common hosts.
SANDBOX_ALLOWED_DOMAINS = LOCAL_DOMAINS + tuple(
    f"*.{tld}"
    for tld in (
        "com", "net", "org", "io", "ai", "dev", "app", "co", "me", "gg", "edu", "gov",
        "us", "uk", "ca", "de", "fr", "jp", "cn", "in", "br", "au", "nl", "se", "ch",
    )
)

# Native deny rules for `low`, mirroring the gate's networking classification.
LOW_ACCESS_DENY_RULES = (
    "Bash(curl:*)",
    "Bash(wget:*)",
    "Bash(nc:*)",
    "Bash(ncat:*)",
    "Bash(ssh:*)",
    "Bash(scp:*)",
    "Bash(sftp:*)",
    "Bash(rsync:*)",
    "Bash(git clone:*)",
    "Bash(git fetch:*)",
    "Bash(git pull:*)",
)

WRITE_LIKE_TOOLS = frozenset({"Write", "Edit", "NotebookEdit"})


@dataclass(frozen=True)
class PermissionDecision:
    behavior: Literal["allow", "deny"]
    message: str | None = None
    updated_input: dict | None = None

    @property
    def allowed(self) -> bool:
        return self.behavior == "allow"

    def to_dict(self) -> dict:
        if self.allowed:
            return {"behavior": "allow", "updatedInput": self.updated_input or {}}
        return {"behavior": "deny", "message": self.message or "", "interrupt": False}


ToolGate = Callable[[str, object, str | None], PermissionDecision]


def _deny(message: str) -> PermissionDecision:
    return PermissionDecision("deny", message=message)


class AccessGate:
    """Synchronous allow/deny decision for `low` and `medium`.

    Denials never interrupt the run; Claude sees the message and carries on.
    """

    def __init__(
        self,
        access: ResolvedAccess,
        workspace: WorkspaceConfig | None,
        disallowed_tools: tuple[str, ...],
    ):
        self.access = access
        self.workspace = workspace
        self.disallowed_tools = frozenset(disallowed_tools)

    @property
    def is_medium(self) -> bool:
        return self.access.auto == "medium"

    def __call__(self, tool_name: str, tool_input: object, blocked_path: str | None = None) -> PermissionDecision:
        decision = self.decide(tool_name, tool_input, blocked_path)
        if not decision.allowed:
            log.info("Denied %s: %s", tool_name, decision.message)
        return decision

    def decide(self, tool_name: str, tool_input: object, blocked_path: str | None = None) -> PermissionDecision:
        params = tool_input if isinstance(tool_input, dict) else {}

        if tool_name in self.disallowed_tools:
            return _deny(f"Tool '{tool_name}' is disabled by unified access.")
        if tool_name == "WebFetch" and not self.access.network:
            return _deny("WebFetch is disabled by unified access (network=false).")
        if tool_name == "WebSearch" and not self.access.web_search:
            return _deny("WebSearch is disabled by unified access (web_search=false).")

        if tool_name == "Bash":
            command = params.get("command")
            if not isinstance(command, str) or not command.strip():
                return _deny("Bash command is missing.")
            if self.is_medium:
                if params.get("dangerouslyDisableSandbox") is True:
                    return _deny("Bash sandbox escape is disabled in auto=medium.")
                if not self.access.network and is_networked_command(command):
                    return _deny("Bash networking is disabled by unified access (network=false).")
            elif not is_read_only_command(command):
                return _deny("Bash command denied by unified access (auto=low).")

        if self.is_medium:
            path = blocked_path or params.get("file_path") or params.get("notebook_path")
            if tool_name == "Bash":
                is_write = is_mutating_command(str(params.get("command", "")))
            else:
                is_write = tool_name in WRITE_LIKE_TOOLS
            if isinstance(path, str) and path and is_write and not is_path_within_workspace(path, self.workspace):
                return _deny(f"Path '{path}' is outside the session workspace (auto=medium).")
            if tool_name == "Bash":
                for target in command_write_targets(str(params.get("command", ""))):
                    if not is_path_within_workspace(target, self.workspace):
                        return _deny(f"Path '{target}' is outside the session workspace (auto=medium).")

        return PermissionDecision("allow", updated_input=dict(params))


@dataclass(frozen=True)
class ClaudeAccessOptions:
    permission_mode: str
    allow_dangerously_skip_permissions: bool
    disallowed_tools: tuple[str, ...]
    sandbox: dict
    can_use_tool: ToolGate | None


def map_access_to_claude(access: ResolvedAccess, workspace: WorkspaceConfig | None) -> ClaudeAccessOptions:
    if access.auto == "high":
        return ClaudeAccessOptions(
            permission_mode="bypassPermissions",
            allow_dangerously_skip_permissions=True,
            disallowed_tools=(),
            sandbox={"enabled": False},
            can_use_tool=None,
        )

    is_medium = access.auto == "medium"
    disallowed: tuple[str, ...] = ("AskUserQuestion",)
    if not is_medium:
        disallowed += ("Write", "Edit", "NotebookEdit", "KillShell")

    if is_medium:
        sandbox = {
            "enabled": True,
            "autoAllowBashIfSandboxed": False,
            "allowUnsandboxedCommands": False,
            "network": {
                "allowedDomains": list(SANDBOX_ALLOWED_DOMAINS if access.network else LOCAL_DOMAINS),
                "allowLocalBinding": True,
            },
        }
    else:
        sandbox = {"enabled": False}

    return ClaudeAccessOptions(
        permission_mode="default",
        allow_dangerously_skip_permissions=False,
        disallowed_tools=disallowed,
        sandbox=sandbox,
        can_use_tool=AccessGate(access, workspace, disallowed),
    )


def settings_path_glob(abs_dir: str) -> str:
    """`Edit(...)` rule target for an absolute directory.

    Claude Code reads `/x` as relative to the settings file, so absolute
    POSIX paths are written as `//x`.
    """
    normalized = abs_dir.strip().rstrip("/\\")
    if normalized.startswith("/"):
        return f"//{normalized[1:]}/**"
    sep = "\\" if "\\" in normalized else "/"
    return f"{normalized}{sep}**"


def build_settings(
    user_settings: dict | str | None,
    access: ResolvedAccess,
    workspace: WorkspaceConfig | None,
    sandbox: dict,
) -> dict | str | None:
    """Merge access-derived rules into the caller's Claude settings.

    A settings string that is not a JSON object (e.g. a file path) is passed
    through untouched.
    """
    if isinstance(user_settings, str):
        try:
            parsed = json.loads(user_settings)
        except ValueError:
            log.warning("Claude settings is not JSON; access rules were not injected")
            return user_settings
        if not isinstance(parsed, dict):
            return user_settings
        settings = parsed
    else:
        settings = dict(user_settings or {})

    settings["sandbox"] = {**(settings.get("sandbox") or {}), **sandbox}

    permissions = dict(settings.get("permissions") or {})
    if access.auto == "low":
        deny = [r for r in permissions.get("deny") or [] if isinstance(r, str) and r.strip()]
        permissions["deny"] = list(dict.fromkeys([*deny, *LOW_ACCESS_DENY_RULES]))
    elif access.auto == "medium" and workspace is not None and workspace.additional_dirs:
        rules: list[str] = []
        for d in workspace.additional_dirs:
            canonical = canonicalize_path(d, base_dir=workspace.cwd)
            if canonical and os.path.isabs(canonical):
                rules.append(f"Edit({settings_path_glob(canonical)})")
        allow = [r for r in permissions.get("allow") or [] if isinstance(r, str)]
        permissions["allow"] = list(dict.fromkeys([*allow, *rules]))
    if permissions:
        settings["permissions"] = permissions

    return settings
