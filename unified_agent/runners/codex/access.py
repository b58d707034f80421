"""Map unified access presets onto the Codex sandbox."""

from __future__ import annotations

from dataclasses import dataclass

from unified_agent.core.config import ResolvedAccess

SANDBOX_MODES = {
    "low": "read-only",
    "medium": "workspace-write",
    "high": "danger-full-access",
}


@dataclass(frozen=True)
class CodexAccessOptions:
    approval_policy: str
    sandbox_mode: str
    network_access_enabled: bool
    web_search_enabled: bool


def map_access_to_codex(access: ResolvedAccess) -> CodexAccessOptions:
    # Non-interactive: the sandbox is the boundary, never an approval prompt.
    if access.auto == "high":
        network, web_search = True, True
    elif access.auto == "low":
        network, web_search = False, access.web_search
    else:
        network, web_search = access.network, access.web_search

    return CodexAccessOptions(
        approval_policy="never",
        sandbox_mode=SANDBOX_MODES[access.auto],
        network_access_enabled=network,
        web_search_enabled=web_search,
    )
