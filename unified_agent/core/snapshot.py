"""Versioned unified-config snapshot stored in `SessionHandle.metadata`.

Layout under the reserved key::

    {"version": 1,
     "sessionConfig": {"workspace": {"cwd": ..., "additionalDirs": [...]},
                       "access": {"auto": ..., "network": ..., "webSearch": ...},
                       "model": ..., "reasoningEffort": ...},
     "cumulativeUsage": {"input_tokens": ..., "cached_input_tokens": ...,
                         "output_tokens": ...}}

Decoding never raises: malformed fields are dropped one by one.
"""

from __future__ import annotations

from dataclasses import dataclass

from unified_agent.core.api import SessionHandle
from unified_agent.core.config import (
    ACCESS_LEVELS,
    REASONING_EFFORTS,
    AccessConfig,
    SessionConfig,
    SessionDefaults,
    WorkspaceConfig,
    merge_access,
)
from unified_agent.core.usage import TokenCounters

METADATA_KEY = "unifiedAgentSdk"
SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class ConfigSnapshot:
    workspace: WorkspaceConfig | None = None
    access: AccessConfig | None = None
    model: str | None = None
    reasoning_effort: str | None = None
    cumulative_usage: TokenCounters | None = None

    def to_session_config(self) -> SessionConfig:
        return SessionConfig(
            workspace=self.workspace,
            model=self.model,
            reasoning_effort=self.reasoning_effort,  # type: ignore[arg-type]
            access=self.access,
        )


def _encode_workspace(ws: WorkspaceConfig) -> dict:
    out: dict = {"cwd": ws.cwd}
    if ws.additional_dirs:
        out["additionalDirs"] = list(ws.additional_dirs)
    return out


def _encode_access(access: AccessConfig) -> dict:
    out: dict = {}
    if access.auto is not None:
        out["auto"] = access.auto
    if access.network is not None:
        out["network"] = access.network
    if access.web_search is not None:
        out["webSearch"] = access.web_search
    return out


def encode_snapshot(snapshot: ConfigSnapshot) -> dict:
    session_config: dict = {}
    if snapshot.workspace is not None:
        session_config["workspace"] = _encode_workspace(snapshot.workspace)
    if snapshot.access is not None:
        session_config["access"] = _encode_access(snapshot.access)
    if snapshot.model:
        session_config["model"] = snapshot.model
    if snapshot.reasoning_effort:
        session_config["reasoningEffort"] = snapshot.reasoning_effort

    entry: dict = {"version": SNAPSHOT_VERSION, "sessionConfig": session_config}
    if snapshot.cumulative_usage is not None:
        entry["cumulativeUsage"] = snapshot.cumulative_usage.to_dict()
    return entry


def _decode_workspace(raw: object) -> WorkspaceConfig | None:
    if not isinstance(raw, dict):
        return None
    cwd = raw.get("cwd")
    if not isinstance(cwd, str) or not cwd:
        return None
    dirs = raw.get("additionalDirs")
    if isinstance(dirs, list) and all(isinstance(d, str) and d for d in dirs):
        return WorkspaceConfig(cwd, tuple(dirs))
    return WorkspaceConfig(cwd)


def _decode_access(raw: object) -> AccessConfig | None:
    if not isinstance(raw, dict):
        return None
    auto = raw.get("auto")
    network = raw.get("network")
    web_search = raw.get("webSearch")
    return AccessConfig(
        auto=auto if auto in ACCESS_LEVELS else None,
        network=network if isinstance(network, bool) else None,
        web_search=web_search if isinstance(web_search, bool) else None,
    )


def decode_snapshot(metadata: object) -> ConfigSnapshot | None:
    """Read the reserved entry from handle metadata, or None if absent/corrupt."""
    if not isinstance(metadata, dict):
        return None
    entry = metadata.get(METADATA_KEY)
    if not isinstance(entry, dict) or entry.get("version") != SNAPSHOT_VERSION:
        return None
    cfg = entry.get("sessionConfig")
    if not isinstance(cfg, dict):
        return None

    model = cfg.get("model")
    effort = cfg.get("reasoningEffort")
    return ConfigSnapshot(
        workspace=_decode_workspace(cfg.get("workspace")),
        access=_decode_access(cfg.get("access")),
        model=model.strip() if isinstance(model, str) and model.strip() else None,
        reasoning_effort=effort if effort in REASONING_EFFORTS else None,
        cumulative_usage=TokenCounters.from_dict(entry.get("cumulativeUsage")),
    )


def merge_metadata(base: dict | None, snapshot: ConfigSnapshot) -> dict:
    """Replace the reserved entry, keeping every other metadata key."""
    merged = dict(base or {})
    merged[METADATA_KEY] = encode_snapshot(snapshot)
    return merged


def merge_handle_with_defaults(handle: SessionHandle, defaults: SessionDefaults | None) -> SessionHandle:
    """Fill fields missing from the handle's snapshot with runtime defaults."""
    if defaults is None:
        return handle
    restored = decode_snapshot(handle.metadata) or ConfigSnapshot()
    merged = ConfigSnapshot(
        workspace=restored.workspace or defaults.workspace,
        access=merge_access(defaults.access, restored.access),
        model=restored.model or defaults.model,
        reasoning_effort=restored.reasoning_effort or defaults.reasoning_effort,
        cumulative_usage=restored.cumulative_usage,
    )
    return SessionHandle(
        provider=handle.provider,
        session_id=handle.session_id,
        metadata=merge_metadata(handle.metadata, merged),
    )
