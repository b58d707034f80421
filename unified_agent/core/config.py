"""Unified session configuration and the merge rules between its layers.

Layers, lowest to highest precedence: runtime defaults, session config,
per-run config. Workspace, model, reasoning effort, access and cancellation
are unified-owned: backend passthrough can never set them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Literal, Mapping

from unified_agent.core.cancellation import CancellationToken

log = logging.getLogger(__name__)

AccessLevel = Literal["low", "medium", "high"]
ReasoningEffort = Literal["none", "low", "medium", "high", "xhigh"]

ACCESS_LEVELS: tuple[str, ...] = ("low", "medium", "high")
REASONING_EFFORTS: tuple[str, ...] = ("none", "low", "medium", "high", "xhigh")
DEFAULT_REASONING_EFFORT: ReasoningEffort = "medium"


@dataclass(frozen=True)
class WorkspaceConfig:
    cwd: str
    additional_dirs: tuple[str, ...] = ()

    def roots(self) -> list[str]:
        return [self.cwd, *self.additional_dirs]


@dataclass(frozen=True)
class AccessConfig:
    auto: AccessLevel | None = None
    network: bool | None = None
    web_search: bool | None = None


@dataclass(frozen=True)
class ResolvedAccess:
    """Access config with every field filled in."""

    auto: AccessLevel = "medium"
    network: bool = True
    web_search: bool = True


@dataclass(frozen=True)
class SessionConfig:
    workspace: WorkspaceConfig | None = None
    model: str | None = None
    reasoning_effort: ReasoningEffort | None = None
    access: AccessConfig | None = None
    # Backend-specific passthrough (opaque here; validated by the adapter).
    provider: Mapping[str, object] | None = None


@dataclass(frozen=True)
class RunConfig:
    output_schema: Mapping[str, object] | None = None
    cancel_token: CancellationToken | None = None
    provider: Mapping[str, object] | None = None


@dataclass(frozen=True)
class SessionDefaults:
    """Runtime-wide portable defaults applied to every opened session."""

    workspace: WorkspaceConfig | None = None
    access: AccessConfig | None = None
    model: str | None = None
    reasoning_effort: ReasoningEffort | None = None
    provider: Mapping[str, object] = field(default_factory=dict)


def merge_access(*layers: AccessConfig | None) -> AccessConfig | None:
    """Field-wise merge; later layers win for fields they set."""
    present = [a for a in layers if a is not None]
    if not present:
        return None
    auto = network = web_search = None
    for layer in present:
        if layer.auto is not None:
            auto = layer.auto
        if layer.network is not None:
            network = layer.network
        if layer.web_search is not None:
            web_search = layer.web_search
    return AccessConfig(auto=auto, network=network, web_search=web_search)


def normalize_access(access: AccessConfig | None) -> ResolvedAccess:
    if access is None:
        return ResolvedAccess()
    auto = access.auto if access.auto in ACCESS_LEVELS else "medium"
    return ResolvedAccess(
        auto=auto,
        network=True if access.network is None else bool(access.network),
        web_search=True if access.web_search is None else bool(access.web_search),
    )


def merge_session_config(config: SessionConfig | None, defaults: SessionDefaults | None) -> SessionConfig:
    """Fill in session fields the caller left unset from the runtime defaults."""
    config = config or SessionConfig()
    if defaults is None:
        return config
    return SessionConfig(
        workspace=config.workspace or defaults.workspace,
        model=config.model or defaults.model,
        reasoning_effort=config.reasoning_effort or defaults.reasoning_effort,
        access=merge_access(defaults.access, config.access),
        provider=config.provider,
    )


def resolve_reasoning_effort(value: str | None) -> ReasoningEffort:
    if value in REASONING_EFFORTS:
        return value  # type: ignore[return-value]
    return DEFAULT_REASONING_EFFORT


def merge_provider_options(
    layers: Iterable[Mapping[str, object] | None],
    *,
    backend: str,
    allowed: Iterable[str],
    owned: Iterable[str],
) -> dict[str, object]:
    """Merge backend passthrough layers (later wins) and drop unified-owned keys.

    Keys that are neither passthrough options nor owned fields raise
    ValueError so typos do not silently disappear.
    """
    allowed_keys = frozenset(allowed)
    owned_keys = frozenset(owned)
    merged: dict[str, object] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            if key in owned_keys:
                log.warning(
                    "Ignoring %s option %r: it is controlled by the unified session config",
                    backend,
                    key,
                )
                continue
            if key not in allowed_keys:
                raise ValueError(f"Unknown {backend} option: {key}")
            merged[key] = value
    return merged
