"""Portable access-policy helpers shared by the backend mappers.

Path scoping and shell-command classification are best-effort and
conservative: when a command cannot be classified, callers treat it as a
mutation and, under `low`, deny it.
"""

from __future__ import annotations

import os
import re

from unified_agent.core.config import WorkspaceConfig

_REDIRECT_RE = re.compile(r"[><]|\btee\b")
_MUTATING_VERB_RE = re.compile(
    r"\b(rm|mv|cp|mkdir|rmdir|touch|chmod|chown|chgrp|ln|dd|truncate|kill|pkill|xargs)\b"
)
_INPLACE_RE = re.compile(r"\b(sed\s+-i|perl\s+-i|python\s+-c|node\s+-e)\b")
_MUTATING_GIT_RE = re.compile(
    r"\bgit\s+(commit|push|checkout|switch|reset|clean|rebase|merge|apply|cherry-pick|tag|stash)\b"
)
_NETWORK_VERB_RE = re.compile(r"\b(curl|wget|nc|ncat|ssh|scp|sftp|rsync)\b")
_NETWORK_GIT_RE = re.compile(r"\bgit\s+(clone|fetch|pull)\b")

_READ_ONLY_PREFIXES = (
    re.compile(r"^\s*(ls|pwd|whoami|id|uname)\b"),
    re.compile(r"^\s*(cat|head|tail|wc|stat)\b"),
    re.compile(r"^\s*(rg|grep)\b"),
    re.compile(r"^\s*git\s+(status|diff|log|show)\b"),
)
_FIND_RE = re.compile(r"^\s*find\b")
_FIND_ACTION_RE = re.compile(r"\s-(?:delete|exec(?:dir)?|ok(?:dir)?|fprint0?|fprintf|fls)\b")

# Shell control operators that start a new command.
_SEGMENT_SPLIT_RE = re.compile(r"&&|\|\||[;|&\n]")
_SUBSTITUTION_RE = re.compile(r"\$\(|`")

_REDIRECT_TARGET_RE = re.compile(r"(?:\d*>>?|&>>?)\s*(?!&)([^\s;&|<>]+)")
_TEE_RE = re.compile(r"\btee\b([^;&|\n<>]*)")
_HARMLESS_TARGETS = frozenset({"/dev/null", "/dev/stdout", "/dev/stderr", "/dev/tty"})


def split_command_segments(command: str) -> list[str]:
    """Split on `;`, `&&`, `||`, `|`, `&` and newlines.

    Quoting is ignored, so an operator inside quotes also splits. That only
    yields extra fragments, which then fail the read-only check.
    """
    return [s.strip() for s in _SEGMENT_SPLIT_RE.split(command) if s.strip()]


def command_write_targets(command: str) -> list[str]:
    """Best-effort list of files a command writes through `>`/`>>` or `tee`."""
    targets = [m.group(1) for m in _REDIRECT_TARGET_RE.finditer(command)]
    for m in _TEE_RE.finditer(command):
        targets.extend(w for w in m.group(1).split() if not w.startswith("-"))
    cleaned = [t.strip("'\"") for t in targets]
    return [t for t in cleaned if t and t not in _HARMLESS_TARGETS]


def is_mutating_command(command: str) -> bool:
    """True when the command matches a known mutating pattern."""
    c = command.strip()
    if not c:
        return False
    return bool(
        _REDIRECT_RE.search(c)
        or _MUTATING_VERB_RE.search(c)
        or _INPLACE_RE.search(c)
        or _MUTATING_GIT_RE.search(c)
    )


def is_networked_command(command: str) -> bool:
    return bool(_NETWORK_VERB_RE.search(command) or _NETWORK_GIT_RE.search(command))


def is_read_only_command(command: str) -> bool:
    """Allow-list check for `low` access.

    Networked commands are never read-only here, whatever the network toggle.
    Every segment of a chained or piped command must be read-only on its own,
    and command substitution is refused outright.
    """
    c = command.strip()
    if not c:
        return False
    if _SUBSTITUTION_RE.search(c):
        return False
    if is_mutating_command(c) or is_networked_command(c):
        return False
    segments = split_command_segments(c)
    return bool(segments) and all(_is_read_only_segment(s) for s in segments)


def _is_read_only_segment(segment: str) -> bool:
    if any(p.search(segment) for p in _READ_ONLY_PREFIXES):
        return True
    if _FIND_RE.search(segment):
        return not _FIND_ACTION_RE.search(segment)
    return False


def best_effort_realpath(abs_path: str) -> str:
    """Resolve symlinks at the deepest existing ancestor.

    Components below that ancestor (files not created yet) are appended back
    unchanged.
    """
    candidate = abs_path
    suffix: list[str] = []
    while True:
        if os.path.lexists(candidate):
            try:
                real = os.path.realpath(candidate, strict=True)
            except OSError:
                return abs_path
            return os.path.join(real, *reversed(suffix)) if suffix else real
        parent = os.path.dirname(candidate)
        if parent == candidate:
            return abs_path
        suffix.append(os.path.basename(candidate))
        candidate = parent


def canonicalize_path(path: str, *, base_dir: str | None = None) -> str | None:
    p = path.strip()
    if not p:
        return None
    p = os.path.expanduser(p)
    if os.path.isabs(p):
        abs_path = os.path.normpath(p)
    elif base_dir:
        abs_path = os.path.normpath(os.path.join(os.path.abspath(base_dir), p))
    else:
        return None
    return best_effort_realpath(abs_path)


def is_path_within_root(candidate: str, root: str) -> bool:
    rel = os.path.relpath(candidate, root)
    if rel == ".":
        return True
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return False
    return not os.path.isabs(rel)


def is_path_within_workspace(path: str, workspace: WorkspaceConfig | None) -> bool:
    """Whether `path` is one of the workspace roots or nested under one.

    Without a workspace there is nothing to confine to, so every path passes.
    """
    if workspace is None:
        return True
    roots = [r for r in workspace.roots() if r]
    if not roots:
        return True
    target = canonicalize_path(path, base_dir=workspace.cwd)
    if target is None:
        return False
    for root in roots:
        canonical_root = canonicalize_path(root, base_dir=workspace.cwd)
        if canonical_root and is_path_within_root(target, canonical_root):
            return True
    return False
