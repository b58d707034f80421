"""Workspace bootstrap: agent instruction files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

AGENTS_FILE = "AGENTS.md"
CLAUDE_FILE = "CLAUDE.md"
# Claude Code reads CLAUDE.md; point it at the shared instructions.
CLAUDE_INSTRUCTIONS_POINTER = "@AGENTS.md"


def _write(path: Path, contents: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")


def setup_workspace(
    cwd: str | os.PathLike[str],
    instructions: str,
    additional_files: Mapping[str, str] | None = None,
) -> None:
    """Write AGENTS.md, a CLAUDE.md pointing at it, and any extra files.

    Extra files are relative to `cwd`; entries that resolve to either
    instruction file are ignored.
    """
    root = Path(os.path.abspath(cwd))
    agents_path = root / AGENTS_FILE
    claude_path = root / CLAUDE_FILE

    _write(agents_path, instructions)
    _write(claude_path, f"{CLAUDE_INSTRUCTIONS_POINTER}\n")

    for relative_path, contents in (additional_files or {}).items():
        target = Path(os.path.abspath(root / relative_path))
        if target in (agents_path, claude_path):
            continue
        _write(target, contents)
