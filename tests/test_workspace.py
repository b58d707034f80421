from __future__ import annotations

import pytest

from tests.fakes import ScriptedEngine
from unified_agent import create_runtime, setup_workspace
from unified_agent.runners.claude.runner import ClaudeRuntime
from unified_agent.runners.codex.runner import CodexRuntime


def test_setup_workspace_writes_instruction_files(tmp_path):
    setup_workspace(
        tmp_path,
        "Be terse.",
        {"docs/notes.md": "notes", "AGENTS.md": "ignored", "./CLAUDE.md": "ignored"},
    )

    assert (tmp_path / "AGENTS.md").read_text() == "Be terse."
    assert (tmp_path / "CLAUDE.md").read_text() == "@AGENTS.md\n"
    assert (tmp_path / "docs" / "notes.md").read_text() == "notes"


@pytest.mark.parametrize(
    "name, cls",
    [("claude", ClaudeRuntime), ("cc", ClaudeRuntime), ("codex", CodexRuntime), ("@openai/codex-sdk", CodexRuntime)],
)
def test_registry_resolves_aliases(name, cls):
    runtime = create_runtime(name, engine=ScriptedEngine())
    assert isinstance(runtime, cls)


def test_registry_rejects_unknown_backend():
    with pytest.raises(ValueError, match="Unknown backend: gemini"):
        create_runtime("gemini")


def test_codex_runtime_skips_git_check_by_default():
    runtime = create_runtime("codex", bin="/opt/codex", engine=ScriptedEngine())
    assert runtime.defaults.provider["skip_git_repo_check"] is True
    assert runtime.config.resolve_bin() == "/opt/codex"


@pytest.mark.asyncio
async def test_home_directory_created_on_first_session(tmp_path):
    home = tmp_path / "codex-home"
    runtime = create_runtime("codex", home=str(home), engine=ScriptedEngine())
    assert not home.exists()

    await runtime.open_session()
    assert home.is_dir()


@pytest.mark.asyncio
async def test_capabilities():
    caps = await create_runtime("claude", engine=ScriptedEngine()).capabilities()
    assert caps.streaming_output and caps.session_resume and caps.cancel
    assert caps.reasoning_events == "best_effort"
