from __future__ import annotations

import pytest

from tests.fakes import ScriptedEngine, claude_turn, codex_turn
from unified_agent.core.api import SessionHandle
from unified_agent.core.config import AccessConfig, SessionConfig, SessionDefaults, WorkspaceConfig
from unified_agent.core.snapshot import (
    METADATA_KEY,
    ConfigSnapshot,
    decode_snapshot,
    encode_snapshot,
    merge_handle_with_defaults,
)
from unified_agent.core.usage import TokenCounters
from unified_agent.runners.claude.runner import ClaudeRuntime
from unified_agent.runners.codex.runner import CodexRuntime


def test_encoded_layout():
    entry = encode_snapshot(
        ConfigSnapshot(
            workspace=WorkspaceConfig("/w", ("/x",)),
            access=AccessConfig(auto="low", network=False, web_search=True),
            model="m",
            reasoning_effort="high",
            cumulative_usage=TokenCounters(1, 2, 3),
        )
    )
    assert entry == {
        "version": 1,
        "sessionConfig": {
            "workspace": {"cwd": "/w", "additionalDirs": ["/x"]},
            "access": {"auto": "low", "network": False, "webSearch": True},
            "model": "m",
            "reasoningEffort": "high",
        },
        "cumulativeUsage": {"input_tokens": 1, "cached_input_tokens": 2, "output_tokens": 3},
    }


@pytest.mark.parametrize(
    "metadata",
    [
        None,
        {},
        {METADATA_KEY: "garbage"},
        {METADATA_KEY: {"version": 2, "sessionConfig": {}}},
        {METADATA_KEY: {"version": 1, "sessionConfig": []}},
    ],
)
def test_undecodable_metadata(metadata):
    assert decode_snapshot(metadata) is None


def test_malformed_fields_are_dropped_individually():
    snapshot = decode_snapshot(
        {
            METADATA_KEY: {
                "version": 1,
                "sessionConfig": {
                    "workspace": {"cwd": 42},
                    "access": {"auto": "ultra", "network": "yes", "webSearch": False},
                    "model": "  ",
                    "reasoningEffort": "high",
                },
                "cumulativeUsage": {"input_tokens": -1},
            }
        }
    )
    assert snapshot.workspace is None
    assert snapshot.access == AccessConfig(web_search=False)
    assert snapshot.model is None
    assert snapshot.reasoning_effort == "high"
    assert snapshot.cumulative_usage is None


def test_handle_dict_round_trip_keeps_session_id():
    handle = SessionHandle("codex", "t-1", {"mine": 1})
    restored = SessionHandle.from_dict(handle.to_dict())
    assert restored == handle

    with pytest.raises(ValueError):
        SessionHandle.from_dict({"sessionId": "x"})


def test_defaults_fill_missing_snapshot_fields():
    handle = SessionHandle(
        "claude",
        "s",
        {
            "mine": True,
            METADATA_KEY: {"version": 1, "sessionConfig": {"model": "kept", "access": {"network": False}}},
        },
    )
    defaults = SessionDefaults(
        workspace=WorkspaceConfig("/d"),
        access=AccessConfig(auto="low", network=True),
        model="default",
        reasoning_effort="low",
    )

    merged = merge_handle_with_defaults(handle, defaults)
    snapshot = decode_snapshot(merged.metadata)
    assert merged.metadata["mine"] is True
    assert snapshot.model == "kept"
    assert snapshot.workspace == WorkspaceConfig("/d")
    assert snapshot.reasoning_effort == "low"
    assert snapshot.access == AccessConfig(auto="low", network=False)


@pytest.mark.asyncio
async def test_snapshot_restores_effective_config(workspace):
    runtime = CodexRuntime(engine=ScriptedEngine(codex_turn(thread_id="t-42")))
    config = SessionConfig(
        workspace=workspace,
        model="gpt-5-codex",
        reasoning_effort="low",
        access=AccessConfig(auto="low", web_search=False),
    )
    session = await runtime.open_session(config)
    await (await session.run("hi")).result

    handle = await session.snapshot()
    assert handle.provider == "codex"
    assert handle.session_id == "t-42"

    engine = ScriptedEngine(codex_turn())
    resumed = await CodexRuntime(engine=engine).resume_session(SessionHandle.from_dict(handle.to_dict()))
    assert resumed.workspace == workspace
    assert resumed.model == "gpt-5-codex"
    assert resumed.reasoning_effort == "low"
    assert (resumed.access.auto, resumed.access.network, resumed.access.web_search) == ("low", True, False)

    await (await resumed.run("again")).result
    assert engine.last_options.thread_id == "t-42"
    assert engine.last_options.sandbox_mode == "read-only"


@pytest.mark.asyncio
async def test_snapshot_preserves_foreign_metadata():
    handle = SessionHandle("claude", "s-1", {"app": {"user": 7}})
    session = await ClaudeRuntime(engine=ScriptedEngine(claude_turn())).resume_session(handle)

    snapshot = await session.snapshot()
    assert snapshot.metadata["app"] == {"user": 7}
    assert METADATA_KEY in snapshot.metadata


@pytest.mark.asyncio
async def test_corrupted_metadata_falls_back_to_runtime_defaults():
    defaults = SessionDefaults(model="fallback", access=AccessConfig(auto="high"))
    runtime = ClaudeRuntime(engine=ScriptedEngine(claude_turn()), defaults=defaults)

    session = await runtime.resume_session(SessionHandle("claude", "s-1", {METADATA_KEY: {"version": "x"}}))
    assert session.model == "fallback"
    assert session.access.auto == "high"
    assert session.session_id == "s-1"


@pytest.mark.asyncio
async def test_handle_without_session_id_starts_fresh():
    engine = ScriptedEngine(claude_turn(session_id="new"))
    session = await ClaudeRuntime(engine=engine).resume_session(SessionHandle("claude"))

    await (await session.run("hi")).result
    assert engine.last_options.resume is None
    assert session.session_id == "new"


@pytest.mark.asyncio
async def test_resume_rejects_other_backend_handle():
    with pytest.raises(ValueError):
        await ClaudeRuntime(engine=ScriptedEngine()).resume_session(SessionHandle("codex", "t-1"))


@pytest.mark.asyncio
async def test_resume_accepts_backend_alias():
    session = await ClaudeRuntime(engine=ScriptedEngine()).resume_session(SessionHandle("claude-code", "s"))
    assert session.provider == "claude"
