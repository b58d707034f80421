from __future__ import annotations

import json

import pytest

from tests.fakes import ScriptedEngine, claude_turn, drain, types
from unified_agent.core.cancellation import CancellationToken
from unified_agent.core.config import AccessConfig, ResolvedAccess, RunConfig, SessionConfig, WorkspaceConfig
from unified_agent.core.structured_output import OutputSchema
from unified_agent.runners.base import RunState
from unified_agent.runners.claude.access import LOW_ACCESS_DENY_RULES, map_access_to_claude
from unified_agent.runners.claude.cli import ClaudeCLI
from unified_agent.runners.claude.config import ClaudeConfig, ClaudeOptions, max_thinking_tokens
from unified_agent.runners.claude.processor import ClaudeEventProcessor
from unified_agent.runners.claude.runner import ClaudeRuntime


def new_state(schema=None) -> RunState:
    return RunState(run_id="run-1", token=CancellationToken(), output=OutputSchema.prepare(schema))


def test_partial_stream_deltas():
    processor = ClaudeEventProcessor()
    state = new_state()

    def partial(delta):
        return {"type": "stream_event", "event": {"type": "content_block_delta", "delta": delta}}

    text = processor.parse_event(partial({"type": "text_delta", "text": "Hi"}), state)
    thinking = processor.parse_event(partial({"type": "thinking_delta", "thinking": "hmm"}), state)
    assert [(e.type, e.text_delta) for e in text + thinking] == [
        ("assistant.delta", "Hi"),
        ("assistant.reasoning.delta", "hmm"),
    ]


def test_assistant_message_with_tool_use_and_result():
    processor = ClaudeEventProcessor()
    state = new_state()
    assistant = {
        "type": "assistant",
        "message": {
            "content": [
                {"type": "thinking", "thinking": "plan"},
                {"type": "text", "text": "Listing files."},
                {"type": "tool_use", "id": "tu_1", "name": "Bash", "input": {"command": "ls"}},
            ]
        },
    }
    result = {
        "type": "user",
        "message": {"content": [{"type": "tool_result", "tool_use_id": "tu_1", "content": "a.txt"}]},
    }

    events = processor.parse_event(assistant, state)
    assert types(events) == ["tool.call", "assistant.message", "assistant.reasoning.message"]
    assert events[0].call_id == "tu_1"
    assert state.final_text == "Listing files."

    assert types(processor.parse_event(assistant, state)) == ["assistant.message", "assistant.reasoning.message"]
    assert types(processor.parse_event(result, state)) == ["tool.result"]
    assert types(processor.parse_event(result, state)) == ["provider.event"]


def test_tool_result_without_tool_use_synthesizes_call():
    processor = ClaudeEventProcessor()
    state = new_state()
    result = {
        "type": "user",
        "message": {"content": [{"type": "tool_result", "tool_use_id": "t1", "content": "ok"}]},
    }

    events = processor.parse_event(result, state)
    assert types(events) == ["tool.call", "tool.result"]
    assert events[0].call_id == "t1"
    assert events[0].tool_name == "unknown"
    assert events[1].call_id == "t1"


def test_success_result_carries_usage_and_prefers_structured_output():
    processor = ClaudeEventProcessor()
    state = new_state({"type": "array"})
    result = {
        "type": "result",
        "subtype": "success",
        "result": '{"value": ["from text"]}',
        "structured_output": {"value": ["native"]},
        "usage": {
            "input_tokens": 10,
            "cache_read_input_tokens": 2,
            "cache_creation_input_tokens": 3,
            "output_tokens": 5,
        },
        "total_cost_usd": 0.01,
        "duration_ms": 1200,
    }

    usage_event, completed = processor.parse_event(result, state)
    assert usage_event.type == "usage"
    assert completed.status == "success"
    assert completed.structured_output == ["native"]
    assert completed.usage.total_tokens == 20
    assert completed.usage.cost_usd == 0.01
    assert completed.usage.duration_ms == 1200


def test_error_result():
    processor = ClaudeEventProcessor()
    result = {"type": "result", "subtype": "error_max_turns", "is_error": True, "errors": ["too many turns"]}

    error, completed = processor.parse_event(result, new_state())
    assert error.message == "Claude run failed: too many turns"
    assert completed.status == "error"


def test_system_messages_pass_through():
    [event] = ClaudeEventProcessor().parse_event({"type": "system", "subtype": "init"}, new_state())
    assert event.type == "provider.event"
    assert event.provider == "claude"


@pytest.mark.asyncio
async def test_resume_uses_latest_session_id():
    engine = ScriptedEngine(
        [{"type": "system", "session_id": "s1"}] + claude_turn(session_id="s2"),
        claude_turn(session_id="s2"),
    )
    session = await ClaudeRuntime(engine=engine).open_session()

    await (await session.run("a")).result
    assert session.session_id == "s2"
    assert engine.last_options.resume is None

    await (await session.run("b")).result
    assert engine.last_options.resume == "s2"


@pytest.mark.asyncio
async def test_event_order_for_a_simple_turn():
    session = await ClaudeRuntime(engine=ScriptedEngine(claude_turn("hello"))).open_session()
    events = await drain(await session.run("hi"))
    assert types(events) == ["run.started", "provider.event", "assistant.message", "usage", "run.completed"]
    assert events[-1].final_text == "hello"


@pytest.mark.asyncio
async def test_low_access_options(workspace):
    engine = ScriptedEngine(claude_turn())
    session = await ClaudeRuntime(engine=engine).open_session(
        SessionConfig(workspace=workspace, reasoning_effort="high", access=AccessConfig(auto="low"))
    )
    await (await session.run("hi")).result

    options = engine.last_options
    assert options.permission_mode == "default"
    assert not options.allow_dangerously_skip_permissions
    assert {"AskUserQuestion", "Write", "Edit", "NotebookEdit", "KillShell"} <= set(options.disallowed_tools)
    assert options.max_thinking_tokens == 12_000
    assert options.cwd == workspace.cwd
    assert options.settings["sandbox"] == {"enabled": False}
    assert set(LOW_ACCESS_DENY_RULES) <= set(options.settings["permissions"]["deny"])
    assert options.can_use_tool("Write", {"file_path": "x"}).behavior == "deny"


@pytest.mark.asyncio
async def test_high_access_bypasses_permissions():
    engine = ScriptedEngine(claude_turn())
    session = await ClaudeRuntime(engine=engine).open_session(SessionConfig(access=AccessConfig(auto="high")))
    await (await session.run("hi")).result

    options = engine.last_options
    assert options.permission_mode == "bypassPermissions"
    assert options.allow_dangerously_skip_permissions
    assert options.can_use_tool is None


@pytest.mark.asyncio
async def test_medium_access_sandbox_and_extra_roots(tmp_path):
    extra = tmp_path / "shared"
    extra.mkdir()
    engine = ScriptedEngine(claude_turn())
    config = SessionConfig(
        workspace=WorkspaceConfig(str(tmp_path), (str(extra),)),
        access=AccessConfig(network=False),
    )
    session = await ClaudeRuntime(engine=engine).open_session(config)
    await (await session.run("hi")).result

    settings = engine.last_options.settings
    assert settings["sandbox"]["enabled"] is True
    assert settings["sandbox"]["network"]["allowedDomains"] == ["localhost", "127.0.0.1", "::1"]
    real_extra = str(extra.resolve())
    assert settings["permissions"]["allow"] == [f"Edit(//{real_extra.lstrip('/')}/**)"]


@pytest.mark.asyncio
async def test_structured_output_schema_is_wrapped_for_claude():
    engine = ScriptedEngine(claude_turn('{"value": 7}'))
    session = await ClaudeRuntime(engine=engine).open_session()

    result = await (await session.run("n", RunConfig(output_schema={"type": "integer"}))).result
    assert engine.last_options.output_schema["properties"]["value"] == {"type": "integer"}
    assert result.structured_output == 7


@pytest.mark.asyncio
async def test_owned_passthrough_keys_are_stripped():
    engine = ScriptedEngine(claude_turn())
    session = await ClaudeRuntime(engine=engine).open_session(
        SessionConfig(model="sonnet", provider={"model": "opus", "max_turns": 3})
    )
    await (await session.run("hi")).result

    assert engine.last_options.model == "sonnet"
    assert engine.last_options.max_turns == 3


@pytest.mark.asyncio
async def test_per_run_passthrough_layer():
    engine = ScriptedEngine(claude_turn())
    session = await ClaudeRuntime(engine=engine).open_session(SessionConfig(provider={"max_turns": 3}))
    await (await session.run("hi", RunConfig(provider={"max_turns": 9}))).result
    assert engine.last_options.max_turns == 9

    with pytest.raises(ValueError, match="Unknown Claude option: bogus"):
        await session.run("hi", RunConfig(provider={"bogus": 1}))


@pytest.mark.parametrize(
    "effort, budget",
    [("none", 0), ("low", 4000), ("medium", 8000), ("high", 12000), ("xhigh", 16000)],
)
def test_thinking_budgets(effort, budget):
    assert max_thinking_tokens(effort) == budget


# -----------------
# Tool gate
# -----------------


def gate(auto, workspace=None, **toggles):
    return map_access_to_claude(ResolvedAccess(auto=auto, **toggles), workspace).can_use_tool


@pytest.mark.parametrize(
    "command, allowed",
    [
        ("ls -la", True),
        ("git status", True),
        ("find . -name '*.py'", True),
        ("find . -delete", False),
        ("rm -rf build", False),
        ("echo hi > out.txt", False),
        ("curl https://example.com", False),
        ("python script.py", False),
        ("grep -rn foo src | head -n 5", True),
        ("git log --oneline | wc -l", True),
        ("ls && python3 evil.py", False),
        ("ls; npm install", False),
        ("cat README | sh", False),
        ("ls && bash -c 'echo hi'", False),
        ("git log; make clean", False),
        ("ls & make", False),
        ("ls\nmake", False),
        ("cat $(make secrets)", False),
        ("ls `make`", False),
    ],
)
def test_low_gate_only_allows_read_only_commands(command, allowed):
    decision = gate("low")("Bash", {"command": command})
    assert decision.allowed is allowed


def test_medium_gate_confines_writes_to_workspace(workspace, tmp_path):
    check = gate("medium", workspace)
    inside = f"{workspace.cwd}/src/new.py"
    outside = str(tmp_path / "elsewhere.txt")

    assert check("Write", {"file_path": inside}).allowed
    assert not check("Write", {"file_path": outside}).allowed
    assert not check("Edit", {"file_path": f"{workspace.cwd}/../escape.txt"}).allowed
    assert check("Read", {"file_path": outside}).allowed
    assert not check("Bash", {"command": "rm notes"}, outside).allowed
    assert check("Bash", {"command": "rm notes"}, inside).allowed


def test_medium_gate_checks_redirect_and_tee_targets(workspace, tmp_path):
    check = gate("medium", workspace)
    outside = tmp_path / "elsewhere.txt"

    assert not check("Bash", {"command": f"echo x > {outside}"}).allowed
    assert not check("Bash", {"command": f"make 2>> '{outside}'"}).allowed
    assert not check("Bash", {"command": f"ls | tee -a {outside}"}).allowed
    assert not check("Bash", {"command": "echo x > ../escape.txt"}).allowed
    assert check("Bash", {"command": "echo x > notes.txt"}).allowed
    assert check("Bash", {"command": f"make > {workspace.cwd}/build.log 2>&1"}).allowed
    assert check("Bash", {"command": "make 2> /dev/null"}).allowed


def test_medium_gate_network_toggles():
    check = gate("medium", network=False, web_search=False)
    assert not check("WebFetch", {"url": "https://example.com"}).allowed
    assert not check("WebSearch", {"query": "x"}).allowed
    assert not check("Bash", {"command": "git clone https://x/y"}).allowed
    assert not check("Bash", {"command": "ls", "dangerouslyDisableSandbox": True}).allowed
    assert check("Bash", {"command": "make test"}).allowed


def test_gate_denials_serialize_without_interrupting():
    denied = gate("low")("Bash", {})
    assert denied.to_dict() == {"behavior": "deny", "message": "Bash command is missing.", "interrupt": False}
    allowed = gate("medium")("Read", {"file_path": "/x"})
    assert allowed.to_dict() == {"behavior": "allow", "updatedInput": {"file_path": "/x"}}


# -----------------
# CLI
# -----------------


def test_cli_command_line():
    cli = ClaudeCLI(ClaudeConfig(claude_bin="/opt/claude"))
    options = ClaudeOptions(
        resume="s1",
        model="sonnet",
        permission_mode="default",
        disallowed_tools=("Write", "Edit"),
        can_use_tool=lambda *_: None,
        settings={"sandbox": {"enabled": False}},
        additional_directories=("/extra",),
        setting_sources=("user", "project"),
        output_schema={"type": "object"},
        extra_args={"debug": None},
    )

    cmd = cli.build_command(options)
    assert cmd[:6] == ["/opt/claude", "--output-format", "stream-json", "--input-format", "stream-json", "--verbose"]
    assert cmd[cmd.index("--resume") + 1] == "s1"
    assert cmd[cmd.index("--disallowedTools") + 1] == "Write,Edit"
    assert cmd[cmd.index("--permission-prompt-tool") + 1] == "stdio"
    assert json.loads(cmd[cmd.index("--settings") + 1]) == {"sandbox": {"enabled": False}}
    assert cmd[cmd.index("--add-dir") + 1] == "/extra"
    assert cmd[cmd.index("--setting-sources") + 1] == "user,project"
    assert "--include-partial-messages" in cmd
    assert cmd[-1] == "--debug"


def test_cli_extra_args_cannot_replace_owned_flags():
    cli = ClaudeCLI(ClaudeConfig(claude_bin="/opt/claude"))
    options = ClaudeOptions(
        model="sonnet",
        permission_mode="default",
        can_use_tool=lambda *_: None,
        allowed_tools=("Bash",),
        extra_args={
            "permission-mode": "bypassPermissions",
            "dangerously-skip-permissions": None,
            "--model": "other",
            "settings": "{}",
            "add-dir": "/",
            "allowedTools": "Bash",
            "debug": None,
        },
    )

    cmd = cli.build_command(options)
    assert cmd.count("--permission-mode") == 1
    assert cmd[cmd.index("--permission-mode") + 1] == "default"
    assert cmd.count("--model") == 1
    assert cmd[cmd.index("--model") + 1] == "sonnet"
    for flag in ("--dangerously-skip-permissions", "--settings", "--add-dir", "--allowedTools"):
        assert flag not in cmd
    assert cmd[-1] == "--debug"


def test_cli_allowed_tools_without_gate():
    cli = ClaudeCLI(ClaudeConfig(claude_bin="/opt/claude"))
    cmd = cli.build_command(ClaudeOptions(allowed_tools=("Read", "Grep")))
    assert cmd[cmd.index("--allowedTools") + 1] == "Read,Grep"


def test_cli_env(monkeypatch):
    monkeypatch.delenv("CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC", raising=False)
    monkeypatch.setenv("DROP_ME", "1")
    cli = ClaudeCLI(ClaudeConfig(home="/tmp/claude-home", env={"DROP_ME": None}))

    env = cli.build_env(ClaudeOptions(max_thinking_tokens=8000, env={"EXTRA": "yes"}))
    assert env["CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC"] == "1"
    assert env["CLAUDE_CONFIG_DIR"] == "/tmp/claude-home"
    assert env["MAX_THINKING_TOKENS"] == "8000"
    assert env["EXTRA"] == "yes"
    assert "DROP_ME" not in env
