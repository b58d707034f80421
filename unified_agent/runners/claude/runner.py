"""Claude backend: runtime and session."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import AsyncIterator

from unified_agent.core.api import ImagePart, RunInput, RunCompleted, RuntimeEvent, as_text, normalize_turns
from unified_agent.core.config import RunConfig, SessionConfig, SessionDefaults, merge_provider_options
from unified_agent.core.runtime import BaseRuntime, BaseSession
from unified_agent.core.usage import TokenCounters
from unified_agent.engines import BACKEND_SPECS
from unified_agent.runners.base import RunState, format_failure
from unified_agent.runners.claude.access import build_settings, map_access_to_claude
from unified_agent.runners.claude.cli import ClaudeCLI
from unified_agent.runners.claude.config import (
    CLAUDE_OWNED_OPTIONS,
    CLAUDE_PASSTHROUGH_OPTIONS,
    DEFAULT_SETTING_SOURCES,
    ClaudeConfig,
    ClaudeOptions,
    max_thinking_tokens,
)
from unified_agent.runners.claude.processor import ClaudeEventProcessor
from unified_agent.runners.ports import ClaudeEngine


@dataclass(frozen=True)
class _Invocation:
    prompt: str
    options: ClaudeOptions


def claude_prompt(run_input: RunInput) -> str:
    turns = normalize_turns(run_input)
    for turn in turns:
        for part in turn.parts:
            if isinstance(part, ImagePart):
                raise ValueError("Unsupported content part for Claude: local image")
    return "\n\n".join(as_text(t) for t in turns)


class ClaudeSession(BaseSession):
    spec = BACKEND_SPECS["claude"]
    truncated_message = "stream ended without a result."

    def __init__(
        self,
        *,
        engine: ClaudeEngine,
        config: SessionConfig,
        runtime_options: dict | None = None,
        session_id: str | None = None,
        base_metadata: dict | None = None,
        event_buffer: int | None = None,
    ):
        super().__init__(
            config=config,
            session_id=session_id,
            base_metadata=base_metadata,
            event_buffer=event_buffer,
        )
        self._engine = engine
        self._processor = ClaudeEventProcessor()
        self._session_options = merge_provider_options(
            [runtime_options, config.provider],
            backend="Claude",
            allowed=CLAUDE_PASSTHROUGH_OPTIONS,
            owned=CLAUDE_OWNED_OPTIONS,
        )

    def build_options(self, config: RunConfig, state: RunState) -> ClaudeOptions:
        passthrough = merge_provider_options(
            [self._session_options, config.provider],
            backend="Claude",
            allowed=CLAUDE_PASSTHROUGH_OPTIONS,
            owned=CLAUDE_OWNED_OPTIONS,
        )
        access = map_access_to_claude(self.access, self.workspace)
        settings = build_settings(passthrough.pop("settings", None), self.access, self.workspace, access.sandbox)
        if passthrough.get("setting_sources") is None:
            passthrough["setting_sources"] = DEFAULT_SETTING_SOURCES

        return ClaudeOptions(
            **passthrough,
            settings=settings,
            cwd=self.workspace.cwd if self.workspace else None,
            additional_directories=self.workspace.additional_dirs if self.workspace else (),
            # Claude can rotate session ids mid-session; always resume the latest.
            resume=self.session_id,
            cancel_token=state.token,
            model=self.model,
            max_thinking_tokens=max_thinking_tokens(self.reasoning_effort),
            permission_mode=access.permission_mode,
            allow_dangerously_skip_permissions=access.allow_dangerously_skip_permissions,
            disallowed_tools=access.disallowed_tools,
            can_use_tool=access.can_use_tool,
            output_schema=state.output.schema,
        )

    def _prepare_run(self, run_input: RunInput, config: RunConfig, state: RunState) -> _Invocation:
        return _Invocation(claude_prompt(run_input), self.build_options(config, state))

    async def _run_events(self, state: RunState, invocation: _Invocation) -> AsyncIterator[RuntimeEvent]:
        async with contextlib.aclosing(self._engine.query(invocation.prompt, invocation.options)) as messages:
            async for msg in messages:
                session_id = msg.get("session_id")
                if isinstance(session_id, str) and session_id:
                    self.session_id = session_id

                for event in self._processor.parse_event(msg, state):
                    yield event
                    if isinstance(event, RunCompleted):
                        return

    def _failure_message(self, error: BaseException) -> str:
        message = format_failure("Claude run failed", error)
        if self.workspace and self.workspace.cwd:
            message += f" (check workspace.cwd exists: {self.workspace.cwd})"
        return message


class ClaudeRuntime(BaseRuntime):
    spec = BACKEND_SPECS["claude"]

    def __init__(
        self,
        *,
        config: ClaudeConfig | None = None,
        defaults: SessionDefaults | None = None,
        engine: ClaudeEngine | None = None,
        event_buffer: int | None = None,
    ):
        self.config = config or ClaudeConfig()
        super().__init__(defaults=defaults, home=self.config.home, event_buffer=event_buffer)
        self.engine = engine or ClaudeCLI(self.config)

    def _create_session(
        self,
        config: SessionConfig,
        *,
        session_id: str | None,
        metadata: dict | None,
        cumulative_usage: TokenCounters | None,
    ) -> ClaudeSession:
        return ClaudeSession(
            engine=self.engine,
            config=config,
            runtime_options=dict(self.defaults.provider),
            session_id=session_id,
            base_metadata=metadata,
            event_buffer=self._event_buffer,
        )
