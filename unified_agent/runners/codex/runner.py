"""Codex backend: runtime and session."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import AsyncIterator

from unified_agent.core.api import ImagePart, RunCompleted, RunInput, RuntimeEvent, TextPart, normalize_turns
from unified_agent.core.config import RunConfig, SessionConfig, SessionDefaults, merge_provider_options
from unified_agent.core.runtime import BaseRuntime, BaseSession
from unified_agent.core.usage import CumulativeUsageTracker, TokenCounters
from unified_agent.engines import BACKEND_SPECS
from unified_agent.runners.base import RunState
from unified_agent.runners.codex.access import map_access_to_codex
from unified_agent.runners.codex.cli import CodexCLI
from unified_agent.runners.codex.config import (
    CODEX_OWNED_OPTIONS,
    CODEX_PASSTHROUGH_OPTIONS,
    CodexConfig,
    CodexOptions,
    map_reasoning_effort,
)
from unified_agent.runners.codex.processor import CodexEventProcessor
from unified_agent.runners.ports import CodexEngine


@dataclass(frozen=True)
class _Invocation:
    prompt: str
    options: CodexOptions


def codex_prompt(run_input: RunInput) -> tuple[str, list[str]]:
    """Flatten turns into prompt text plus the image paths to attach.

    Codex attaches images to the prompt as a whole, so each image is replaced
    by an `[Image #n]` placeholder where it appeared.
    """
    images: list[str] = []
    turn_texts: list[str] = []
    for turn in normalize_turns(run_input):
        blocks: list[str] = []
        for part in turn.parts:
            if isinstance(part, TextPart):
                blocks.append(part.text)
            elif isinstance(part, ImagePart):
                images.append(part.path)
                blocks.append(f"[Image #{len(images)}]")
            else:
                raise ValueError(f"Unsupported content part for Codex: {type(part).__name__}")
        turn_texts.append("\n\n".join(blocks))
    return "\n\n".join(turn_texts), images


class CodexSession(BaseSession):
    spec = BACKEND_SPECS["codex"]
    truncated_message = "stream ended without a terminal turn event."

    def __init__(
        self,
        *,
        engine: CodexEngine,
        config: SessionConfig,
        runtime_options: dict | None = None,
        session_id: str | None = None,
        base_metadata: dict | None = None,
        cumulative_usage: TokenCounters | None = None,
        event_buffer: int | None = None,
    ):
        super().__init__(
            config=config,
            session_id=session_id,
            base_metadata=base_metadata,
            event_buffer=event_buffer,
        )
        self._engine = engine
        self._usage = CumulativeUsageTracker(cumulative_usage)
        self._processor = CodexEventProcessor(self._usage)
        self._session_options = merge_provider_options(
            [runtime_options, config.provider],
            backend="Codex",
            allowed=CODEX_PASSTHROUGH_OPTIONS,
            owned=CODEX_OWNED_OPTIONS,
        )

    def build_options(self, config: RunConfig, state: RunState, images: list[str]) -> CodexOptions:
        passthrough = merge_provider_options(
            [self._session_options, config.provider],
            backend="Codex",
            allowed=CODEX_PASSTHROUGH_OPTIONS,
            owned=CODEX_OWNED_OPTIONS,
        )
        access = map_access_to_codex(self.access)
        return CodexOptions(
            **passthrough,
            thread_id=self.session_id,
            working_directory=self.workspace.cwd if self.workspace else None,
            additional_directories=self.workspace.additional_dirs if self.workspace else (),
            model=self.model,
            model_reasoning_effort=map_reasoning_effort(self.reasoning_effort),
            sandbox_mode=access.sandbox_mode,
            approval_policy=access.approval_policy,
            network_access_enabled=access.network_access_enabled,
            web_search_enabled=access.web_search_enabled,
            output_schema=state.output.schema,
            images=tuple(images),
            cancel_token=state.token,
        )

    def _prepare_run(self, run_input: RunInput, config: RunConfig, state: RunState) -> _Invocation:
        prompt, images = codex_prompt(run_input)
        return _Invocation(prompt, self.build_options(config, state, images))

    async def _run_events(self, state: RunState, invocation: _Invocation) -> AsyncIterator[RuntimeEvent]:
        async with contextlib.aclosing(self._engine.run_streamed(invocation.prompt, invocation.options)) as stream:
            async for event in stream:
                if event.get("type") == "thread.started":
                    thread_id = event.get("thread_id")
                    if isinstance(thread_id, str) and thread_id:
                        self.session_id = thread_id

                for mapped in self._processor.parse_event(event, state):
                    yield mapped
                    if isinstance(mapped, RunCompleted):
                        return

    def _cumulative_usage(self) -> TokenCounters | None:
        return self._usage.last


class CodexRuntime(BaseRuntime):
    spec = BACKEND_SPECS["codex"]

    def __init__(
        self,
        *,
        config: CodexConfig | None = None,
        defaults: SessionDefaults | None = None,
        engine: CodexEngine | None = None,
        event_buffer: int | None = None,
    ):
        self.config = config or CodexConfig()
        super().__init__(defaults=defaults, home=self.config.home, event_buffer=event_buffer)
        self.engine = engine or CodexCLI(self.config)

    def _create_session(
        self,
        config: SessionConfig,
        *,
        session_id: str | None,
        metadata: dict | None,
        cumulative_usage: TokenCounters | None,
    ) -> CodexSession:
        return CodexSession(
            engine=self.engine,
            config=config,
            runtime_options=dict(self.defaults.provider),
            session_id=session_id,
            base_metadata=metadata,
            cumulative_usage=cumulative_usage,
            event_buffer=self._event_buffer,
        )
