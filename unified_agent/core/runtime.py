"""Run lifecycle controller.

`BaseSession` is the single place that owns:
- the one-active-run invariant (idle -> running -> idle)
- cancellation (one token per run, mirroring an optional caller token)
- the run's result future, resolved exactly once
- the canonical event stream, including the synthesized terminal event when a
  backend stream ends early or the adapter fails

Backend adapters subclass it and only translate native events.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from pathlib import Path
from typing import AsyncIterator, Callable

from unified_agent.core.api import (
    ErrorEvent,
    RunCompleted,
    RunInput,
    RunStarted,
    RuntimeCapabilities,
    RuntimeEvent,
    SessionHandle,
    SessionStatus,
)
from unified_agent.core.cancellation import CancellationToken
from unified_agent.core.config import (
    AccessConfig,
    RunConfig,
    SessionConfig,
    SessionDefaults,
    merge_session_config,
    normalize_access,
    resolve_reasoning_effort,
)
from unified_agent.core.snapshot import (
    ConfigSnapshot,
    decode_snapshot,
    merge_handle_with_defaults,
    merge_metadata,
)
from unified_agent.core.stream import EventStream, resolve_event_buffer
from unified_agent.core.structured_output import OutputSchema
from unified_agent.core.usage import TokenCounters
from unified_agent.engines import BackendSpec, normalize_backend
from unified_agent.errors import SessionBusyError, UnifiedAgentError
from unified_agent.runners.base import RunState, format_failure

log = logging.getLogger(__name__)


class RunHandle:
    """Caller-facing view of one run.

    Iterate it (or `events`) for canonical events, or just await `result`.
    """

    def __init__(
        self,
        run_id: str,
        events: EventStream,
        result: asyncio.Future[RunCompleted],
        token: CancellationToken,
    ):
        self.run_id = run_id
        self.events = events
        self.result = result
        self._token = token

    async def cancel(self, reason: object = None) -> None:
        self._token.abort(reason if reason is not None else "cancelled")

    async def wait(self) -> RunCompleted:
        return await self.result

    def __aiter__(self) -> AsyncIterator[RuntimeEvent]:
        return self.events.__aiter__()


class BaseSession:
    spec: BackendSpec
    truncated_message = "stream ended without completion."

    def __init__(
        self,
        *,
        config: SessionConfig,
        session_id: str | None = None,
        base_metadata: dict | None = None,
        event_buffer: int | None = None,
    ):
        self.config = config
        self.session_id = session_id
        self.workspace = config.workspace
        self.model = config.model
        self.reasoning_effort = resolve_reasoning_effort(config.reasoning_effort)
        self.access = normalize_access(config.access)

        self._base_metadata = dict(base_metadata or {})
        self._event_buffer = resolve_event_buffer(event_buffer)
        self._active_run_id: str | None = None
        self._tokens: dict[str, CancellationToken] = {}
        self._task: asyncio.Task | None = None
        self._disposed = False

    @property
    def provider(self) -> str:
        return self.spec.name

    # -----------------
    # Subclass hooks
    # -----------------

    def _prepare_run(self, run_input: RunInput, config: RunConfig, state: RunState) -> object:
        """Validate input/config and build the backend invocation.

        Runs synchronously inside `run()`, so errors raised here reach the
        caller before the session changes state.
        """
        raise NotImplementedError

    def _run_events(self, state: RunState, invocation: object) -> AsyncIterator[RuntimeEvent]:
        """Yield canonical events for one run, ending with `RunCompleted`."""
        raise NotImplementedError

    def _failure_message(self, error: BaseException) -> str:
        return format_failure(f"{self.spec.label} run failed", error)

    def _cumulative_usage(self) -> TokenCounters | None:
        return None

    # -----------------
    # Session API
    # -----------------

    async def capabilities(self) -> RuntimeCapabilities:
        return self.spec.capabilities

    async def status(self) -> SessionStatus:
        if self._active_run_id:
            return SessionStatus(state="running", active_run_id=self._active_run_id)
        return SessionStatus(state="idle")

    async def run(self, input: RunInput, config: RunConfig | None = None) -> RunHandle:
        if self._active_run_id is not None:
            raise SessionBusyError(self._active_run_id)
        if self._disposed:
            raise UnifiedAgentError(f"{self.spec.label} session is disposed")

        config = config or RunConfig()
        run_id = str(uuid.uuid4())
        token = CancellationToken()
        state = RunState(run_id=run_id, token=token, output=OutputSchema.prepare(config.output_schema))
        invocation = self._prepare_run(input, config, state)

        unlink: Callable[[], None] | None = None
        if config.cancel_token is not None:
            unlink = config.cancel_token.add_listener(token.abort)

        stream = EventStream(self._event_buffer, run_id=run_id)
        result: asyncio.Future[RunCompleted] = asyncio.get_running_loop().create_future()

        self._active_run_id = run_id
        self._tokens[run_id] = token
        self._task = asyncio.create_task(
            self._produce(state, invocation, stream, result, unlink),
            name=f"{self.provider}-run-{run_id}",
        )
        return RunHandle(run_id, stream, result, token)

    async def cancel(self, run_id: str | None = None) -> None:
        if run_id is not None:
            token = self._tokens.get(run_id)
            if token:
                token.abort("cancelled")
            return
        for token in list(self._tokens.values()):
            token.abort("cancelled")

    async def snapshot(self) -> SessionHandle:
        snapshot = ConfigSnapshot(
            workspace=self.workspace,
            access=AccessConfig(
                auto=self.access.auto,
                network=self.access.network,
                web_search=self.access.web_search,
            ),
            model=self.model,
            reasoning_effort=self.reasoning_effort,
            cumulative_usage=self._cumulative_usage(),
        )
        return SessionHandle(
            provider=self.provider,
            session_id=self.session_id,
            metadata=merge_metadata(self._base_metadata, snapshot),
        )

    async def dispose(self) -> None:
        self._disposed = True
        await self.cancel()
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task})

    # -----------------
    # Producer
    # -----------------

    async def _produce(
        self,
        state: RunState,
        invocation: object,
        stream: EventStream,
        result: asyncio.Future[RunCompleted],
        unlink: Callable[[], None] | None,
    ) -> None:
        log.info("%s run %s started", self.spec.label, state.run_id)
        terminal: RunCompleted | None = None
        try:
            stream.push(RunStarted(provider=self.provider, session_id=self.session_id, run_id=state.run_id))
            async with contextlib.aclosing(self._run_events(state, invocation)) as events:
                async for event in events:
                    if isinstance(event, RunCompleted):
                        terminal = event
                        break
                    stream.push(event, force=isinstance(event, ErrorEvent))
                    if state.token.aborted:
                        break
            if terminal is None:
                terminal = self._truncated(state, stream)
        except asyncio.CancelledError:
            state.token.abort("task cancelled")
            terminal = RunCompleted(status="cancelled", final_text=state.final_text, run_id=state.run_id)
            raise
        except Exception as exc:
            terminal = self._failed(state, stream, exc)
        finally:
            if terminal is None:
                terminal = RunCompleted(status="error", final_text=state.final_text, run_id=state.run_id)
            self._settle(state, stream, result, terminal, unlink)

    def _truncated(self, state: RunState, stream: EventStream) -> RunCompleted:
        cancelled = state.token.aborted
        if not cancelled:
            log.warning("%s run %s ended without a terminal event", self.spec.label, state.run_id)
            stream.push(
                ErrorEvent(f"{self.spec.label} {self.truncated_message}", run_id=state.run_id),
                force=True,
            )
        return RunCompleted(
            status="cancelled" if cancelled else "error",
            final_text=state.final_text,
            structured_output=state.output.extract(state.final_text),
            run_id=state.run_id,
        )

    def _failed(self, state: RunState, stream: EventStream, error: Exception) -> RunCompleted:
        cancelled = state.token.aborted
        if cancelled:
            log.info("%s run %s stopped after cancellation: %s", self.spec.label, state.run_id, error)
        else:
            log.exception("%s runner error", self.spec.label)
            stream.push(
                ErrorEvent(self._failure_message(error), run_id=state.run_id, raw=error),
                force=True,
            )
        return RunCompleted(
            status="cancelled" if cancelled else "error",
            final_text=state.final_text,
            run_id=state.run_id,
            raw=error,
        )

    def _settle(
        self,
        state: RunState,
        stream: EventStream,
        result: asyncio.Future[RunCompleted],
        terminal: RunCompleted,
        unlink: Callable[[], None] | None,
    ) -> None:
        if unlink is not None:
            unlink()
        self._tokens.pop(state.run_id, None)
        if self._active_run_id == state.run_id:
            self._active_run_id = None
        stream.finish(terminal)
        if not result.done():
            result.set_result(terminal)
        if stream.dropped:
            log.warning("%s run %s dropped %d events", self.spec.label, state.run_id, stream.dropped)
        log.info("%s run %s finished: %s", self.spec.label, state.run_id, terminal.status)


class BaseRuntime:
    """Factory for sessions of one backend.

    Applies the runtime-wide `SessionDefaults` to every opened or resumed
    session and creates the backend home directory once, on first use.
    """

    spec: BackendSpec

    def __init__(
        self,
        *,
        defaults: SessionDefaults | None = None,
        home: str | None = None,
        event_buffer: int | None = None,
    ):
        self.defaults = defaults or SessionDefaults()
        self.home = home
        self._event_buffer = event_buffer
        self._home_ready = False

    @property
    def provider(self) -> str:
        return self.spec.name

    def _create_session(
        self,
        config: SessionConfig,
        *,
        session_id: str | None,
        metadata: dict | None,
        cumulative_usage: TokenCounters | None,
    ) -> BaseSession:
        raise NotImplementedError

    def _prepare_home(self) -> None:
        if self._home_ready or not self.home:
            return
        Path(self.home).expanduser().mkdir(parents=True, exist_ok=True)
        self._home_ready = True

    async def capabilities(self) -> RuntimeCapabilities:
        return self.spec.capabilities

    async def open_session(self, config: SessionConfig | None = None) -> BaseSession:
        self._prepare_home()
        merged = merge_session_config(config, self.defaults)
        return self._create_session(merged, session_id=None, metadata=None, cumulative_usage=None)

    async def resume_session(self, handle: SessionHandle) -> BaseSession:
        if normalize_backend(handle.provider) != self.provider:
            raise ValueError(
                f"Cannot resume a {handle.provider!r} session with the {self.provider} runtime"
            )
        self._prepare_home()
        merged_handle = merge_handle_with_defaults(handle, self.defaults)
        restored = decode_snapshot(merged_handle.metadata) or ConfigSnapshot()
        if not handle.session_id:
            log.info("Resuming %s handle without a native session id; starting a new session", self.provider)
        return self._create_session(
            restored.to_session_config(),
            session_id=handle.session_id,
            metadata=merged_handle.metadata,
            cumulative_usage=restored.cumulative_usage,
        )

    async def close(self) -> None:
        pass
