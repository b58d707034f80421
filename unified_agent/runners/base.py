"""Per-run state and normalization helpers shared by the backend adapters."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from unified_agent.core.api import ToolCall
from unified_agent.core.cancellation import CancellationToken
from unified_agent.core.structured_output import OutputSchema

FAILURE_DETAIL_MAX_LEN = 500


@dataclass
class RunState:
    """Accumulates state during one run.

    A fresh instance is created for every run, so delta caches and tool ids
    never leak from one turn into the next.
    """

    run_id: str
    token: CancellationToken
    output: OutputSchema = field(default_factory=OutputSchema)
    started_at: float = field(default_factory=time.monotonic)

    # Last full text seen per backend item id.
    agent_text: dict[str, str] = field(default_factory=dict)
    reasoning_text: dict[str, str] = field(default_factory=dict)

    # Tool-call ids already announced with a `tool.call` event.
    seen_tool_ids: set[str] = field(default_factory=set)
    # Tool-call ids whose `tool.result` was already emitted.
    tool_result_seen_ids: set[str] = field(default_factory=set)

    final_text: str | None = None

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


def compute_text_delta(previous: str, text: str) -> str:
    """Suffix appended since `previous`, or all of `text` if it diverged."""
    if text.startswith(previous):
        return text[len(previous):]
    if text and text != previous:
        return text
    return ""


def apply_text_update(cache: dict[str, str], item_id: str, text: str) -> str:
    previous = cache.get(item_id, "")
    cache[item_id] = text
    return compute_text_delta(previous, text)


def announce_tool_call(
    state: RunState,
    call_id: str,
    tool_name: str,
    tool_input: object,
    *,
    raw: object = None,
) -> list[ToolCall]:
    """Emit `tool.call` the first time an id is seen, nothing afterwards."""
    if call_id in state.seen_tool_ids:
        return []
    state.seen_tool_ids.add(call_id)
    return [ToolCall(call_id, tool_name, tool_input, run_id=state.run_id, raw=raw)]


def describe_error(error: object) -> str:
    message = error if isinstance(error, str) else getattr(error, "message", None)
    if not isinstance(message, str) or not message:
        message = str(error) if isinstance(error, BaseException) else repr(error)
    text = message.strip()
    if len(text) <= FAILURE_DETAIL_MAX_LEN:
        return text
    return text[:FAILURE_DETAIL_MAX_LEN] + "…"


def format_failure(prefix: str, error: object) -> str:
    detail = describe_error(error)
    if not detail:
        return f"{prefix}."
    return f"{prefix}: {detail}"
