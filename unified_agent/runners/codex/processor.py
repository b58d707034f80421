"""Codex event processing.

Codex streams thread items that are re-sent in full on every update, so
assistant and reasoning text arrive as growing snapshots and are turned into
deltas here. Token counters on `turn.completed` are cumulative for the
thread; the tracker converts them to per-turn usage.
"""

from __future__ import annotations

from unified_agent.core.api import (
    AssistantDelta,
    AssistantMessage,
    ErrorEvent,
    ProviderEvent,
    ReasoningDelta,
    ReasoningMessage,
    RunCompleted,
    RuntimeEvent,
    ToolResult,
    Usage,
    UsageEvent,
)
from unified_agent.core.usage import CumulativeUsageTracker, TokenCounters
from unified_agent.runners.base import RunState, announce_tool_call, apply_text_update, describe_error

WORKSPACE_PATCH_TOOL = "WorkspacePatchApplied"

TERMINAL_EVENTS = frozenset({"turn.completed", "turn.failed", "error"})


def tool_call_info(item: dict) -> tuple[str, object] | None:
    kind = item.get("type")
    if kind == "command_execution":
        return "Bash", {"command": item.get("command")}
    if kind == "mcp_tool_call":
        return f"{item.get('server')}.{item.get('tool')}", item.get("arguments")
    if kind == "web_search":
        return "WebSearch", {"query": item.get("query")}
    return None


def tool_output(item: dict) -> object:
    kind = item.get("type")
    if kind == "command_execution":
        return {
            "command": item.get("command"),
            "aggregatedOutput": item.get("aggregated_output"),
            "exitCode": item.get("exit_code"),
            "status": item.get("status"),
        }
    if kind == "mcp_tool_call":
        result = item.get("result")
        return result if result is not None else item.get("error")
    return {"query": item.get("query")}


def _count(usage: dict, key: str) -> int:
    value = usage.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return 0
    return int(value)


class CodexEventProcessor:
    provider = "codex"

    def __init__(self, usage_tracker: CumulativeUsageTracker):
        self.usage_tracker = usage_tracker

    def _text_update(self, event: dict, item: dict, state: RunState) -> list[RuntimeEvent] | None:
        item_id = str(item.get("id") or "")
        text = item.get("text")
        text = text if isinstance(text, str) else ""
        if item.get("type") == "agent_message":
            delta = apply_text_update(state.agent_text, item_id, text)
            return [AssistantDelta(delta, run_id=state.run_id, raw=event)] if delta else []
        if item.get("type") == "reasoning":
            delta = apply_text_update(state.reasoning_text, item_id, text)
            return [ReasoningDelta(delta, run_id=state.run_id, raw=event)] if delta else []
        return None

    def _item_started(self, event: dict, item: dict, state: RunState) -> list[RuntimeEvent] | None:
        events = self._text_update(event, item, state)
        if events is not None:
            return events
        info = tool_call_info(item)
        if info is None:
            return None
        return announce_tool_call(state, str(item.get("id")), info[0], info[1], raw=event)

    def _item_completed(self, event: dict, item: dict, state: RunState) -> list[RuntimeEvent] | None:
        kind = item.get("type")
        item_id = str(item.get("id") or "")
        text = item.get("text") if isinstance(item.get("text"), str) else ""

        if kind == "agent_message":
            state.agent_text.pop(item_id, None)
            state.final_text = text
            return [AssistantMessage(text, run_id=state.run_id, raw=event)]

        if kind == "reasoning":
            state.reasoning_text.pop(item_id, None)
            return [ReasoningMessage(text, run_id=state.run_id, raw=event)]

        if kind == "file_change":
            changes = item.get("changes")
            events: list[RuntimeEvent] = list(
                announce_tool_call(state, item_id, WORKSPACE_PATCH_TOOL, {"changes": changes}, raw=event)
            )
            events.append(
                ToolResult(
                    item_id,
                    {"status": item.get("status"), "changes": changes},
                    run_id=state.run_id,
                    raw=event,
                )
            )
            if item.get("status") == "failed":
                events.append(ErrorEvent("Codex file change patch failed.", run_id=state.run_id, raw=event))
            return events

        info = tool_call_info(item)
        if info is None:
            return None
        events = list(announce_tool_call(state, item_id, info[0], info[1], raw=event))
        events.append(ToolResult(item_id, tool_output(item), run_id=state.run_id, raw=event))
        return events

    def _turn_completed(self, event: dict, state: RunState) -> list[RuntimeEvent]:
        raw_usage = event.get("usage")
        u = raw_usage if isinstance(raw_usage, dict) else {}
        delta = self.usage_tracker.advance(
            TokenCounters(
                input_tokens=_count(u, "input_tokens"),
                cached_input_tokens=_count(u, "cached_input_tokens"),
                output_tokens=_count(u, "output_tokens"),
            )
        )
        counters = delta.counters
        usage = Usage(
            input_tokens=counters.input_tokens,
            cache_read_tokens=counters.cached_input_tokens,
            cache_write_tokens=0,
            output_tokens=counters.output_tokens,
            total_tokens=counters.input_tokens + counters.output_tokens,
            duration_ms=state.duration_ms,
            raw=raw_usage,
        )
        return [
            UsageEvent(usage, run_id=state.run_id, raw=event),
            RunCompleted(
                "success",
                final_text=state.final_text,
                structured_output=state.output.extract(state.final_text),
                usage=usage,
                run_id=state.run_id,
                raw=event,
            ),
        ]

    def _turn_failed(self, event: dict, state: RunState) -> list[RuntimeEvent]:
        if state.token.aborted:
            return [RunCompleted("cancelled", final_text=state.final_text, run_id=state.run_id, raw=event)]

        error = event.get("error")
        if event.get("type") == "error":
            detail = event.get("message")
        else:
            detail = error.get("message") if isinstance(error, dict) else error
        message = f"Codex run failed: {describe_error(detail)}" if detail else "Codex run failed."
        return [
            ErrorEvent(message, run_id=state.run_id, raw=event),
            RunCompleted("error", final_text=state.final_text, run_id=state.run_id, raw=event),
        ]

    def parse_event(self, event: dict, state: RunState) -> list[RuntimeEvent]:
        """Map one thread event; unmapped events pass through as `provider.event`."""
        kind = event.get("type")
        item = event.get("item")
        mapped: list[RuntimeEvent] | None = None

        if isinstance(item, dict):
            if kind == "item.updated":
                mapped = self._text_update(event, item, state)
            elif kind == "item.started":
                mapped = self._item_started(event, item, state)
            elif kind == "item.completed":
                mapped = self._item_completed(event, item, state)
        elif kind == "turn.completed":
            mapped = self._turn_completed(event, state)
        elif kind in ("turn.failed", "error"):
            mapped = self._turn_failed(event, state)

        if mapped is None:
            return [ProviderEvent(self.provider, event, run_id=state.run_id, raw=event)]
        return mapped
