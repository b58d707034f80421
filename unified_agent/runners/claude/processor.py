"""Claude event processing.

Turns Claude Code SDK messages into canonical runtime events. Separated from
the session so the mapping can be exercised without a subprocess.
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
from unified_agent.runners.base import RunState, announce_tool_call, describe_error


def _int(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def extract_usage(result: dict) -> Usage:
    """Per-turn usage from a `result` message."""
    raw = result.get("usage")
    u = raw if isinstance(raw, dict) else {}
    input_tokens = _int(u.get("input_tokens"))
    cache_read = _int(u.get("cache_read_input_tokens"))
    cache_write = _int(u.get("cache_creation_input_tokens"))
    output_tokens = _int(u.get("output_tokens"))
    parts = (input_tokens, cache_read, cache_write, output_tokens)
    total = sum(parts) if all(p is not None for p in parts) else None  # type: ignore[misc]

    cost = result.get("total_cost_usd")
    return Usage(
        input_tokens=input_tokens,
        cache_read_tokens=cache_read,
        cache_write_tokens=cache_write,
        output_tokens=output_tokens,
        total_tokens=total,
        cost_usd=float(cost) if isinstance(cost, (int, float)) and not isinstance(cost, bool) else None,
        duration_ms=_int(result.get("duration_ms")),
        raw=raw,
    )


class ClaudeEventProcessor:
    provider = "claude"

    def _handle_stream_event(self, msg: dict, state: RunState) -> list[RuntimeEvent]:
        ev = msg.get("event")
        if not isinstance(ev, dict) or ev.get("type") != "content_block_delta":
            return []
        delta = ev.get("delta")
        if not isinstance(delta, dict):
            return []
        if delta.get("type") == "text_delta" and isinstance(delta.get("text"), str) and delta["text"]:
            return [AssistantDelta(delta["text"], run_id=state.run_id, raw=msg)]
        if delta.get("type") == "thinking_delta" and isinstance(delta.get("thinking"), str) and delta["thinking"]:
            return [ReasoningDelta(delta["thinking"], run_id=state.run_id, raw=msg)]
        return []

    def _handle_assistant(self, msg: dict, state: RunState) -> list[RuntimeEvent]:
        message = msg.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return []

        events: list[RuntimeEvent] = []
        texts: list[str] = []
        thoughts: list[str] = []
        for block in content:
            if not isinstance(block, dict):
                continue
            kind = block.get("type")
            if kind == "text" and isinstance(block.get("text"), str):
                texts.append(block["text"])
            elif kind == "thinking" and isinstance(block.get("thinking"), str):
                thoughts.append(block["thinking"])
            elif kind == "tool_use":
                call_id = block.get("id")
                name = block.get("name")
                if isinstance(call_id, str) and call_id and isinstance(name, str) and name:
                    events.extend(announce_tool_call(state, call_id, name, block.get("input"), raw=msg))

        if texts:
            text = "".join(texts)
            state.final_text = text
            events.append(AssistantMessage(text, run_id=state.run_id, raw=msg))
        if thoughts:
            reasoning = "".join(thoughts)
            events.append(ReasoningMessage(reasoning, run_id=state.run_id, raw=msg))
        return events

    def _handle_user(self, msg: dict, state: RunState) -> list[RuntimeEvent]:
        message = msg.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, list):
            return []

        events: list[RuntimeEvent] = []
        for block in content:
            if not isinstance(block, dict) or block.get("type") != "tool_result":
                continue
            call_id = block.get("tool_use_id")
            if not isinstance(call_id, str) or not call_id:
                continue
            if call_id in state.tool_result_seen_ids:
                continue
            state.tool_result_seen_ids.add(call_id)
            events.extend(announce_tool_call(state, call_id, "unknown", None, raw=msg))
            events.append(ToolResult(call_id, block, run_id=state.run_id, raw=msg))
        return events

    def _handle_result(self, msg: dict, state: RunState) -> list[RuntimeEvent]:
        usage = extract_usage(msg)
        succeeded = msg.get("subtype") == "success" and not msg.get("is_error")

        if succeeded:
            text = msg.get("result")
            if isinstance(text, str):
                state.final_text = text
            structured = state.output.unwrap(msg.get("structured_output"))
            if structured is None:
                structured = state.output.extract(state.final_text)
            return [
                UsageEvent(usage, run_id=state.run_id, raw=msg),
                RunCompleted(
                    "success",
                    final_text=state.final_text,
                    structured_output=structured,
                    usage=usage,
                    run_id=state.run_id,
                    raw=msg,
                ),
            ]

        errors = msg.get("errors")
        detail = "\n".join(e for e in errors if isinstance(e, str)) if isinstance(errors, list) else ""
        if not detail and isinstance(msg.get("result"), str):
            detail = msg["result"]
        if state.token.aborted:
            return [RunCompleted("cancelled", final_text=state.final_text, usage=usage, run_id=state.run_id, raw=msg)]
        message = f"Claude run failed: {describe_error(detail) if detail else msg.get('subtype') or 'error'}"
        return [
            ErrorEvent(message, code=str(msg.get("subtype") or "") or None, run_id=state.run_id, raw=msg),
            RunCompleted("error", final_text=detail or state.final_text, usage=usage, run_id=state.run_id, raw=msg),
        ]

    def parse_event(self, msg: dict, state: RunState) -> list[RuntimeEvent]:
        """Map one SDK message; unmapped messages pass through as `provider.event`."""
        kind = msg.get("type")
        events: list[RuntimeEvent] = []
        if kind == "stream_event":
            events = self._handle_stream_event(msg, state)
        elif kind == "assistant":
            events = self._handle_assistant(msg, state)
        elif kind == "user":
            events = self._handle_user(msg, state)
        elif kind == "result":
            return self._handle_result(msg, state)

        if not events:
            return [ProviderEvent(self.provider, msg, run_id=state.run_id, raw=msg)]
        return events
