"""Public API types for the unified session runtime.

This module is the stable boundary between callers and the backend adapters:
canonical runtime events, usage records, session handles and turn input.
Code outside the adapters should depend on these types, not on adapter
internals.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import ClassVar, Literal, Sequence, Union

RunStatus = Literal["success", "error", "cancelled"]
ReasoningReliability = Literal["none", "best_effort", "reliable"]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Usage:
    input_tokens: int | None = None
    cache_read_tokens: int | None = None
    cache_write_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    cost_usd: float | None = None
    duration_ms: int | None = None
    raw: object | None = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


# -----------------
# Turn input
# -----------------


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    """A local image file attached to the turn."""

    path: str


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class TurnInput:
    parts: tuple[ContentPart, ...]

    @classmethod
    def text(cls, text: str) -> TurnInput:
        return cls((TextPart(text),))


RunInput = Union[str, TurnInput, Sequence[Union[str, TurnInput]]]


def as_text(turn: TurnInput) -> str:
    return "\n\n".join(p.text for p in turn.parts if isinstance(p, TextPart))


def normalize_turns(value: RunInput) -> list[TurnInput]:
    if isinstance(value, str):
        return [TurnInput.text(value)]
    if isinstance(value, TurnInput):
        return [value]
    turns: list[TurnInput] = []
    for item in value:
        if isinstance(item, str):
            turns.append(TurnInput.text(item))
        elif isinstance(item, TurnInput):
            turns.append(item)
        else:
            raise TypeError(f"Unsupported run input item: {type(item).__name__}")
    return turns


# -----------------
# Event boundary
# -----------------


@dataclass(frozen=True, kw_only=True)
class _EventBase:
    run_id: str | None
    at_ms: int = field(default_factory=now_ms)
    raw: object | None = field(default=None, repr=False, compare=False)


@dataclass(frozen=True, kw_only=True)
class RunStarted(_EventBase):
    type: ClassVar[str] = "run.started"
    provider: str
    session_id: str | None = None


@dataclass(frozen=True)
class AssistantDelta(_EventBase):
    type: ClassVar[str] = "assistant.delta"
    text_delta: str


@dataclass(frozen=True)
class AssistantMessage(_EventBase):
    type: ClassVar[str] = "assistant.message"
    text: str
    structured_output: object | None = None


@dataclass(frozen=True)
class ReasoningDelta(_EventBase):
    type: ClassVar[str] = "assistant.reasoning.delta"
    text_delta: str


@dataclass(frozen=True)
class ReasoningMessage(_EventBase):
    type: ClassVar[str] = "assistant.reasoning.message"
    text: str


@dataclass(frozen=True)
class ToolCall(_EventBase):
    type: ClassVar[str] = "tool.call"
    call_id: str
    tool_name: str
    input: object = None


@dataclass(frozen=True)
class ToolResult(_EventBase):
    type: ClassVar[str] = "tool.result"
    call_id: str
    output: object = None


@dataclass(frozen=True)
class ProviderEvent(_EventBase):
    """Backend-native event with no canonical mapping."""

    type: ClassVar[str] = "provider.event"
    provider: str
    payload: object = None


@dataclass(frozen=True)
class UsageEvent(_EventBase):
    type: ClassVar[str] = "usage"
    usage: Usage


@dataclass(frozen=True)
class ErrorEvent(_EventBase):
    type: ClassVar[str] = "error"
    message: str
    code: str | None = None


@dataclass(frozen=True)
class RunCompleted(_EventBase):
    type: ClassVar[str] = "run.completed"
    status: RunStatus
    final_text: str | None = None
    structured_output: object | None = None
    usage: Usage | None = None


RuntimeEvent = (
    RunStarted
    | AssistantDelta
    | AssistantMessage
    | ReasoningDelta
    | ReasoningMessage
    | ToolCall
    | ToolResult
    | ProviderEvent
    | UsageEvent
    | ErrorEvent
    | RunCompleted
)


# -----------------
# Session surface
# -----------------


@dataclass(frozen=True)
class RuntimeCapabilities:
    streaming_output: bool
    structured_output: bool
    reasoning_events: ReasoningReliability
    cancel: bool
    session_resume: bool
    tool_events: bool
    raw_events: bool


@dataclass(frozen=True)
class SessionStatus:
    state: Literal["idle", "running"]
    active_run_id: str | None = None


@dataclass
class SessionHandle:
    """Portable reference to a backend session.

    Callers own storage; `to_dict()` output is JSON-serializable as long as
    the metadata values are.
    """

    provider: str
    session_id: str | None = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        out: dict = {"provider": self.provider}
        if self.session_id:
            out["sessionId"] = self.session_id
        if self.metadata:
            out["metadata"] = dict(self.metadata)
        return out

    @classmethod
    def from_dict(cls, data: dict) -> SessionHandle:
        if not isinstance(data, dict):
            raise ValueError("Session handle must be a mapping")
        provider = data.get("provider")
        if not isinstance(provider, str) or not provider:
            raise ValueError("Session handle is missing a provider")
        session_id = data.get("sessionId")
        metadata = data.get("metadata")
        return cls(
            provider=provider,
            session_id=session_id if isinstance(session_id, str) and session_id else None,
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )
