"""Drive Claude Code and Codex through one session/run/event contract."""

from unified_agent.core.api import (
    AssistantDelta,
    AssistantMessage,
    ErrorEvent,
    ImagePart,
    ProviderEvent,
    ReasoningDelta,
    ReasoningMessage,
    RunCompleted,
    RunStarted,
    RuntimeCapabilities,
    RuntimeEvent,
    SessionHandle,
    SessionStatus,
    TextPart,
    ToolCall,
    ToolResult,
    TurnInput,
    Usage,
    UsageEvent,
)
from unified_agent.core.cancellation import CancellationToken
from unified_agent.core.config import (
    AccessConfig,
    RunConfig,
    SessionConfig,
    SessionDefaults,
    WorkspaceConfig,
)
from unified_agent.core.runtime import RunHandle
from unified_agent.errors import (
    BackendProcessError,
    BackendProtocolError,
    SessionBusyError,
    UnifiedAgentError,
)
from unified_agent.runners.registry import create_runtime
from unified_agent.workspace import setup_workspace

__all__ = [
    "AccessConfig",
    "AssistantDelta",
    "AssistantMessage",
    "BackendProcessError",
    "BackendProtocolError",
    "CancellationToken",
    "ErrorEvent",
    "ImagePart",
    "ProviderEvent",
    "ReasoningDelta",
    "ReasoningMessage",
    "RunCompleted",
    "RunConfig",
    "RunHandle",
    "RunStarted",
    "RuntimeCapabilities",
    "RuntimeEvent",
    "SessionBusyError",
    "SessionConfig",
    "SessionDefaults",
    "SessionHandle",
    "SessionStatus",
    "TextPart",
    "ToolCall",
    "ToolResult",
    "TurnInput",
    "UnifiedAgentError",
    "Usage",
    "UsageEvent",
    "WorkspaceConfig",
    "create_runtime",
    "setup_workspace",
]
