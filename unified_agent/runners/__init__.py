"""CLI-backed runtimes for code agents.

Backend packages are imported lazily by `create_runtime`.
"""

from unified_agent.runners.ports import ClaudeEngine, CodexEngine
from unified_agent.runners.registry import create_runtime

__all__ = ["ClaudeEngine", "CodexEngine", "create_runtime"]
