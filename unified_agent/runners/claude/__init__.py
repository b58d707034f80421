from unified_agent.runners.claude.cli import ClaudeCLI
from unified_agent.runners.claude.config import ClaudeConfig, ClaudeOptions
from unified_agent.runners.claude.runner import ClaudeRuntime, ClaudeSession

__all__ = ["ClaudeCLI", "ClaudeConfig", "ClaudeOptions", "ClaudeRuntime", "ClaudeSession"]
