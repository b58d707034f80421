from unified_agent.runners.codex.cli import CodexCLI
from unified_agent.runners.codex.config import CodexConfig, CodexOptions
from unified_agent.runners.codex.runner import CodexRuntime, CodexSession

__all__ = ["CodexCLI", "CodexConfig", "CodexOptions", "CodexRuntime", "CodexSession"]
