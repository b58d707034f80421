"""Backend-agnostic core: canonical types, config, lifecycle and accounting.

Nothing in this package knows how a particular backend is launched; the
adapters under `unified_agent.runners` plug into `BaseSession`/`BaseRuntime`.
"""

from unified_agent.core.cancellation import CancellationToken
from unified_agent.core.runtime import BaseRuntime, BaseSession, RunHandle

__all__ = ["BaseRuntime", "BaseSession", "CancellationToken", "RunHandle"]
