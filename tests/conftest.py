from __future__ import annotations

import pytest

from unified_agent.core.config import WorkspaceConfig


@pytest.fixture
def workspace(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    return WorkspaceConfig(str(root))
