from __future__ import annotations

import os

import pytest

from unified_agent.core.access import (
    best_effort_realpath,
    command_write_targets,
    is_mutating_command,
    is_networked_command,
    is_path_within_workspace,
    is_read_only_command,
    split_command_segments,
)
from unified_agent.core.config import WorkspaceConfig


@pytest.mark.parametrize(
    "command",
    ["rm -rf x", "echo a > b", "cat a | tee b", "sed -i s/a/b/ f", "git commit -m x", "mv a b", "python -c 'x'"],
)
def test_mutating_commands(command):
    assert is_mutating_command(command)
    assert not is_read_only_command(command)


@pytest.mark.parametrize("command", ["curl example.com", "wget x", "ssh host", "git pull", "git clone url"])
def test_networked_commands_are_never_read_only(command):
    assert is_networked_command(command)
    assert not is_read_only_command(command)


@pytest.mark.parametrize(
    "command",
    ["ls", "pwd", "cat README.md", "head -n 5 f", "rg TODO", "git log --oneline", "find src -type f"],
)
def test_read_only_commands(command):
    assert is_read_only_command(command)


def test_unknown_commands_are_not_read_only():
    assert not is_read_only_command("make build")
    assert not is_read_only_command("   ")


def test_command_segments_split_on_control_operators():
    assert split_command_segments("ls && make || true; cat f | sh & wc\npwd") == [
        "ls", "make", "true", "cat f", "sh", "wc", "pwd",
    ]


def test_chained_commands_need_every_segment_read_only():
    assert is_read_only_command("rg foo | head -n 3")
    assert not is_read_only_command("ls && npm install")
    assert not is_read_only_command("cat $(ls)")
    assert not is_read_only_command("ls `pwd`")


def test_write_targets_from_redirects_and_tee():
    assert command_write_targets("make > out.log 2>&1") == ["out.log"]
    assert command_write_targets("echo x >> '/etc/hosts'") == ["/etc/hosts"]
    assert command_write_targets("ls | tee -a a.txt b.txt") == ["a.txt", "b.txt"]
    assert command_write_targets("make 2>/dev/null") == []
    assert command_write_targets("ls -la") == []


def test_inside_and_not_yet_created_paths(workspace):
    assert is_path_within_workspace(workspace.cwd, workspace)
    assert is_path_within_workspace(os.path.join(workspace.cwd, "a", "b", "new.txt"), workspace)
    assert is_path_within_workspace("relative/file.txt", workspace)


def test_parent_traversal_escapes(workspace):
    assert not is_path_within_workspace(os.path.join(workspace.cwd, "..", "other.txt"), workspace)
    assert not is_path_within_workspace("../other.txt", workspace)


def test_sibling_with_shared_prefix_is_outside(tmp_path, workspace):
    sibling = tmp_path / "ws-other"
    sibling.mkdir()
    assert not is_path_within_workspace(str(sibling / "f.txt"), workspace)


def test_symlink_pointing_outside_escapes(tmp_path, workspace):
    outside = tmp_path / "outside"
    outside.mkdir()
    os.symlink(outside, os.path.join(workspace.cwd, "link"))

    assert not is_path_within_workspace(os.path.join(workspace.cwd, "link", "secret.txt"), workspace)


def test_additional_dirs_are_roots(tmp_path):
    extra = tmp_path / "extra"
    extra.mkdir()
    ws = WorkspaceConfig(str(tmp_path / "main"), (str(extra),))

    assert is_path_within_workspace(str(extra / "x.txt"), ws)
    assert not is_path_within_workspace(str(tmp_path / "x.txt"), ws)


def test_no_workspace_means_no_confinement():
    assert is_path_within_workspace("/etc/passwd", None)


def test_realpath_keeps_virtual_suffix(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    link = tmp_path / "alias"
    os.symlink(real, link)

    resolved = best_effort_realpath(str(link / "missing" / "file.txt"))
    assert resolved == os.path.join(os.path.realpath(real), "missing", "file.txt")
