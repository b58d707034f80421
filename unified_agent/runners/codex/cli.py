"""Codex CLI engine.

Spawns `codex exec --json`, writes the prompt to stdin and streams the
thread events it prints, one JSON object per line.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from typing import AsyncIterator, Mapping

from unified_agent.errors import BackendProcessError
from unified_agent.runners.codex.config import CodexConfig, CodexOptions, is_owned_config_key
from unified_agent.runners.codex.processor import TERMINAL_EVENTS
from unified_agent.runners.pipeline import JSONLineStats, iter_json_lines, require_type
from unified_agent.runners.subprocess_transport import SubprocessTransport

log = logging.getLogger("codex")


def toml_value(value: object) -> str:
    """Render a value for a `--config key=value` override."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(toml_value(v) for v in value) + "]"
    if isinstance(value, Mapping):
        body = ", ".join(f"{k} = {toml_value(v)}" for k, v in value.items())
        return "{" + body + "}"
    raise ValueError(f"Unsupported Codex config value: {value!r}")


class CodexCLI:
    """Runs `codex exec` and streams its thread events as dicts."""

    def __init__(self, config: CodexConfig | None = None):
        self.config = config or CodexConfig()

    def build_command(self, options: CodexOptions, schema_path: str | None = None) -> list[str]:
        """Build the codex command line."""
        cmd = [self.config.resolve_bin(), "exec", "--json"]

        if options.model:
            cmd.extend(["--model", options.model])
        if options.sandbox_mode:
            cmd.extend(["--sandbox", options.sandbox_mode])
        if options.working_directory:
            cmd.extend(["--cd", options.working_directory])
        for directory in options.additional_directories:
            cmd.extend(["--add-dir", directory])
        if options.skip_git_repo_check:
            cmd.append("--skip-git-repo-check")
        if schema_path:
            cmd.extend(["--output-schema", schema_path])

        overrides: dict[str, object] = {}
        if options.model_reasoning_effort:
            overrides["model_reasoning_effort"] = options.model_reasoning_effort
        if options.network_access_enabled is not None:
            overrides["sandbox_workspace_write.network_access"] = options.network_access_enabled
        if options.web_search_enabled is not None:
            overrides["features.web_search_request"] = options.web_search_enabled
        if options.approval_policy:
            overrides["approval_policy"] = options.approval_policy
        for key, value in (options.config_overrides or {}).items():
            if is_owned_config_key(key):
                log.warning("Ignoring Codex config override %r: it is controlled by the unified session config", key)
                continue
            overrides[key] = value
        for key, value in overrides.items():
            cmd.extend(["--config", f"{key}={toml_value(value)}"])

        for image in options.images:
            cmd.extend(["--image", image])
        if options.thread_id:
            cmd.extend(["resume", options.thread_id])
        return cmd

    def build_env(self, options: CodexOptions) -> dict[str, str]:
        env = self.config.resolve_env()
        for key, value in (options.env or {}).items():
            if value is None:
                env.pop(key, None)
            else:
                env[key] = value
        return env

    async def run_streamed(self, prompt: str, options: CodexOptions) -> AsyncIterator[dict]:
        schema_dir = None
        schema_path = None
        if options.output_schema is not None:
            schema_dir = tempfile.mkdtemp(prefix="codex-output-schema-")
            schema_path = os.path.join(schema_dir, "schema.json")
            with open(schema_path, "w", encoding="utf-8") as f:
                json.dump(options.output_schema, f)

        cmd = self.build_command(options, schema_path)
        log.info(f"Codex: {prompt[:50]}...")
        log.debug(f"Codex command: {cmd}")

        transport = SubprocessTransport()
        token = options.cancel_token
        unlink = None
        try:
            stdout = await transport.start(
                cmd,
                cwd=options.working_directory,
                stdout_limit=self.config.stdout_limit,
                env=self.build_env(options),
            )
            if token is not None:
                unlink = token.add_listener(lambda _reason: transport.cancel())

            await transport.write(prompt.encode("utf-8"))
            transport.close_stdin()

            stats = JSONLineStats()
            async for event in iter_json_lines(stdout, stats):
                kind = require_type("Codex", event)
                yield event
                if kind in TERMINAL_EVENTS:
                    break

            returncode = await transport.wait()
            cancelled = token is not None and token.aborted
            if not cancelled and not stats.emitted_any:
                raise BackendProcessError(
                    "Codex",
                    returncode=returncode,
                    output_preview="\n".join(stats.non_json_lines),
                )
        finally:
            if unlink is not None:
                unlink()
            await transport.shutdown()
            if schema_dir is not None:
                shutil.rmtree(schema_dir, ignore_errors=True)
