"""Claude Code CLI engine.

Spawns `claude --output-format stream-json --input-format stream-json` and
speaks its stdin control protocol: an `initialize` request, the user turn,
and answers to `can_use_tool` permission requests coming back from the CLI.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import AsyncIterator

from unified_agent.errors import BackendProcessError
from unified_agent.runners.claude.config import CLAUDE_OWNED_FLAGS, ClaudeConfig, ClaudeOptions
from unified_agent.runners.pipeline import JSONLineStats, iter_json_lines, require_type
from unified_agent.runners.subprocess_transport import SubprocessTransport

log = logging.getLogger("claude")


class ClaudeCLI:
    """Runs Claude Code and streams its SDK messages as dicts."""

    def __init__(self, config: ClaudeConfig | None = None):
        self.config = config or ClaudeConfig()

    def build_command(self, options: ClaudeOptions) -> list[str]:
        """Build the claude command line."""
        cmd = [
            self.config.resolve_bin(),
            "--output-format", "stream-json",
            "--input-format", "stream-json",
            "--verbose",
        ]

        if options.system_prompt is not None:
            cmd.extend(["--system-prompt", options.system_prompt])
        if options.append_system_prompt:
            cmd.extend(["--append-system-prompt", options.append_system_prompt])
        if options.allowed_tools:
            if options.can_use_tool is not None:
                log.warning("Ignoring Claude allowed_tools: pre-approved tools would skip the access gate")
            else:
                cmd.extend(["--allowedTools", ",".join(options.allowed_tools)])
        if options.disallowed_tools:
            cmd.extend(["--disallowedTools", ",".join(options.disallowed_tools)])
        if options.max_turns:
            cmd.extend(["--max-turns", str(options.max_turns)])
        if options.model:
            cmd.extend(["--model", options.model])
        if options.can_use_tool is not None:
            cmd.extend(["--permission-prompt-tool", "stdio"])
        if options.permission_mode:
            cmd.extend(["--permission-mode", options.permission_mode])
        if options.allow_dangerously_skip_permissions:
            cmd.append("--allow-dangerously-skip-permissions")
        if options.resume:
            cmd.extend(["--resume", options.resume])
        if options.settings is not None:
            settings = options.settings
            cmd.extend(["--settings", settings if isinstance(settings, str) else json.dumps(settings)])
        for directory in options.additional_directories:
            cmd.extend(["--add-dir", directory])
        if options.include_partial_messages:
            cmd.append("--include-partial-messages")
        if options.setting_sources is not None:
            cmd.extend(["--setting-sources", ",".join(options.setting_sources)])
        if options.output_schema is not None:
            cmd.extend(["--json-schema", json.dumps(options.output_schema)])
        for flag, value in (options.extra_args or {}).items():
            name = flag.lstrip("-")
            if name in CLAUDE_OWNED_FLAGS:
                log.warning("Ignoring Claude flag --%s: it is controlled by the unified session config", name)
                continue
            cmd.append(f"--{name}")
            if value is not None:
                cmd.append(value)
        return cmd

    def build_env(self, options: ClaudeOptions) -> dict[str, str]:
        env = self.config.resolve_env()
        for key, value in (options.env or {}).items():
            if value is None:
                env.pop(key, None)
            else:
                env[key] = value
        if options.max_thinking_tokens is not None:
            env["MAX_THINKING_TOKENS"] = str(options.max_thinking_tokens)
        return env

    async def _answer_control_request(
        self,
        transport: SubprocessTransport,
        msg: dict,
        options: ClaudeOptions,
    ) -> None:
        request = msg.get("request")
        request = request if isinstance(request, dict) else {}
        request_id = msg.get("request_id")
        subtype = request.get("subtype")

        if subtype == "can_use_tool" and options.can_use_tool is not None:
            blocked_path = request.get("blocked_path")
            decision = options.can_use_tool(
                str(request.get("tool_name") or ""),
                request.get("input"),
                blocked_path if isinstance(blocked_path, str) else None,
            )
            response = {"subtype": "success", "request_id": request_id, "response": decision.to_dict()}
        else:
            log.warning("Unsupported Claude control request: %s", subtype)
            response = {
                "subtype": "error",
                "request_id": request_id,
                "error": f"Unsupported control request: {subtype}",
            }
        await transport.send({"type": "control_response", "response": response})

    async def query(self, prompt: str, options: ClaudeOptions) -> AsyncIterator[dict]:
        cmd = self.build_command(options)
        log.info(f"Claude: {prompt[:50]}...")
        log.debug(f"Claude command: {cmd}")

        transport = SubprocessTransport()
        token = options.cancel_token
        unlink = None
        try:
            stdout = await transport.start(
                cmd,
                cwd=options.cwd,
                stdout_limit=self.config.stdout_limit,
                env=self.build_env(options),
            )
            if token is not None:
                unlink = token.add_listener(lambda _reason: transport.cancel())

            await transport.send(
                {
                    "type": "control_request",
                    "request_id": f"req_{uuid.uuid4().hex[:12]}",
                    "request": {"subtype": "initialize", "hooks": None},
                }
            )
            await transport.send(
                {
                    "type": "user",
                    "message": {"role": "user", "content": prompt},
                    "parent_tool_use_id": None,
                    "session_id": options.resume or "default",
                }
            )

            stats = JSONLineStats()
            async for msg in iter_json_lines(stdout, stats):
                kind = require_type("Claude", msg)
                if kind == "control_request":
                    await self._answer_control_request(transport, msg, options)
                    continue
                if kind in ("control_response", "control_cancel_request"):
                    continue
                yield msg
                if kind == "result":
                    break

            transport.close_stdin()
            returncode = await transport.wait()
            cancelled = token is not None and token.aborted
            if not cancelled and not stats.emitted_any:
                raise BackendProcessError(
                    "Claude",
                    returncode=returncode,
                    output_preview="\n".join(stats.non_json_lines),
                )
        finally:
            if unlink is not None:
                unlink()
            await transport.shutdown()
