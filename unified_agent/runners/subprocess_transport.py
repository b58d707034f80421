"""Subprocess transport for CLI-backed engines."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Mapping

from unified_agent.runners.pipeline import encode_json_line

log = logging.getLogger(__name__)


def merge_env(overrides: Mapping[str, str | None] | None) -> dict[str, str]:
    """Process environment with overrides applied; a None value unsets."""
    env = dict(os.environ)
    for key, value in (overrides or {}).items():
        if value is None:
            env.pop(key, None)
        else:
            env[key] = value
    return env


class SubprocessTransport:
    def __init__(self):
        self.process: asyncio.subprocess.Process | None = None

    async def start(
        self,
        cmd: list[str],
        *,
        cwd: str | None,
        stdout_limit: int,
        env: Mapping[str, str] | None = None,
    ) -> asyncio.StreamReader:
        self.process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            limit=stdout_limit,
        )

        if self.process.stdout is None:
            raise RuntimeError("Subprocess stdout missing")

        return self.process.stdout

    async def write(self, data: bytes) -> None:
        proc = self.process
        if not proc or not proc.stdin or proc.stdin.is_closing():
            return
        try:
            proc.stdin.write(data)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # Process already exited; its output explains why.
            log.debug("stdin closed by process %s", proc.pid)

    async def send(self, msg: dict) -> None:
        await self.write(encode_json_line(msg))

    def close_stdin(self) -> None:
        proc = self.process
        if proc and proc.stdin and not proc.stdin.is_closing():
            proc.stdin.close()

    async def wait(self) -> int:
        if not self.process:
            return 0
        await self.process.wait()
        return int(self.process.returncode or 0)

    def cancel(self) -> None:
        proc = self.process
        if proc and proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Close stdin and give the process `timeout` seconds to exit on its own."""
        proc = self.process
        if not proc:
            return
        self.close_stdin()
        if proc.returncode is not None:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            await self.cancel_and_kill(timeout=timeout)

    async def cancel_and_kill(self, timeout: float = 5.0) -> None:
        """Terminate the process, wait, then force-kill if still alive."""
        proc = self.process
        if not proc:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except (asyncio.TimeoutError, ProcessLookupError):
            log.warning("Process %s did not exit after SIGTERM, sending SIGKILL", proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
