"""Shared JSON-lines reading for CLI-backed engines.

Both backend CLIs stream one JSON object per stdout line. Anything that does
not parse (banners, stderr merged into stdout) is kept for diagnostics so an
engine that produced no events can explain why.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import AsyncIterator

from unified_agent.errors import BackendProtocolError

MAX_NON_JSON_LINES = 50
PAYLOAD_PREVIEW_LEN = 200


@dataclass
class JSONLineStats:
    emitted_any: bool = False
    non_json_lines: list[str] = field(default_factory=list)

    def note_non_json(self, line: str) -> None:
        if len(self.non_json_lines) < MAX_NON_JSON_LINES:
            self.non_json_lines.append(line)


async def iter_json_lines(
    byte_stream: asyncio.StreamReader,
    stats: JSONLineStats,
) -> AsyncIterator[dict]:
    """Yield each JSON object line until EOF."""
    while True:
        raw = await byte_stream.readline()
        if not raw:
            break

        line = raw.decode(errors="replace").strip()
        if not line:
            continue

        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            stats.note_non_json(line)
            continue

        if not isinstance(event, dict):
            stats.note_non_json(line)
            continue

        stats.emitted_any = True
        yield event


def require_type(backend: str, event: dict) -> str:
    """The event's `type` tag; an untagged object is a protocol error."""
    kind = event.get("type")
    if not isinstance(kind, str) or not kind:
        raise BackendProtocolError(
            backend,
            "event without a type",
            payload_preview=json.dumps(event)[:PAYLOAD_PREVIEW_LEN],
        )
    return kind


def encode_json_line(msg: dict) -> bytes:
    return (json.dumps(msg, separators=(",", ":")) + "\n").encode()
