"""Structured-output schema wrapping.

Backends only accept object-rooted JSON Schemas. Anything else is wrapped
under a `value` property and unwrapped again on the way out.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Mapping

WRAPPED_VALUE_KEY = "value"


def _is_object_schema(schema: Mapping[str, object]) -> bool:
    kind = schema.get("type")
    if kind == "object":
        return True
    return kind is None and isinstance(schema.get("properties"), dict)


@dataclass(frozen=True)
class OutputSchema:
    schema: dict | None = None
    wrapped: bool = False

    @classmethod
    def prepare(cls, schema: Mapping[str, object] | None) -> OutputSchema:
        if schema is None:
            return cls()
        if _is_object_schema(schema):
            return cls(dict(schema))
        return cls(
            {
                "type": "object",
                "properties": {WRAPPED_VALUE_KEY: dict(schema)},
                "required": [WRAPPED_VALUE_KEY],
                "additionalProperties": False,
            },
            wrapped=True,
        )

    @property
    def requested(self) -> bool:
        return self.schema is not None

    def unwrap(self, value: object) -> object | None:
        if not self.wrapped or value is None:
            return value
        if isinstance(value, dict):
            return value.get(WRAPPED_VALUE_KEY)
        return None

    def extract(self, final_text: str | None) -> object | None:
        """Parse the final assistant text; a parse failure yields None."""
        if not self.requested or not isinstance(final_text, str):
            return None
        parsed = try_parse_json(final_text)
        if parsed is None:
            return None
        return self.unwrap(parsed)


def try_parse_json(text: str) -> object | None:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None
