"""Per-turn token accounting.

Some backends report lifetime-cumulative counters with every turn; callers
always see per-turn deltas.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenCounters:
    input_tokens: int = 0
    cached_input_tokens: int = 0
    output_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: object) -> TokenCounters | None:
        """Decode a carried-forward snapshot; anything malformed yields None."""
        if not isinstance(data, dict):
            return None
        values: dict[str, int] = {}
        for name in ("input_tokens", "cached_input_tokens", "output_tokens"):
            v = data.get(name)
            if isinstance(v, bool) or not isinstance(v, int) or v < 0:
                return None
            values[name] = v
        return cls(**values)


@dataclass(frozen=True)
class UsageDelta:
    counters: TokenCounters
    reset: bool = False


def compute_usage_delta(current: TokenCounters, previous: TokenCounters | None) -> UsageDelta:
    if previous is None:
        return UsageDelta(current)

    pairs = (
        (current.input_tokens, previous.input_tokens),
        (current.cached_input_tokens, previous.cached_input_tokens),
        (current.output_tokens, previous.output_tokens),
    )
    if any(cur < prev for cur, prev in pairs):
        log.warning("Token counters went backwards (%s < %s); treating as a reset", current, previous)
        return UsageDelta(current, reset=True)

    return UsageDelta(
        TokenCounters(
            input_tokens=current.input_tokens - previous.input_tokens,
            cached_input_tokens=current.cached_input_tokens - previous.cached_input_tokens,
            output_tokens=current.output_tokens - previous.output_tokens,
        )
    )


class CumulativeUsageTracker:
    """Turns a sequence of cumulative counter reports into per-turn deltas."""

    def __init__(self, last: TokenCounters | None = None):
        self.last = last

    def advance(self, current: TokenCounters) -> UsageDelta:
        delta = compute_usage_delta(current, self.last)
        self.last = current
        return delta
