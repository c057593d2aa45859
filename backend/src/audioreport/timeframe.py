"""Parse report timeframes given as relative phrases or epoch pairs."""

from __future__ import annotations

import re
import time
from typing import Optional, Sequence, Union

from audioreport.models import TimeRange

TimeframeInput = Union[str, Sequence[Union[int, float, str]], None]

_UNIT_SECONDS = {
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
}

_RELATIVE_PATTERN = re.compile(
    r"^(?:last|past|previous)\s+(?:(\d+)\s+)?(minute|hour|day|week|month)s?$"
)


def parse_timeframe(value: TimeframeInput, now: Optional[float] = None) -> Optional[TimeRange]:
    """
    Resolve a timeframe into a TimeRange.

    Args:
        value: None, "last 7 days"-style phrase, "today", "yesterday",
            or a [start, end] pair of epoch seconds
        now: Reference time in epoch seconds (defaults to the current time)

    Returns:
        TimeRange, or None when no timeframe was given
    """
    if value is None:
        return None
    reference = int(now if now is not None else time.time())

    if isinstance(value, str):
        return _parse_phrase(value, reference)

    if len(value) != 2:
        raise ValueError(f"Expected a [start, end] pair, got {len(value)} values.")
    try:
        start, end = (int(float(item)) for item in value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid epoch timeframe: {list(value)!r}") from exc
    return TimeRange(start=start, end=end)


def _parse_phrase(phrase: str, reference: int) -> Optional[TimeRange]:
    normalized = " ".join(phrase.strip().lower().split())
    if not normalized:
        return None

    if normalized == "today":
        day_start = reference - (reference % 86400)
        if day_start == reference:
            day_start -= 86400
        return TimeRange(start=day_start, end=reference)
    if normalized == "yesterday":
        day_start = reference - (reference % 86400)
        return TimeRange(start=day_start - 86400, end=day_start)

    match = _RELATIVE_PATTERN.match(normalized)
    if not match:
        raise ValueError(f"Unrecognized timeframe: '{phrase}'")
    amount = int(match.group(1) or 1)
    if amount <= 0:
        raise ValueError(f"Timeframe amount must be positive: '{phrase}'")
    seconds = amount * _UNIT_SECONDS[match.group(2)]
    return TimeRange(start=reference - seconds, end=reference)
