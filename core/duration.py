"""Duration parsing helpers for configuration values."""

from __future__ import annotations

import re
from datetime import timedelta

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|[smhd])\s*$", re.IGNORECASE)
_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def parse_duration(value: str | int | float) -> timedelta:
    """Parse compact duration strings like '500ms', '2s', '5m', '7d'.

    Bare numbers are taken as seconds.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value < 0:
            raise ValueError(f"Invalid duration: {value!r}. Must not be negative.")
        return timedelta(seconds=value)

    match = _DURATION_RE.match(str(value or ""))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}. Expected '<number><ms|s|m|h|d>'.")

    amount = float(match.group(1))
    unit = match.group(2).lower()
    return timedelta(seconds=amount * _UNIT_SECONDS[unit])


def duration_seconds(value: str | int | float) -> float:
    """Shortcut for ``parse_duration(value).total_seconds()``."""
    return parse_duration(value).total_seconds()


def humanize(delta: timedelta) -> str:
    """Render a timedelta as e.g. '2h 05m' or '45s' for log lines."""
    total = int(max(delta.total_seconds(), 0))
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    if days:
        return f"{days}d {hours:02d}h"
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"
