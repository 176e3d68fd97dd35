"""Minimal cron expression parser. No external dependencies.

Supports standard 5-field cron: minute hour day_of_month month day_of_week

Examples:
    "0 16 * * 1-5"    -> weekdays at 4pm
    "0 9 * * sun"     -> Sundays at 9am
    "*/5 * * * *"     -> every 5 minutes
    "0 9,17 * * *"    -> 9am and 5pm daily
    "0 8-18/2 * * *"  -> every two hours between 8am and 6pm

When both day_of_month and day_of_week are restricted, a day matches if
either of them does (classic Vixie cron behaviour).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

_MONTH_NAMES = {
    name: i + 1
    for i, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
    )
}
_DAY_NAMES = {
    name: i for i, name in enumerate(["sun", "mon", "tue", "wed", "thu", "fri", "sat"])
}

# (name, min, max, aliases)
_FIELDS = (
    ("minute", 0, 59, {}),
    ("hour", 0, 23, {}),
    ("day_of_month", 1, 31, {}),
    ("month", 1, 12, _MONTH_NAMES),
    ("day_of_week", 0, 7, _DAY_NAMES),
)

_MAX_STEPS = 100_000


@dataclass(frozen=True)
class CronSpec:
    """Expanded cron expression: the set of allowed values per field."""

    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    dom_restricted: bool
    dow_restricted: bool

    def day_matches(self, dt: datetime) -> bool:
        dom_ok = dt.day in self.days
        dow_ok = (dt.isoweekday() % 7) in self.weekdays  # 0=Sun, 6=Sat
        if self.dom_restricted and self.dow_restricted:
            return dom_ok or dow_ok
        return dom_ok and dow_ok

    def matches(self, dt: datetime) -> bool:
        return (
            dt.minute in self.minutes
            and dt.hour in self.hours
            and dt.month in self.months
            and self.day_matches(dt)
        )


def parse_cron(expression: str) -> CronSpec:
    """Expand a cron expression; raises ValueError on bad syntax."""
    parts = expression.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression (need 5 fields): {expression!r}")

    values = [
        _expand_field(part, min_val, max_val, aliases)
        for part, (_, min_val, max_val, aliases) in zip(parts, _FIELDS)
    ]
    weekdays = frozenset(0 if v == 7 else v for v in values[4])

    return CronSpec(
        expression=" ".join(parts),
        minutes=values[0],
        hours=values[1],
        days=values[2],
        months=values[3],
        weekdays=weekdays,
        dom_restricted=parts[2] != "*",
        dow_restricted=parts[4] != "*",
    )


def is_valid_field(field: str, position: int) -> bool:
    """Check one field of a cron expression (position 0..4)."""
    _, min_val, max_val, aliases = _FIELDS[position]
    try:
        _expand_field(field, min_val, max_val, aliases)
    except ValueError:
        return False
    return True


def next_fire_time(expression: str | CronSpec, after: datetime, tz: str = "UTC") -> datetime:
    """Return the first matching minute strictly after ``after``.

    The search runs in the wall-clock time of ``tz``; the returned datetime
    is timezone-aware. Raises ValueError if nothing matches (e.g. Feb 30).
    """
    spec = expression if isinstance(expression, CronSpec) else parse_cron(expression)
    zone = ZoneInfo(tz)

    local = after.astimezone(zone) if after.tzinfo else after.replace(tzinfo=zone)
    candidate = local.replace(tzinfo=None, second=0, microsecond=0) + timedelta(minutes=1)

    for _ in range(_MAX_STEPS):
        if candidate.month not in spec.months:
            year = candidate.year + (1 if candidate.month == 12 else 0)
            month = 1 if candidate.month == 12 else candidate.month + 1
            candidate = candidate.replace(year=year, month=month, day=1, hour=0, minute=0)
            continue
        if not spec.day_matches(candidate):
            candidate = (candidate + timedelta(days=1)).replace(hour=0, minute=0)
            continue
        if candidate.hour not in spec.hours:
            candidate = (candidate + timedelta(hours=1)).replace(minute=0)
            continue
        if candidate.minute not in spec.minutes:
            candidate += timedelta(minutes=1)
            continue
        return candidate.replace(tzinfo=zone)

    raise ValueError(f"Cron expression never fires: {spec.expression!r}")


def _expand_field(field: str, min_val: int, max_val: int, aliases: dict[str, int]) -> frozenset[int]:
    """Expand a single cron field into the set of values it allows.

    Supports: *, */N, N, N-M, N-M/S, N/S, N,M,O and name aliases.
    """
    if not field:
        raise ValueError("Empty cron field")

    out: set[int] = set()
    for part in field.split(","):
        if not part:
            raise ValueError(f"Invalid cron list: {field!r}")

        step = 1
        if "/" in part:
            base, _, step_raw = part.partition("/")
            try:
                step = int(step_raw)
            except ValueError:
                raise ValueError(f"Invalid cron step: {part!r}")
            if step <= 0:
                raise ValueError(f"Invalid cron step: {part!r}")
        else:
            base = part

        if base == "*":
            start, end = min_val, max_val
        elif "-" in base:
            start_raw, _, end_raw = base.partition("-")
            start = _to_value(start_raw, aliases)
            end = _to_value(end_raw, aliases)
            if start > end:
                raise ValueError(f"Invalid cron range: {part!r}")
        else:
            start = _to_value(base, aliases)
            # "N/S" means "from N to the end, every S"
            end = max_val if "/" in part else start

        if start < min_val or end > max_val:
            raise ValueError(f"Cron value out of range [{min_val}-{max_val}]: {part!r}")

        out.update(range(start, end + 1, step))

    return frozenset(out)


def _to_value(raw: str, aliases: dict[str, int]) -> int:
    token = raw.strip().lower()
    if token in aliases:
        return aliases[token]
    try:
        return int(token)
    except ValueError:
        raise ValueError(f"Invalid cron field: {raw!r}")
