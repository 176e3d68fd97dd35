"""Schedule parser -- duration string to Schedule variant.

Accepted forms, checked in this order (the first one that fits wins):

    ""                     -> NoSchedule (manual only)
    "*/15 * * * *"         -> Recurring (five-field cron)
    "24.12.25 18.30"       -> OneTime  (dd.mm.yy hh.mm, year 2000+yy)
    "12.30"                -> Daily    (hh.mm, i.e. cron "30 12 * * *")

Anything else is rejected. Rejections are returned, never raised, so a bad
schedule can only ever cost its own task.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from core.models.schedule import (
    Daily,
    NoSchedule,
    OneTime,
    Recurring,
    RejectionReason,
    Schedule,
    ScheduleRejection,
)
from scheduler.cron import is_valid_field


def parse_schedule(raw: str | None, timezone: str = "UTC") -> Schedule | ScheduleRejection:
    """Classify a raw duration string.

    Args:
        raw: the task's ``duration`` value, may be empty or None
        timezone: zone used for cron schedules and absolute dates

    Returns:
        A Schedule variant, or a ScheduleRejection describing the problem.
    """
    text = (raw or "").strip()
    if not text:
        return NoSchedule()

    fields = text.split()
    if len(fields) == 5 and all(is_valid_field(f, i) for i, f in enumerate(fields)):
        return Recurring(cron_expression=" ".join(fields), timezone=timezone)

    if "." in text:
        if " " in text:
            return _parse_absolute(text, timezone)
        return _parse_daily(text, timezone)

    return ScheduleRejection(
        raw=text,
        reason=RejectionReason.INVALID_DURATION_FORMAT,
        message="expected a cron expression, 'hh.mm' or 'dd.mm.yy hh.mm'",
    )


def _parse_absolute(text: str, timezone: str) -> OneTime | ScheduleRejection:
    def reject(message: str) -> ScheduleRejection:
        return ScheduleRejection(
            raw=text,
            reason=RejectionReason.INVALID_DATE_FORMAT,
            message=message,
        )

    parts = text.split()
    if len(parts) != 2:
        return reject("expected 'dd.mm.yy hh.mm'")

    date_part, time_part = parts
    date_values = _ints(date_part.split("."))
    time_values = _ints(time_part.split("."))
    if date_values is None or len(date_values) != 3:
        return reject(f"bad date {date_part!r}")
    if time_values is None or len(time_values) != 2:
        return reject(f"bad time {time_part!r}")

    day, month, year = date_values
    hour, minute = time_values
    if not 0 <= year <= 99:
        return reject(f"year must have two digits, got {year}")

    try:
        target = datetime(2000 + year, month, day, hour, minute, tzinfo=ZoneInfo(timezone))
    except ValueError as exc:
        return reject(str(exc))

    return OneTime(target=target)


def _parse_daily(text: str, timezone: str) -> Daily | ScheduleRejection:
    values = _ints(text.split("."))
    if values is None or len(values) != 2:
        return ScheduleRejection(
            raw=text,
            reason=RejectionReason.INVALID_TIME_FORMAT,
            message="expected 'hh.mm'",
        )

    hour, minute = values
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return ScheduleRejection(
            raw=text,
            reason=RejectionReason.INVALID_TIME_FORMAT,
            message=f"time out of range: {hour:02d}:{minute:02d}",
        )
    return Daily.at(hour, minute, timezone)


def _ints(parts: list[str]) -> list[int] | None:
    if not all(p.isascii() and p.isdigit() for p in parts):
        return None
    return [int(p) for p in parts]
