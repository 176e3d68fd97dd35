"""Schedule variants -- the typed trigger policy derived from a duration string.

Schedules are immutable values. They carry no execution state; the scheduler
binds them to live timers through ScheduledTaskHandle.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from core.errors import ErrorKind


class Recurring(BaseModel):
    """Fires repeatedly per a five-field cron expression."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["recurring"] = "recurring"
    cron_expression: str
    timezone: str = "UTC"

    def describe(self) -> str:
        return f"cron '{self.cron_expression}' ({self.timezone})"


class Daily(Recurring):
    """Once per day at a fixed wall-clock time (sugar for ``M H * * *``)."""

    kind: Literal["daily"] = "daily"  # type: ignore[assignment]
    hour: int
    minute: int

    @classmethod
    def at(cls, hour: int, minute: int, timezone: str = "UTC") -> Daily:
        return cls(
            cron_expression=f"{minute} {hour} * * *",
            hour=hour,
            minute=minute,
            timezone=timezone,
        )

    def describe(self) -> str:
        return f"daily at {self.hour:02d}:{self.minute:02d} ({self.timezone})"


class OneTime(BaseModel):
    """Fires exactly once at ``target``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["once"] = "once"
    target: datetime

    def delay(self, now: datetime | None = None) -> timedelta:
        """Time left until the target; zero or negative when already past."""
        now = now or datetime.now(timezone.utc)
        return self.target - now

    def describe(self) -> str:
        return f"once at {self.target.isoformat()}"


class NoSchedule(BaseModel):
    """Manual-only task."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"

    def describe(self) -> str:
        return "manual only"


class RejectionReason(str, Enum):
    INVALID_DATE_FORMAT = "InvalidDateFormat"
    INVALID_TIME_FORMAT = "InvalidTimeFormat"
    INVALID_DURATION_FORMAT = "InvalidDurationFormat"


class ScheduleRejection(BaseModel):
    """Why a duration string could not be turned into a Schedule."""

    model_config = ConfigDict(frozen=True)

    raw: str
    reason: RejectionReason
    message: str = ""

    @property
    def kind(self) -> ErrorKind:
        return ErrorKind.SCHEDULE_REJECTED

    def __str__(self) -> str:
        detail = f": {self.message}" if self.message else ""
        return f"{self.reason.value} for {self.raw!r}{detail}"


Schedule = Union[Daily, Recurring, OneTime, NoSchedule]
