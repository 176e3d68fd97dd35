"""Pydantic data models shared across all components."""

from core.models.schedule import (
    Daily,
    NoSchedule,
    OneTime,
    Recurring,
    RejectionReason,
    Schedule,
    ScheduleRejection,
)
from core.models.tasks import Failure, Outcome, Result, TaskDefinition

__all__ = [
    "Daily",
    "NoSchedule",
    "OneTime",
    "Recurring",
    "RejectionReason",
    "Schedule",
    "ScheduleRejection",
    "TaskDefinition",
    "Result",
    "Failure",
    "Outcome",
]
