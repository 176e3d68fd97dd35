"""Error taxonomy shared by the pipeline, scheduler and daemon.

Per-task errors (everything except FatalSetup) are caught at the pipeline
boundary and turned into Failure records. FatalSetup is the only error that
is allowed to end the process.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    INVALID_SELECTOR = "InvalidSelector"
    EXTRACTION_FAILED = "ExtractionFailed"
    INFERENCE_FAILED = "InferenceFailed"
    SCHEDULE_REJECTED = "ScheduleRejected"
    FATAL_SETUP = "FatalSetup"


class WebObserverError(Exception):
    """Base class for all classified errors."""

    kind: ErrorKind = ErrorKind.EXTRACTION_FAILED

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(WebObserverError):
    """Malformed locator, selector list, prompt or address. Never retried."""

    kind = ErrorKind.INVALID_INPUT


class InvalidSelector(WebObserverError):
    """A selector was rejected by the extraction engine."""

    kind = ErrorKind.INVALID_SELECTOR

    def __init__(self, selector: str, detail: str = "") -> None:
        message = f"Invalid CSS selector: {selector}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)
        self.selector = selector


class ExtractionFailed(WebObserverError):
    """Transient extraction error (timeout, unreachable, driver crash)."""

    kind = ErrorKind.EXTRACTION_FAILED


class InferenceFailed(WebObserverError):
    """Inference service unreachable or returned an error/empty response."""

    kind = ErrorKind.INFERENCE_FAILED


class FatalSetup(WebObserverError):
    """Required storage could not be created or the PID file not written."""

    kind = ErrorKind.FATAL_SETUP
