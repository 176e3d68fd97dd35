"""Task models -- observation task definitions and their terminal outcomes."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.errors import ErrorKind

CONTENT_PLACEHOLDER = "{content}"
DEFAULT_OLLAMA_HOST = "http://localhost:11434"

URL_RE = re.compile(r"https?://.+")


def is_http_url(value: str | None) -> bool:
    return bool(value) and URL_RE.match(value.strip()) is not None


class TaskDefinition(BaseModel):
    """One configured observation task, read from ``userscripts/<name>.env``.

    Validated once by the task loader; everything downstream can rely on the
    required fields being present.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    tags: str
    model: str
    prompt: str
    ollama_host: str = DEFAULT_OLLAMA_HOST
    duration: str | None = None
    source_file: str = ""

    @field_validator("name", "model", "tags")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        if not is_http_url(value):
            raise ValueError("Invalid URL format")
        return value.strip()

    @field_validator("ollama_host")
    @classmethod
    def _http_host(cls, value: str) -> str:
        if not is_http_url(value):
            raise ValueError("Invalid ollama_host format")
        return value.strip()

    @field_validator("prompt")
    @classmethod
    def _has_placeholder(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        if CONTENT_PLACEHOLDER not in value:
            raise ValueError(f"Prompt must include {CONTENT_PLACEHOLDER}")
        return value

    @field_validator("duration")
    @classmethod
    def _blank_duration_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class Result(BaseModel):
    """Successful task run."""

    model_config = ConfigDict(frozen=True)

    status: Literal["success"] = "success"
    task_name: str
    model: str
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return True

    def summary(self) -> str:
        return f"Result for {self.task_name}:\n{self.text}"


class Failure(BaseModel):
    """Classified failure of one task run."""

    model_config = ConfigDict(frozen=True)

    status: Literal["failure"] = "failure"
    task_name: str
    kind: ErrorKind
    stage: Literal["extraction", "inference"]
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return False

    def summary(self) -> str:
        return (
            f"Error running task {self.task_name} "
            f"[{self.kind.value} during {self.stage}]: {self.message}"
        )


Outcome = Union[Result, Failure]
