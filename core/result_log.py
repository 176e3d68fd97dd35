"""ResultLog -- append-only JSONL log of terminal task outcomes.

Kept separate from the diagnostic log: this file is meant for humans
reviewing what each task produced, one JSON object per line.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from pathlib import Path

from core.models.tasks import Failure, Result

logger = logging.getLogger(__name__)


class ResultLog:
    """Implements the ResultSink protocol.

    Usage:
        results = ResultLog(Path("~/.web-observer/results.jsonl"))
        results.record(outcome)
        results.tail(20)
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def record(self, outcome: Result | Failure) -> None:
        """Append one outcome. Write errors are logged, never raised."""
        line = outcome.model_dump_json() + "\n"
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError:
            logger.exception("Failed to write result to %s", self._path)

    def tail(self, limit: int = 20) -> list[dict]:
        """Return the last ``limit`` records, oldest first."""
        if limit <= 0 or not self._path.exists():
            return []

        lines: deque[str] = deque(maxlen=limit)
        with open(self._path, encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    lines.append(line)

        out: list[dict] = []
        for line in lines:
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping corrupt result line in %s", self._path)
        return out
