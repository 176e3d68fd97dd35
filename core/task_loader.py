"""Task loader -- reads one ``.env`` definition file per task.

Each file under ``<home>/userscripts`` is a flat key=value file:

    name=Hacker News digest
    url=https://news.ycombinator.com
    tags=.titleline>a,!.sitebit
    model=llama3.1
    prompt=Summarize these headlines: {content}
    duration=0 */2 * * *
    ollama_host=http://localhost:11434

Malformed files are logged and skipped one by one; they never abort the batch.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from dotenv import dotenv_values
from pydantic import ValidationError

from core.errors import InvalidInput
from core.models.tasks import DEFAULT_OLLAMA_HOST, TaskDefinition

logger = logging.getLogger(__name__)

TASK_SUFFIX = ".env"
REQUIRED_FIELDS = ("url", "model", "prompt", "tags")


def sanitize_filename(name: str) -> str:
    """Map a task name to its file stem ("My Task!" -> "my-task")."""
    if not name or not name.strip():
        raise InvalidInput("Config name cannot be empty")
    slug = re.sub(r"\s+", "-", name.strip())
    slug = re.sub(r"[^a-zA-Z0-9_-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.lower()


def load_task(path: Path, default_host: str = DEFAULT_OLLAMA_HOST) -> TaskDefinition:
    """Parse and validate a single definition file.

    Raises:
        InvalidInput: a required field is missing or a value is malformed.
    """
    raw = {k: v for k, v in dotenv_values(path).items() if v is not None}

    for field in REQUIRED_FIELDS:
        if not str(raw.get(field, "")).strip():
            raise InvalidInput(f"Missing required field: {field}")

    try:
        return TaskDefinition(
            name=raw.get("name") or path.stem,
            url=raw["url"],
            tags=raw["tags"],
            model=raw["model"],
            prompt=raw["prompt"],
            ollama_host=raw.get("ollama_host") or default_host,
            duration=raw.get("duration"),
            source_file=str(path),
        )
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise InvalidInput(problems) from exc


def task_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == TASK_SUFFIX)


def load_tasks(directory: Path, default_host: str = DEFAULT_OLLAMA_HOST) -> list[TaskDefinition]:
    """Load every valid task definition in ``directory``."""
    tasks: list[TaskDefinition] = []
    for path in task_files(directory):
        try:
            tasks.append(load_task(path, default_host=default_host))
        except InvalidInput as exc:
            logger.error("Error loading config %s: %s", path.name, exc)
        except OSError as exc:
            logger.error("Error reading config %s: %s", path.name, exc)

    logger.info("Loaded %d task definition(s) from %s", len(tasks), directory)
    return tasks


def find_task_file(directory: Path, name: str) -> Path | None:
    """Resolve a task by sanitized file name, falling back to its ``name`` key."""
    candidate = directory / f"{sanitize_filename(name)}{TASK_SUFFIX}"
    if candidate.is_file():
        return candidate

    wanted = name.strip().lower()
    for path in task_files(directory):
        try:
            declared = dotenv_values(path).get("name") or ""
        except OSError:
            continue
        if declared.strip().lower() == wanted:
            return path
    return None
