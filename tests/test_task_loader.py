from __future__ import annotations

import logging
from pathlib import Path

import pytest

from core.errors import InvalidInput
from core.task_loader import (
    find_task_file,
    load_task,
    load_tasks,
    sanitize_filename,
)

VALID = """\
url=https://news.ycombinator.com
tags=.titleline>a,!.sitebit
model=llama3.1
prompt="Summarize these headlines: {content}"
duration="0 */2 * * *"
"""


def _write(directory: Path, filename: str, body: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(body, encoding="utf-8")
    return path


def test_load_valid_definition(tmp_path: Path) -> None:
    path = _write(tmp_path, "hacker-news.env", VALID)

    task = load_task(path)

    assert task.name == "hacker-news"
    assert task.url == "https://news.ycombinator.com"
    assert task.tags == ".titleline>a,!.sitebit"
    assert task.prompt == "Summarize these headlines: {content}"
    assert task.duration == "0 */2 * * *"
    assert task.ollama_host == "http://localhost:11434"
    assert task.source_file == str(path)


def test_explicit_name_and_host_win(tmp_path: Path) -> None:
    body = VALID + "name=HN digest\nollama_host=http://gpu-box:11434\n"
    task = load_task(_write(tmp_path, "a.env", body), default_host="http://other:11434")
    assert task.name == "HN digest"
    assert task.ollama_host == "http://gpu-box:11434"


def test_default_host_comes_from_config(tmp_path: Path) -> None:
    task = load_task(_write(tmp_path, "a.env", VALID), default_host="http://gpu-box:11434")
    assert task.ollama_host == "http://gpu-box:11434"


def test_blank_duration_is_manual(tmp_path: Path) -> None:
    body = VALID.replace('duration="0 */2 * * *"', "duration=")
    assert load_task(_write(tmp_path, "a.env", body)).duration is None


@pytest.mark.parametrize(
    ("body", "message"),
    [
        (VALID.replace("model=llama3.1\n", ""), "Missing required field: model"),
        (VALID.replace("url=https://news.ycombinator.com", "url=news.ycombinator.com"), "Invalid URL format"),
        (VALID.replace(": {content}", ""), "Prompt must include {content}"),
        (VALID + "ollama_host=localhost:11434\n", "Invalid ollama_host format"),
    ],
)
def test_invalid_definitions(tmp_path: Path, body: str, message: str) -> None:
    with pytest.raises(InvalidInput, match=message.replace("{", r"\{").replace("}", r"\}")):
        load_task(_write(tmp_path, "bad.env", body))


def test_bad_files_are_skipped_individually(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    _write(tmp_path, "good.env", VALID)
    _write(tmp_path, "broken.env", "url=https://example.com\n")
    _write(tmp_path, "notes.txt", "ignored")

    with caplog.at_level(logging.ERROR):
        tasks = load_tasks(tmp_path)

    assert [t.name for t in tasks] == ["good"]
    assert "broken.env" in caplog.text


def test_missing_directory_has_no_tasks(tmp_path: Path) -> None:
    assert load_tasks(tmp_path / "missing") == []


def test_sanitize_filename() -> None:
    assert sanitize_filename("My Task!  Two") == "my-task-two"
    assert sanitize_filename("a - b") == "a-b"
    with pytest.raises(InvalidInput):
        sanitize_filename("   ")


def test_find_by_file_name_or_declared_name(tmp_path: Path) -> None:
    by_file = _write(tmp_path, "hacker-news.env", VALID)
    by_name = _write(tmp_path, "x1.env", VALID + "name=Morning Weather\n")

    assert find_task_file(tmp_path, "Hacker News") == by_file
    assert find_task_file(tmp_path, "morning weather") == by_name
    assert find_task_file(tmp_path, "nope") is None
