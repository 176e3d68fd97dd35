from __future__ import annotations

import asyncio
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

from core.config import AppConfig, load_config
from core.errors import FatalSetup
from daemon import supervisor
from daemon.lifecycle import DaemonController
from daemon.pidfile import PidFile
from scheduler.runner import Scheduler

pytestmark = pytest.mark.skipif(
    not sys.platform.startswith("linux"), reason="spawns POSIX children, argv check needs /proc"
)

ROOT = Path(__file__).resolve().parents[1]

# Children carry the "daemon" argv marker so the PID file treats them as ours
SLEEPER = "import sys, time\nprint('ready', flush=True)\ntime.sleep(60)\n"
STUBBORN = (
    "import signal, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "print('ready', flush=True)\n"
    "time.sleep(60)\n"
)
SELF_RECORDING = (
    "import os, sys, time\n"
    "open(sys.argv[1], 'w').write(str(os.getpid()))\n"
    "time.sleep(60)\n"
)
CRASHING = "import sys\nsys.stderr.write('boom: no browser available\\n')\nsys.exit(3)\n"


def _spawn(code: str) -> subprocess.Popen:
    proc = subprocess.Popen(
        [sys.executable, "-c", code, "daemon"], stdout=subprocess.PIPE, text=True,
    )
    assert proc.stdout.readline().strip() == "ready"
    return proc


def _reap(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        proc.kill()
    proc.wait(timeout=5)
    if proc.stdout is not None:
        proc.stdout.close()


def _wait_for_pid(config: AppConfig, pid: int, timeout: float = 20.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if PidFile(config.pid_path).read() == pid:
            return True
        time.sleep(0.1)
    return False


@pytest.fixture
def fast_polls(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(supervisor, "STARTUP_GRACE", 0.0)
    monkeypatch.setattr(supervisor, "STOP_POLLS", 5)
    monkeypatch.setattr(supervisor, "STOP_POLL_INTERVAL", 0.05)


def test_stop_terminates_gracefully(tmp_path: Path, fast_polls, capsys: pytest.CaptureFixture) -> None:
    config = load_config(home=tmp_path)
    proc = _spawn(SLEEPER)
    try:
        config.pid_path.write_text(str(proc.pid))
        assert supervisor.stop_daemon(config) == 0
        assert proc.wait(timeout=5) == -signal.SIGTERM
    finally:
        _reap(proc)

    out = capsys.readouterr().out
    assert "Daemon stopped" in out
    assert "forcing" not in out
    assert not config.pid_path.exists()


def test_stop_escalates_to_kill(tmp_path: Path, fast_polls, capsys: pytest.CaptureFixture) -> None:
    config = load_config(home=tmp_path)
    proc = _spawn(STUBBORN)
    try:
        config.pid_path.write_text(str(proc.pid))
        assert supervisor.stop_daemon(config) == 0
        assert proc.wait(timeout=5) == -signal.SIGKILL
    finally:
        _reap(proc)

    assert "forcing termination" in capsys.readouterr().out
    assert not config.pid_path.exists()


def test_start_waits_for_child_to_record_itself(
    tmp_path: Path, fast_polls, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture,
) -> None:
    config = load_config(home=tmp_path)
    config.pid_path.write_text("99999999")
    monkeypatch.setattr(
        supervisor, "daemon_command",
        lambda cfg: [sys.executable, "-c", SELF_RECORDING, str(cfg.pid_path), "daemon"],
    )

    assert supervisor.start_daemon(config) == 0
    pid = PidFile(config.pid_path).live_pid()
    try:
        assert pid is not None
        assert f"Daemon started with PID {pid}" in capsys.readouterr().out

        assert supervisor.start_daemon(config) == 0
        assert "already running" in capsys.readouterr().out
    finally:
        assert supervisor.stop_daemon(config) == 0
    assert PidFile(config.pid_path).live_pid() is None


def test_start_reports_child_that_dies(
    tmp_path: Path, fast_polls, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture,
) -> None:
    config = load_config(home=tmp_path)
    monkeypatch.setattr(
        supervisor, "daemon_command", lambda cfg: [sys.executable, "-c", CRASHING, "daemon"],
    )

    assert supervisor.start_daemon(config) == 1

    out = capsys.readouterr().out
    assert "failed to stay running" in out
    assert "boom: no browser available" in out
    assert not config.pid_path.exists()


def test_main_entrypoint_is_recognised_as_daemon(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    config = load_config(home=tmp_path)
    proc = subprocess.Popen(
        [sys.executable, str(ROOT / "main.py"), "--home", str(tmp_path)],
        cwd=ROOT,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    try:
        assert _wait_for_pid(config, proc.pid), "daemon never recorded its PID"
        assert PidFile(config.pid_path).live_pid() == proc.pid

        assert supervisor.daemon_status(config) == 0
        assert f"Daemon is running (PID {proc.pid})" in capsys.readouterr().out

        # A second daemon on the same home must refuse to take over
        controller = DaemonController(
            scheduler=Scheduler(runner=lambda task: asyncio.sleep(0)),
            load_tasks=list,
            pid_file=PidFile(config.pid_path),
        )
        with pytest.raises(FatalSetup, match="already running"):
            asyncio.run(controller.start())
        assert config.pid_path.read_text() == str(proc.pid)

        assert supervisor.stop_daemon(config) == 0
        assert proc.wait(timeout=10) == 0
    finally:
        _reap(proc)
    assert not config.pid_path.exists()
