"""Supervisor commands used by the CLI: start, stop, status, reload.

These run in the short-lived ``wo`` process and talk to the daemon only
through the PID file and signals. Each returns a process exit code.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time

from core.config import AppConfig
from daemon.pidfile import DAEMON_ARG, PidFile

logger = logging.getLogger(__name__)

STARTUP_GRACE = 1.0
STARTUP_TIMEOUT = 10.0
STOP_POLLS = 50
STOP_POLL_INTERVAL = 0.1


def daemon_command(config: AppConfig) -> list[str]:
    return [sys.executable, "-m", "cli.main", "--home", str(config.home_path), DAEMON_ARG]


def start_daemon(config: AppConfig) -> int:
    pid_file = PidFile(config.pid_path)
    running = pid_file.live_pid()
    if running is not None:
        print(f"  Daemon is already running (PID {running})")
        return 0

    if pid_file.is_stale():
        logger.info("Removing stale PID file %s", config.pid_path)
        pid_file.remove()

    print("  Starting daemon...")
    log_path = config.daemon_log_path
    try:
        with open(log_path, "ab") as log:
            proc = subprocess.Popen(
                daemon_command(config),
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=log,
                start_new_session=True,
            )
    except OSError as exc:
        print(f"  Failed to start daemon: {exc}")
        logger.error("Failed to start daemon: %s", exc)
        return 1

    # The child writes its own PID file once tasks are activated
    time.sleep(STARTUP_GRACE)
    deadline = time.monotonic() + STARTUP_TIMEOUT
    while time.monotonic() < deadline:
        if proc.poll() is not None:
            break
        if pid_file.live_pid() == proc.pid:
            print(f"  Daemon started with PID {proc.pid}")
            logger.info("Daemon started with PID %d", proc.pid)
            return 0
        time.sleep(STOP_POLL_INTERVAL)

    print("  Daemon failed to stay running. Check logs:")
    print(_read_log(log_path) or "  No logs available")
    if proc.poll() is None:
        proc.terminate()
    return 1


def stop_daemon(config: AppConfig) -> int:
    pid_file = PidFile(config.pid_path)
    pid = pid_file.live_pid()
    if pid is None:
        if pid_file.is_stale():
            pid_file.remove()
        print("  Daemon not running")
        return 0

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pid_file.remove()
        print("  Daemon stopped")
        return 0
    except OSError as exc:
        print(f"  Failed to stop daemon: {exc}")
        return 1

    for _ in range(STOP_POLLS):
        if pid_file.live_pid() is None:
            break
        time.sleep(STOP_POLL_INTERVAL)

    if pid_file.live_pid() is not None:
        print("  Daemon failed to stop, forcing termination")
        logger.warning("Daemon PID %d ignored SIGTERM, sending SIGKILL", pid)
        try:
            os.kill(pid, getattr(signal, "SIGKILL", signal.SIGTERM))
        except ProcessLookupError:
            pass

    pid_file.remove()
    print("  Daemon stopped")
    return 0


def daemon_status(config: AppConfig) -> int:
    pid_file = PidFile(config.pid_path)
    pid = pid_file.live_pid()
    if pid is not None:
        print(f"  Daemon is running (PID {pid})")
    elif pid_file.is_stale():
        print(f"  Daemon is not running (stale PID {pid_file.read()})")
    else:
        print("  Daemon is not running")
    return 0


def reload_daemon(config: AppConfig) -> int:
    """SIGHUP a live daemon so it re-reads every task; start one otherwise."""
    pid = PidFile(config.pid_path).live_pid()
    if pid is None or not hasattr(signal, "SIGHUP"):
        if pid is not None:
            code = stop_daemon(config)
            if code:
                return code
        return start_daemon(config)

    print("  Reloading daemon...")
    try:
        os.kill(pid, signal.SIGHUP)
    except OSError as exc:
        print(f"  Failed to reload daemon: {exc}")
        return 1
    print("  Daemon reloaded")
    return 0


def _read_log(path, limit: int = 4000) -> str:
    try:
        text = path.read_text(errors="replace")
    except OSError:
        return ""
    return text[-limit:]
