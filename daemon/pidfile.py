"""PID file -- the persisted identity of the running daemon.

Its presence plus the liveness of the recorded process is the only source of
truth for "is the daemon running". A file pointing at a dead process (or at
a process that is not a daemon) is stale and may be overwritten.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from pathlib import Path

from core.errors import FatalSetup

logger = logging.getLogger(__name__)

# argv token of the foreground daemon command (``wo daemon``)
DAEMON_ARG = "daemon"
# Any of these in argv (as an argument or a script basename) marks a daemon:
# ``wo daemon``, ``python -m cli.main daemon``, ``python main.py``
DAEMON_MARKERS = (DAEMON_ARG, "main.py")


def _read_cmdline(pid: int) -> list[str] | None:
    """argv of ``pid`` where /proc is available, else None."""
    path = Path(f"/proc/{pid}/cmdline")
    try:
        raw = path.read_bytes()
    except OSError:
        return None
    return [part.decode(errors="replace") for part in raw.split(b"\0") if part]


def _carries_marker(argv: list[str], markers: tuple[str, ...]) -> bool:
    return any(arg in markers or Path(arg).name in markers for arg in argv)


def is_process_alive(pid: int, markers: tuple[str, ...] | None = DAEMON_MARKERS) -> bool:
    """True if ``pid`` exists and, where checkable, carries one of ``markers`` in argv."""
    if pid <= 0:
        return False

    if sys.platform == "win32":
        # os.kill(pid, 0) is not a liveness check on Windows
        try:
            result = subprocess.run(
                ["tasklist", "/FI", f"PID eq {pid}", "/NH"],
                capture_output=True, text=True, timeout=5,
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return str(pid) in result.stdout.split()

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Process exists but we can't signal it
        pass
    except OSError:
        return False

    if markers:
        argv = _read_cmdline(pid)
        if argv is not None and not _carries_marker(argv, markers):
            return False
    return True


class PidFile:
    """Read/write/remove the daemon PID file."""

    def __init__(self, path: Path, markers: tuple[str, ...] | None = DAEMON_MARKERS) -> None:
        self._path = path
        self._markers = markers

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> int | None:
        try:
            return int(self._path.read_text().strip())
        except (OSError, ValueError):
            return None

    def write(self, pid: int | None = None) -> int:
        """Record ``pid`` (default: this process). Raises FatalSetup on failure."""
        pid = pid if pid is not None else os.getpid()
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(str(pid))
            os.replace(tmp, self._path)
        except OSError as exc:
            raise FatalSetup(f"Could not write PID file {self._path}: {exc}") from exc
        logger.debug("Wrote PID %d to %s", pid, self._path)
        return pid

    def remove(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove PID file %s", self._path, exc_info=True)

    def live_pid(self) -> int | None:
        """PID of a live daemon, or None (missing or stale file)."""
        pid = self.read()
        if pid is None:
            return None
        if is_process_alive(pid, self._markers):
            return pid
        return None

    def is_stale(self) -> bool:
        return self._path.exists() and self.live_pid() is None
