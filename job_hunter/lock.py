"""Host-wide single-instance lock (Unix fcntl advisory lock on a file)."""
from __future__ import annotations

import atexit
import fcntl
import json
import os
import signal
import sys
import time
from pathlib import Path
from typing import Any

from job_hunter.errors import LockHeldError
from job_hunter.log import get_logger

log = get_logger(__name__)

LOCK_NAME = ".job-hunter.lock"

_active: list[InstanceLock] = []
_hooks_installed = False


def _release_all() -> None:
    for lock in list(_active):
        lock.release()


def _on_signal(signum: int, frame: Any) -> None:
    # Unwind only; the lock is released once cleanup has run (finally or atexit)
    if signum == signal.SIGINT:
        raise KeyboardInterrupt
    sys.exit(128 + signum)


def _install_hooks() -> None:
    global _hooks_installed
    if _hooks_installed:
        return
    atexit.register(_release_all)
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _on_signal)
        except ValueError:
            # Not the main thread; atexit still covers normal exit
            log.debug("Cannot install handler for %s outside the main thread", sig)
    _hooks_installed = True


class InstanceLock:
    """Exclusive non-blocking lock; the file records who holds it.

    Usable as a context manager. A second holder gets ``LockHeldError`` with
    the first holder's pid, elapsed seconds and command line.
    """

    def __init__(self, path: str | Path, command: str = "") -> None:
        self.path = Path(path)
        self.command = command or " ".join(sys.argv)
        self._fh = None

    @property
    def held(self) -> bool:
        return self._fh is not None

    def _read_holder(self, fh) -> dict[str, Any]:
        fh.seek(0)
        try:
            return json.loads(fh.read() or "{}")
        except ValueError:
            return {}

    def acquire(self) -> InstanceLock:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fh = open(self.path, "a+", encoding="utf-8")
        except OSError as exc:
            raise LockHeldError(LockHeldError.Kind.LOCK_FAILED, f"Cannot open lock file {self.path}: {exc}", cause=exc) from exc
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            holder = self._read_holder(fh)
            fh.close()
            pid = int(holder.get("pid") or 0)
            elapsed = max(0.0, time.time() - float(holder.get("started_at") or time.time()))
            raise LockHeldError(
                LockHeldError.Kind.LOCK_HELD,
                f"Another job-hunter process (pid {pid}) has been running for {elapsed:.0f}s",
                pid=pid,
                elapsed=elapsed,
                command=holder.get("command", ""),
                cause=exc,
            ) from exc
        except OSError as exc:
            fh.close()
            raise LockHeldError(LockHeldError.Kind.LOCK_FAILED, f"Cannot lock {self.path}: {exc}", cause=exc) from exc

        fh.seek(0)
        fh.truncate()
        json.dump({"pid": os.getpid(), "started_at": time.time(), "command": self.command}, fh)
        fh.flush()
        self._fh = fh
        _active.append(self)
        _install_hooks()
        log.debug("Acquired instance lock %s", self.path)
        return self

    def release(self) -> None:
        if self._fh is None:
            return
        fh, self._fh = self._fh, None
        if self in _active:
            _active.remove(self)
        try:
            fh.seek(0)
            fh.truncate()
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        finally:
            fh.close()
        log.debug("Released instance lock %s", self.path)

    def __enter__(self) -> InstanceLock:
        return self.acquire()

    def __exit__(self, *exc: object) -> None:
        self.release()
