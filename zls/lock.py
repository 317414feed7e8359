"""PID-file lock: at most one sync per source pool."""
from __future__ import annotations

import fcntl
import logging
import os
import signal

log = logging.getLogger(__name__)


def pid_alive(pid: int) -> bool:
    """Return True if a process with `pid` exists."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by another user
        return True
    return True


def read_pid(path: str) -> int | None:
    try:
        with open(path) as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        return None


class PidLock:
    """Advisory lock backed by a file holding the owner's decimal PID.

    Ownership is an flock on the open file, held until release() or process
    death, so reclaiming a stale file never races another invocation. The PID
    inside only words the log messages and keeps out processes that write the
    file without locking it.
    """

    def __init__(self, path: str, pid: int | None = None):
        self.path = path
        self.pid = pid if pid is not None else os.getpid()
        self.held = False
        self._fd: int | None = None

    def _open_locked(self) -> int | None:
        """Return an fd holding the flock on the file currently at self.path."""
        while True:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                return None
            try:
                current = os.stat(self.path)
            except FileNotFoundError:
                current = None
            # the previous owner may have unlinked the file before we locked it
            if current is not None and current.st_ino == os.fstat(fd).st_ino:
                return fd
            os.close(fd)

    def acquire(self) -> bool:
        """Take the lock. Return False if another live process holds it."""
        fd = self._open_locked()
        if fd is None:
            log.info(
                "### Another sync task is running for this pool. PID: %s",
                read_pid(self.path),
            )
            return False

        content = os.read(fd, 64).decode(errors="replace").strip()
        if content:
            try:
                other = int(content)
            except ValueError:
                other = None
            if other is not None and other != self.pid and pid_alive(other):
                os.close(fd)
                log.info("### Another sync task is running for this pool. PID: %d", other)
                return False
            log.warning(
                "### A lock file was found: %s, but no process exists with the specified PID: %s.",
                self.path, content,
            )
            log.warning("### Reclaiming lock file and continuing with sync.")

        os.ftruncate(fd, 0)
        os.lseek(fd, 0, os.SEEK_SET)
        os.write(fd, f"{self.pid}\n".encode())
        self._fd = fd
        self.held = True
        return True

    def release(self) -> None:
        """Remove the lock file if it is still ours, then drop the flock."""
        if not self.held:
            return
        self.held = False
        if read_pid(self.path) == self.pid:
            try:
                os.unlink(self.path)
            except FileNotFoundError:
                pass
        os.close(self._fd)
        self._fd = None

    def __enter__(self) -> "PidLock":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


def exit_on_signals(signals=(signal.SIGTERM, signal.SIGHUP)) -> None:
    """Turn termination signals into SystemExit so `finally`/`with` cleanup runs."""
    def _handler(signum, _frame):
        raise SystemExit(128 + signum)

    for sig in signals:
        signal.signal(sig, _handler)
