"""Single-instance guard and PID marker for backup runs."""

import fcntl
import logging
import os
from pathlib import Path
from typing import Optional, TextIO


class SingleInstanceGuard:
    """
    Process-wide advisory lock on a file.

    Uses fcntl.flock, so the kernel drops the lock when the descriptor is
    closed, which includes every way the process can exit.
    """

    def __init__(self, lock_path: str):
        self.lock_path = Path(lock_path)
        self._fd: Optional[TextIO] = None
        self.logger = logging.getLogger(__name__)

    @property
    def held(self) -> bool:
        return self._fd is not None

    def try_acquire(self) -> bool:
        """
        Try to take the lock without waiting.

        Returns:
            True if this guard now holds the lock, False if another holder has it
        """
        if self._fd is not None:
            return True

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = open(self.lock_path, "a")
        try:
            fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            fd.close()
            self.logger.debug(f"Lock already held: {self.lock_path}")
            return False

        self._fd = fd
        self.logger.debug(f"Acquired single-instance lock: {self.lock_path}")
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd.fileno(), fcntl.LOCK_UN)
        finally:
            self._fd.close()
            self._fd = None

    def __enter__(self) -> "SingleInstanceGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class PidMarker:
    """
    Marker file recording the PID of the running backup.

    Only created after the lock is held, and only removed if it still
    records this process.
    """

    def __init__(self, pid_path: str):
        self.pid_path = Path(pid_path)
        self.pid = os.getpid()
        self.logger = logging.getLogger(__name__)

    def write(self) -> None:
        self.pid_path.parent.mkdir(parents=True, exist_ok=True)
        self.pid_path.write_text(f"{self.pid}\n")

    def remove(self) -> None:
        try:
            recorded = self.pid_path.read_text().strip()
        except FileNotFoundError:
            return
        if recorded != str(self.pid):
            self.logger.warning(
                f"PID marker {self.pid_path} belongs to process {recorded}, leaving it"
            )
            return
        self.pid_path.unlink()

    def __enter__(self) -> "PidMarker":
        self.write()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.remove()
