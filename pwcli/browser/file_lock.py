from __future__ import annotations

import contextlib
import io
import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class FileLock:
    """Best-effort inter-process exclusive lock on a sidecar file.

    Guards the attach-or-launch decision (one lock file per port) and the
    read-merge-write cycle of the shared state files.

    On platforms where locking isn't available, this degrades to "no lock".
    """

    path: Path
    _fp: io.TextIOWrapper | None = None

    def _lock_nb(self, fp: io.TextIOWrapper) -> bool:
        if sys.platform == "win32":
            import msvcrt  # type: ignore

            try:
                msvcrt.locking(fp.fileno(), msvcrt.LK_NBLCK, 1)
            except OSError:
                return False
            return True

        import fcntl

        try:
            fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def try_acquire(self) -> bool:
        if self._fp is not None:
            return True

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fp = open(self.path, "a+", encoding="utf-8")  # noqa: SIM115

        try:
            locked = self._lock_nb(fp)
        except (ImportError, OSError):
            # Locking unsupported on this filesystem/platform.
            self._fp = fp
            return True

        if not locked:
            with contextlib.suppress(OSError):
                fp.close()
            return False

        with contextlib.suppress(OSError):
            fp.seek(0)
            fp.truncate(0)
            fp.write(f"pid={os.getpid()}\n")
            fp.flush()
        self._fp = fp
        return True

    def acquire(self, timeout: float = 10.0, poll: float = 0.05) -> bool:
        """Block until the lock is held or `timeout` seconds elapse."""
        deadline = time.monotonic() + max(0.0, float(timeout))
        while True:
            if self.try_acquire():
                return True
            if time.monotonic() >= deadline:
                return False
            time.sleep(poll)

    def release(self) -> None:
        fp = self._fp
        self._fp = None
        if fp is None:
            return
        try:
            if sys.platform == "win32":
                import msvcrt  # type: ignore

                msvcrt.locking(fp.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                import fcntl

                fcntl.flock(fp.fileno(), fcntl.LOCK_UN)
        except OSError:
            pass
        with contextlib.suppress(OSError):
            fp.close()


@contextlib.contextmanager
def hold(path: Path, timeout: float = 10.0):
    """Hold the lock at `path` for the duration of the block.

    Yields whether the lock was actually obtained; callers proceed either way.
    """
    lock = FileLock(path=path)
    acquired = lock.acquire(timeout=timeout)
    try:
        yield acquired
    finally:
        if acquired:
            lock.release()
