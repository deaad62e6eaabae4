"""Single-instance lock: a zero-length marker file created with O_EXCL.

Only one process can create the marker, so only one locket process runs
against the store at a time. The marker carries no payload; its existence is
the signal.

    lock = InstanceLock(default_lock_path())
    lock.acquire()      # AlreadyLockedError if another instance holds it
    ...
    lock.release()      # LockMissingError if the marker vanished meanwhile
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger("locket.lock")

LOCK_FILE_NAME = "locket.lck"


class AlreadyLockedError(FileExistsError):
    """Another process holds the instance lock."""


class LockMissingError(FileNotFoundError):
    """The marker was gone at release time (removed externally or released twice)."""


def default_lock_path() -> Path:
    return Path(tempfile.gettempdir()) / LOCK_FILE_NAME


class InstanceLock:
    """Cross-process advisory lock backed by an exclusive-create marker file."""

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path else default_lock_path()
        self._held = False

    @property
    def locked(self) -> bool:
        return self._held

    def acquire(self) -> InstanceLock:
        """Create the marker. Raises AlreadyLockedError if it already exists.

        Any other OSError (permissions, missing directory, ...) propagates
        unchanged.
        """
        if self._held:
            msg = f"lock {self.path} is already held by this process"
            raise RuntimeError(msg)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as exc:
            msg = f"lock file exists: {self.path}"
            raise AlreadyLockedError(msg) from exc
        os.close(fd)
        self._held = True
        logger.debug("acquired instance lock %s", self.path)
        return self

    def release(self) -> None:
        """Remove the marker. Raises LockMissingError if it is already gone."""
        if not self._held:
            msg = f"lock {self.path} is not held by this process"
            raise RuntimeError(msg)
        self._held = False
        try:
            self.path.unlink()
        except FileNotFoundError as exc:
            msg = f"lock file was already removed: {self.path}"
            raise LockMissingError(msg) from exc
        logger.debug("released instance lock %s", self.path)

    def __enter__(self) -> InstanceLock:
        return self.acquire()

    def __exit__(self, *exc_info: object) -> None:
        self.release()
