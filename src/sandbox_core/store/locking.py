from __future__ import annotations

import fcntl
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sandbox_core.errors import RegistryBusyError

LOGGER = logging.getLogger("claude_sandbox.registry")

DEFAULT_POLL_INTERVAL_SECONDS = 0.05


class RegistryLock:
    """Exclusive advisory lock on the registry directory.

    ``fcntl.flock`` on a sentinel file, polled without blocking so that a
    contended lock fails with ``RegistryBusyError`` after ``timeout_seconds``.
    Re-entrant for the thread that holds it.
    """

    def __init__(
        self,
        lock_file: Path,
        *,
        timeout_seconds: float,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        self.lock_file = Path(lock_file)
        self._timeout_seconds = max(float(timeout_seconds), 0.0)
        self._poll_interval_seconds = max(float(poll_interval_seconds), 0.001)
        self._guard = threading.RLock()
        self._depth = 0
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    @contextmanager
    def hold(self) -> Iterator[None]:
        deadline = time.monotonic() + self._timeout_seconds
        if not self._guard.acquire(timeout=self._timeout_seconds):
            raise self._busy_error()
        try:
            if self._depth == 0:
                self._acquire_file_lock(deadline)
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._release_file_lock()
        finally:
            self._guard.release()

    def _acquire_file_lock(self, deadline: float) -> None:
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.lock_file), os.O_RDWR | os.O_CREAT, 0o600)
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise self._busy_error() from None
                time.sleep(self._poll_interval_seconds)
            except OSError:
                os.close(fd)
                raise
        self._fd = fd
        LOGGER.debug("Acquired registry lock %s", self.lock_file)

    def _release_file_lock(self) -> None:
        fd = self._fd
        self._fd = None
        if fd is None:
            return
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        LOGGER.debug("Released registry lock %s", self.lock_file)

    def _busy_error(self) -> RegistryBusyError:
        return RegistryBusyError(
            f"Registry at {self.lock_file.parent} is locked by another claude-sandbox process "
            f"(waited {self._timeout_seconds:g}s)."
        )
