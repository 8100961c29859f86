"""A bounded pool of worker slots."""

from __future__ import annotations

import threading

from .config import MAX_WORKERS
from .errors import OperationCancelledError

_POLL_INTERVAL = 0.01


class WorkerPool:
    """Limits how many services are started at the same time."""

    def __init__(self, max_workers: int = MAX_WORKERS) -> None:
        self.max_workers = max_workers
        self._slots = threading.BoundedSemaphore(max_workers)

    def acquire(self, cancel: threading.Event | None = None) -> None:
        """Take a slot, blocking while all are busy.

        Raises OperationCancelledError if ``cancel`` is set while waiting.
        """
        while True:
            if self._slots.acquire(timeout=_POLL_INTERVAL):
                return
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError()

    def release(self) -> None:
        """Give a slot back; releasing more than was taken raises ValueError."""
        self._slots.release()