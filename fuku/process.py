"""A running service process and the line pipes carrying its output."""

from __future__ import annotations

import subprocess
import threading
from collections import deque
from typing import Iterator


class LinePipe:
    """An in-memory stream of text lines shared between threads.

    Iteration yields buffered lines and blocks for more until the pipe is
    closed. Several loops may consume the same pipe one after another.
    """

    def __init__(self) -> None:
        self._lines: deque[str] = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def write_line(self, line: str) -> None:
        with self._cond:
            if self._closed:
                raise BrokenPipeError("write to closed pipe")
            self._lines.append(line)
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __iter__(self) -> Iterator[str]:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: bool(self._lines) or self._closed)
                if not self._lines:
                    return
                line = self._lines.popleft()
            yield line


class Process:
    """A started service with its output pipes and ready/done signals."""

    def __init__(
        self,
        name: str,
        popen: subprocess.Popen | None = None,
        stdout: LinePipe | None = None,
        stderr: LinePipe | None = None,
        pid: int | None = None,
    ) -> None:
        self.name = name
        self.popen = popen
        self.stdout = stdout if stdout is not None else LinePipe()
        self.stderr = stderr if stderr is not None else LinePipe()
        self._pid = pid
        self._done = threading.Event()
        self._ready = threading.Event()
        self._ready_error: BaseException | None = None
        self._lock = threading.Lock()

    @property
    def pid(self) -> int | None:
        if self.popen is not None:
            return self.popen.pid
        return self._pid

    def signal_ready(self, error: BaseException | None = None) -> None:
        """Record the readiness outcome; may be called only once."""
        with self._lock:
            if self._ready.is_set():
                raise RuntimeError(f"readiness of '{self.name}' already signaled")
            self._ready_error = error
            self._ready.set()

    def wait_ready(self, timeout: float | None = None) -> BaseException | None:
        """Return the readiness error (None on success).

        Raises TimeoutError when readiness is not signaled in time.
        """
        if not self._ready.wait(timeout):
            raise TimeoutError(f"'{self.name}' has not signaled readiness")
        return self._ready_error

    def mark_done(self) -> None:
        self._done.set()

    def is_done(self) -> bool:
        return self._done.is_set()

    def wait_done(self, timeout: float | None = None) -> bool:
        """Block until the process has exited; False on timeout."""
        return self._done.wait(timeout)

    def __repr__(self) -> str:
        return f"Process(name={self.name!r}, pid={self.pid!r})"