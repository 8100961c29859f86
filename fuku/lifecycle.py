"""Process group setup and graceful termination of services."""

from __future__ import annotations

import errno
import logging
import os
import signal
import subprocess
from typing import Any

from .errors import FailedToTerminateProcessError
from .process import Process


def _signal_direct(popen: subprocess.Popen, sig: int) -> None:
    """Signal the process itself; fails once it has already been reaped."""
    if popen.poll() is not None:
        raise ProcessLookupError(errno.ESRCH, "process already finished")
    os.kill(popen.pid, sig)


class Lifecycle:
    """Starts services in their own process group and stops them."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logging.getLogger(__name__)

    def popen_options(self) -> dict[str, Any]:
        """Options for ``subprocess.Popen`` giving the child its own process group."""
        return {"start_new_session": True}

    def terminate(self, proc: Process, timeout: float) -> None:
        """Send SIGTERM to the process group and SIGKILL after ``timeout`` seconds.

        Raises FailedToTerminateProcessError if the process cannot be killed.
        """
        popen = proc.popen
        if popen is None:
            return

        pid = popen.pid
        self._log.info("Stopping service '%s' (PID: %d)", proc.name, pid)

        try:
            os.killpg(pid, signal.SIGTERM)
        except OSError as exc:
            self._log.warning(
                "Failed to send SIGTERM to process group, trying direct signal: %s", exc
            )
            try:
                _signal_direct(popen, signal.SIGTERM)
            except OSError as direct_exc:
                self._log.error(
                    "Failed to send SIGTERM to process '%s': %s", proc.name, direct_exc
                )
                self._force_kill(proc, pid)
                return

        if proc.wait_done(timeout):
            return

        self._log.warning(
            "Service '%s' did not stop gracefully, forcing kill", proc.name
        )
        self._force_kill(proc, pid)

    def _force_kill(self, proc: Process, pid: int) -> None:
        try:
            os.killpg(pid, signal.SIGKILL)
        except OSError as exc:
            self._log.warning(
                "Failed to SIGKILL process group, trying direct kill: %s", exc
            )
            try:
                _signal_direct(proc.popen, signal.SIGKILL)
            except OSError as kill_exc:
                raise FailedToTerminateProcessError(kill_exc) from kill_exc
        proc.wait_done()