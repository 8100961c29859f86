"""Starting and stopping individual service processes."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from typing import Iterable

from .config import DEFAULT_TIER, SHUTDOWN_TIMEOUT, ReadinessType, ServiceConfig
from .errors import (
    FailedToCreatePipeError,
    FailedToGetWorkingDirError,
    FailedToStartCommandError,
    InvalidReadinessTypeError,
    OperationCancelledError,
    ServiceDirectoryNotExistError,
)
from .events import Event, EventBus, EventType
from .lifecycle import Lifecycle
from .process import LinePipe, Process
from .readiness import ReadinessChecker


class ServiceManager:
    """Runs ``make run`` in a service directory and tracks its output."""

    def __init__(
        self,
        lifecycle: Lifecycle,
        readiness: ReadinessChecker,
        event_bus: EventBus,
        log: logging.Logger | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.readiness = readiness
        self.event_bus = event_bus
        self._log = log or logging.getLogger(__name__)

    def start(
        self,
        name: str,
        service: ServiceConfig,
        cancel: threading.Event | None = None,
    ) -> Process:
        """Start the service and return its Process.

        Raises ServiceDirectoryNotExistError, FailedToGetWorkingDirError,
        FailedToCreatePipeError or FailedToStartCommandError.
        """
        service_dir = service.dir
        if not os.path.isabs(service_dir):
            try:
                cwd = os.getcwd()
            except OSError as exc:
                raise FailedToGetWorkingDirError(exc) from exc
            service_dir = os.path.join(cwd, service_dir)

        if not os.path.exists(service_dir):
            raise ServiceDirectoryNotExistError(service_dir)

        env_file = os.path.join(service_dir, ".env.development")
        if not os.path.exists(env_file):
            self._log.warning(
                "Environment file not found for service '%s': %s", name, env_file
            )

        if cancel is not None and cancel.is_set():
            raise FailedToStartCommandError(OperationCancelledError())

        env = dict(os.environ, ENV_FILE=env_file)
        try:
            popen = subprocess.Popen(
                ["make", "run"],
                cwd=service_dir,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                bufsize=1,
                **self.lifecycle.popen_options(),
            )
        except OSError as exc:
            raise FailedToStartCommandError(exc) from exc
        if popen.stdout is None or popen.stderr is None:
            raise FailedToCreatePipeError("stdout/stderr")

        self._log.info(
            "Started service '%s' (PID: %d) in directory: %s", name, popen.pid, service_dir
        )

        proc = Process(name, popen=popen, stdout=LinePipe(), stderr=LinePipe())
        tees = [
            threading.Thread(
                target=self._tee_stream,
                args=(popen.stdout, proc.stdout, name, service.tier, "STDOUT"),
                daemon=True,
            ),
            threading.Thread(
                target=self._tee_stream,
                args=(popen.stderr, proc.stderr, name, service.tier, "STDERR"),
                daemon=True,
            ),
        ]
        for tee in tees:
            tee.start()

        def wait_for_exit() -> None:
            code = popen.wait()
            if code != 0:
                self._log.error("Service '%s' exited with error: status %d", name, code)
            for tee in tees:
                tee.join()
            proc.stdout.close()
            proc.stderr.close()
            proc.mark_done()

        threading.Thread(target=wait_for_exit, daemon=True).start()

        if cancel is not None:
            def kill_on_cancel() -> None:
                while not proc.is_done():
                    if cancel.wait(0.05):
                        if popen.poll() is None:
                            try:
                                popen.kill()
                            except OSError:
                                pass
                        return

            threading.Thread(target=kill_on_cancel, daemon=True).start()

        self._handle_readiness_check(name, service, proc, cancel)
        return proc

    def stop(self, proc: Process) -> None:
        """Terminate the process within the shutdown timeout."""
        self.lifecycle.terminate(proc, SHUTDOWN_TIMEOUT)

    def _tee_stream(
        self,
        source: Iterable[str],
        destination: LinePipe,
        service_name: str,
        tier: str,
        stream: str,
    ) -> None:
        tier = tier or DEFAULT_TIER
        try:
            for raw in source:
                line = raw.rstrip("\r\n")
                self.event_bus.publish(
                    Event(
                        EventType.LOG_LINE,
                        {"service": service_name, "tier": tier, "stream": stream, "message": line},
                    )
                )
                self._log.info("[%s %s] %s", service_name, stream, line)
                try:
                    destination.write_line(line)
                except BrokenPipeError:
                    pass
        except (OSError, ValueError) as exc:
            self._log.error(
                "Error reading %s stream for service '%s': %s", stream, service_name, exc
            )

    def _drain(self, pipe: LinePipe) -> None:
        for _ in pipe:
            pass

    def _start_draining(self, proc: Process) -> None:
        for pipe in (proc.stdout, proc.stderr):
            threading.Thread(target=self._drain, args=(pipe,), daemon=True).start()

    def _handle_readiness_check(
        self,
        name: str,
        service: ServiceConfig,
        proc: Process,
        cancel: threading.Event | None,
    ) -> None:
        options = service.readiness
        if options is None:
            proc.signal_ready(None)
            self._start_draining(proc)
            return

        if options.type == ReadinessType.HTTP:
            self._start_draining(proc)
            threading.Thread(
                target=self.readiness.check, args=(name, service, proc, cancel), daemon=True
            ).start()
        elif options.type == ReadinessType.LOG:
            def check_then_drain() -> None:
                self.readiness.check(name, service, proc, cancel)
                self._start_draining(proc)

            threading.Thread(target=check_then_drain, daemon=True).start()
        else:
            kind = getattr(options.type, "value", options.type)
            error = InvalidReadinessTypeError(
                f"unknown readiness type '{kind}' for service '{name}'"
            )
            self._log.error("Failed to handle readiness check: %s", error)
            proc.signal_ready(error)
            self._start_draining(proc)