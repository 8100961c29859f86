"""Orchestrates starting services tier by tier and stopping them again."""

from __future__ import annotations

import logging
import queue
import signal
import threading
import time
from typing import Any

from .config import RETRY_ATTEMPTS, RETRY_BACKOFF, Config, ServiceConfig
from .discovery import Discovery, Tier
from .errors import (
    CommandChannelClosedError,
    FailedToAcquireWorkerError,
    FukuError,
    MaxRetriesExceededError,
    OperationCancelledError,
    ServiceNotFoundError,
    ServiceNotInRegistryError,
    StartupInterruptedError,
)
from .events import Command, CommandBus, CommandType, Event, EventBus, EventType, Phase
from .process import Process
from .registry import Registry
from .workerpool import WorkerPool

_POLL = 0.01


class _ContextError(FukuError):
    """Adds context in front of an underlying error."""

    def __init__(self, context: str, cause: BaseException) -> None:
        self.cause = cause
        self.detail = cause
        Exception.__init__(self, f"{context}: {cause}")


class Runner:
    """Starts a profile's services in tier order and reacts to commands."""

    def __init__(
        self,
        config: Config,
        discovery: Discovery,
        registry: Registry,
        service: Any,
        pool: WorkerPool,
        event_bus: EventBus,
        command_bus: CommandBus,
        log: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.discovery = discovery
        self.registry = registry
        self.service = service
        self.pool = pool
        self.event_bus = event_bus
        self.command_bus = command_bus
        self._log = log or logging.getLogger(__name__)

    def _publish(self, kind: EventType, **data: Any) -> None:
        self.event_bus.publish(Event(kind, data, critical=True))

    def _phase(self, phase: Phase) -> None:
        self._publish(EventType.PHASE_CHANGED, phase=phase)

    def run(self, profile: str, cancel: threading.Event | None = None) -> None:
        """Run ``profile`` until a signal, a StopAll command or ``cancel``."""
        self._phase(Phase.STARTUP)
        try:
            tiers = self.discovery.resolve(profile)
        except FukuError as exc:
            raise _ContextError("failed to resolve profile", exc) from exc

        self._publish(
            EventType.PROFILE_RESOLVED,
            profile=profile,
            tiers=[{"name": t.name, "services": list(t.services)} for t in tiers],
        )

        services = [name for tier in tiers for name in tier.services]
        if not services:
            self._phase(Phase.STOPPED)
            self._log.warning("No services found for profile '%s'. Nothing to run.", profile)
            return

        self._log.info("Starting services in profile '%s': %s", profile, services)

        stop = threading.Event()
        external = cancel or threading.Event()
        commands = self.command_bus.subscribe()
        signals: queue.Queue = queue.Queue()
        previous = self._install_signal_handlers(signals)
        try:
            try:
                self._run_startup_phase(stop, external, tiers, signals, commands)
            except BaseException:
                self._phase(Phase.STOPPED)
                raise
            self._phase(Phase.RUNNING)
            self._run_service_phase(stop, external, signals, commands)
        finally:
            stop.set()
            self._restore_signal_handlers(previous)

        self._phase(Phase.STOPPING)
        self.shutdown()
        self._log.info("All services stopped")
        self._phase(Phase.STOPPED)

    def shutdown(self) -> None:
        """Stop every tracked process, newest first, and wait for them."""
        for proc in self.registry.snapshot_reverse():
            try:
                self.service.stop(proc)
            except FukuError as exc:
                self._log.error("Failed to stop service '%s': %s", proc.name, exc)
        self.registry.wait()

    @staticmethod
    def _install_signal_handlers(signals: queue.Queue) -> dict[int, Any]:
        if threading.current_thread() is not threading.main_thread():
            return {}
        previous = {}
        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(
                sig, lambda signum, _frame: signals.put(signal.Signals(signum).name)
            )
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: dict[int, Any]) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    def _signal_caught(self, name: str) -> None:
        self._publish(EventType.SIGNAL_CAUGHT, signal=name)

    def _run_startup_phase(
        self,
        stop: threading.Event,
        external: threading.Event,
        tiers: list[Tier],
        signals: queue.Queue,
        commands: queue.Queue,
    ) -> None:
        outcome: dict[str, BaseException | None] = {"error": None}
        finished = threading.Event()

        def start_all() -> None:
            try:
                self._start_all_tiers(stop, tiers)
            except BaseException as exc:  # handed back to the waiting loop
                outcome["error"] = exc
            finally:
                finished.set()

        threading.Thread(target=start_all, daemon=True).start()

        def abort(error: BaseException) -> None:
            stop.set()
            finished.wait()
            self.shutdown()
            raise error

        while True:
            if finished.is_set():
                error = outcome["error"]
                if error is not None:
                    self._log.error("Failed to start services: %s", error)
                    self.shutdown()
                    raise error
                self._log.info("All services started successfully, waiting for signals...")
                return
            try:
                sig = signals.get_nowait()
            except queue.Empty:
                pass
            else:
                self._signal_caught(sig)
                self._log.info("Received signal %s during startup, shutting down services...", sig)
                abort(StartupInterruptedError(f"signal {sig}"))
            if external.is_set() or stop.is_set():
                self._log.info("Context cancelled during startup, shutting down services...")
                abort(OperationCancelledError())
            try:
                cmd = commands.get(timeout=_POLL)
            except queue.Empty:
                continue
            if cmd is None:
                self._log.info("Command channel closed during startup, shutting down services...")
                abort(CommandChannelClosedError())
            if cmd.type == CommandType.STOP_ALL:
                self._log.info("Received StopAll command during startup, shutting down services...")
                abort(StartupInterruptedError("StopAll command"))
            self._handle_command(stop, cmd)

    def _run_service_phase(
        self,
        stop: threading.Event,
        external: threading.Event,
        signals: queue.Queue,
        commands: queue.Queue,
    ) -> None:
        while True:
            try:
                sig = signals.get_nowait()
            except queue.Empty:
                pass
            else:
                self._signal_caught(sig)
                self._log.info("Received signal %s, shutting down services...", sig)
                stop.set()
                return
            if external.is_set() or stop.is_set():
                self._log.info("Context cancelled, shutting down services...")
                stop.set()
                return
            try:
                cmd = commands.get(timeout=_POLL)
            except queue.Empty:
                continue
            if cmd is None:
                return
            if self._handle_command(stop, cmd):
                stop.set()
                return

    def _handle_command(self, stop: threading.Event, cmd: Command) -> bool:
        """Apply a command; True means everything should stop."""
        if cmd.type == CommandType.STOP_ALL:
            self._log.info("Received StopAll command, shutting down all services...")
            return True
        if cmd.type in (CommandType.STOP_SERVICE, CommandType.RESTART_SERVICE):
            data = cmd.data if isinstance(cmd.data, dict) else {}
            name = data.get("service")
            if not isinstance(name, str):
                self._log.error("Invalid %s command data", cmd.type.value)
                return False
            if cmd.type == CommandType.STOP_SERVICE:
                self._stop_service(name)
            else:
                self._restart_service(stop, name)
        return False

    def _stop_service(self, name: str) -> None:
        lookup = self.registry.get(name)
        if not lookup.exists:
            self._log.warning("Service '%s' not found in registry", name)
            self._publish(
                EventType.SERVICE_FAILED, service=name, tier="", error=ServiceNotInRegistryError()
            )
            return
        self.registry.detach(name)
        self._log.info("Stopping service '%s' by command", name)
        try:
            self.service.stop(lookup.proc)
        except FukuError as exc:
            self._log.error("Failed to stop service '%s': %s", name, exc)

    def _restart_service(self, stop: threading.Event, name: str) -> None:
        lookup = self.registry.get(name)
        if lookup.exists:
            self._log.info("Stopping service '%s' before restart", name)
            self.registry.detach(name)
            try:
                self.service.stop(lookup.proc)
            except FukuError as exc:
                self._log.error("Failed to stop service '%s': %s", name, exc)
        else:
            self._log.info("Starting stopped service '%s'", name)

        service_config = self.config.services.get(name)
        if service_config is None:
            self._log.error("Service configuration for '%s' not found", name)
            self._publish(
                EventType.SERVICE_FAILED, service=name, tier="", error=ServiceNotFoundError()
            )
            return

        tier = service_config.effective_tier()
        try:
            proc = self._start_service_with_retry(stop, name, tier, service_config)
        except FukuError as exc:
            self._log.error("Failed to restart service '%s': %s", name, exc)
            self._publish(EventType.SERVICE_FAILED, service=name, tier=tier, error=exc)
            return

        self.registry.add(name, proc, tier)
        self._watch_stopped(proc, tier)

    def _watch_stopped(self, proc: Process, tier: str) -> None:
        def watch() -> None:
            proc.wait_done()
            self._log.info("Service '%s' stopped", proc.name)
            self._publish(EventType.SERVICE_STOPPED, service=proc.name, tier=tier)

        threading.Thread(target=watch, daemon=True).start()

    def _start_tier(self, stop: threading.Event, tier_name: str, names: list[str]) -> None:
        errors: list[BaseException] = []
        started: list[Process] = []
        lock = threading.Lock()

        def start_one(name: str) -> None:
            try:
                self.pool.acquire(stop)
            except FukuError as exc:
                with lock:
                    errors.append(_ContextError(f"service '{name}'", FailedToAcquireWorkerError(exc)))
                return
            try:
                proc = self._start_service_with_retry(
                    stop, name, tier_name, self.config.services[name]
                )
            except FukuError as exc:
                self._publish(EventType.SERVICE_FAILED, service=name, tier=tier_name, error=exc)
                with lock:
                    errors.append(_ContextError(f"service '{name}'", exc))
                return
            finally:
                self.pool.release()
            with lock:
                started.append(proc)

        workers = [threading.Thread(target=start_one, args=(n,), daemon=True) for n in names]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        for proc in started:
            self.registry.add(proc.name, proc, tier_name)
            self._watch_stopped(proc, tier_name)

        if errors:
            raise errors[0]

    def _start_service_with_retry(
        self, stop: threading.Event, name: str, tier: str, service: ServiceConfig
    ) -> Process:
        last_error: BaseException | None = None
        for attempt in range(RETRY_ATTEMPTS):
            if attempt > 0:
                self._publish(
                    EventType.RETRY_SCHEDULED,
                    service=name,
                    attempt=attempt + 1,
                    max_attempts=RETRY_ATTEMPTS,
                )
                self._log.info(
                    "Retrying service '%s' (attempt %d/%d)", name, attempt + 1, RETRY_ATTEMPTS
                )
                if stop.wait(RETRY_BACKOFF):
                    raise OperationCancelledError()

            started_at = time.monotonic()
            try:
                proc = self.service.start(name, service, stop)
            except (FukuError, OSError) as exc:
                last_error = exc
                continue

            self._publish(
                EventType.SERVICE_STARTING,
                service=name,
                tier=tier,
                attempt=attempt + 1,
                pid=proc.pid,
            )

            if service.readiness is not None:
                error = self._await_ready(stop, proc)
                if error is not None:
                    last_error = _ContextError("readiness check failed", error)
                    self._stop_quietly(proc)
                    continue

            self._publish(
                EventType.SERVICE_READY,
                service=name,
                tier=tier,
                duration=time.monotonic() - started_at,
            )
            return proc

        raise MaxRetriesExceededError(
            f"after {RETRY_ATTEMPTS} attempts: {last_error}"
        ) from last_error

    def _await_ready(self, stop: threading.Event, proc: Process) -> BaseException | None:
        while True:
            if stop.is_set():
                self._stop_quietly(proc)
                raise OperationCancelledError()
            try:
                return proc.wait_ready(_POLL)
            except TimeoutError:
                continue

    def _stop_quietly(self, proc: Process) -> None:
        try:
            self.service.stop(proc)
        except FukuError as exc:
            self._log.error("Failed to stop service '%s': %s", proc.name, exc)

    def _start_all_tiers(self, stop: threading.Event, tiers: list[Tier]) -> None:
        total = len(tiers)
        for index, tier in enumerate(tiers, start=1):
            if tier.services:
                self._publish(EventType.TIER_STARTING, name=tier.name, index=index, total=total)
                self._log.info(
                    "Starting tier '%s' (%d/%d) with services: %s",
                    tier.name, index, total, tier.services,
                )
            self._start_tier(stop, tier.name, tier.services)
            if tier.services:
                self._publish(EventType.TIER_READY, name=tier.name)
                self._log.info("Tier '%s' started successfully, all services ready", tier.name)