"""Tracks running processes: the single source of truth for what runs."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from .config import SHUTDOWN_TIMEOUT
from .process import Process


@dataclass(frozen=True)
class Lookup:
    """Result of a registry lookup."""

    proc: Process | None = None
    exists: bool = False
    detached: bool = False


@dataclass
class _Entry:
    proc: Process
    tier: str
    order: int


class Registry:
    """Thread-safe record of active and detached processes."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._processes: dict[str, _Entry] = {}
        self._detached: dict[str, _Entry] = {}
        self._next_order = 0
        self._pending = 0

    def add(self, name: str, proc: Process, tier: str) -> None:
        """Register a process and watch it; it is removed once it is done."""
        with self._cond:
            entry = _Entry(proc=proc, tier=tier, order=self._next_order)
            self._next_order += 1
            self._detached.pop(name, None)
            self._processes[name] = entry
            self._pending += 1
        threading.Thread(
            target=self._watch, args=(name, proc), name=f"registry-{name}", daemon=True
        ).start()

    def get(self, name: str) -> Lookup:
        with self._cond:
            entry = self._processes.get(name)
            if entry is not None:
                return Lookup(proc=entry.proc, exists=True, detached=False)
            entry = self._detached.get(name)
            if entry is not None:
                return Lookup(proc=entry.proc, exists=True, detached=True)
        return Lookup()

    def snapshot_reverse(self) -> list[Process]:
        """All tracked processes, detached included, newest first."""
        with self._cond:
            entries = [*self._processes.values(), *self._detached.values()]
        entries.sort(key=lambda entry: entry.order, reverse=True)
        return [entry.proc for entry in entries]

    def detach(self, name: str) -> None:
        """Move an active process to the detached set."""
        with self._cond:
            entry = self._processes.pop(name, None)
            if entry is not None:
                self._detached[name] = entry

    def wait(self, timeout: float | None = None) -> bool:
        """Block until every tracked process has finished.

        Gives up after ``timeout`` seconds (the shutdown timeout by default)
        and returns whether everything finished.
        """
        if timeout is None:
            timeout = SHUTDOWN_TIMEOUT
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout)

    def _watch(self, name: str, proc: Process) -> None:
        proc.wait_done()
        self._remove_and_done(name, proc)

    def _remove_and_done(self, name: str, proc: Process) -> None:
        with self._cond:
            for entries in (self._detached, self._processes):
                entry = entries.get(name)
                if entry is not None and entry.proc is proc:
                    del entries[name]
                    self._pending -= 1
                    self._cond.notify_all()
                    return