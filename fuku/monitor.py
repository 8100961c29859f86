"""Resource usage of running service processes."""

from __future__ import annotations

import time
from dataclasses import dataclass

import psutil

_MAX_PID = 2**31 - 1


@dataclass(frozen=True)
class Stats:
    """CPU usage in percent and resident memory in MB."""

    cpu: float = 0.0
    mem: float = 0.0


def _cpu_percent(proc: psutil.Process) -> float:
    """Average CPU usage over the process lifetime."""
    times = proc.cpu_times()
    elapsed = time.time() - proc.create_time()
    if elapsed <= 0:
        return 0.0
    return 100.0 * (times.user + times.system) / elapsed


class Monitor:
    """Reads CPU and memory usage of processes."""

    def get_stats(self, pid: int) -> Stats:
        """Stats for ``pid``; empty stats for an out-of-range pid.

        Raises psutil.NoSuchProcess when no such process exists.
        """
        if pid <= 0 or pid > _MAX_PID:
            return Stats()

        proc = psutil.Process(pid)
        cpu = 0.0
        mem = 0.0
        with proc.oneshot():
            try:
                cpu = _cpu_percent(proc)
            except psutil.Error:
                pass
            try:
                mem = proc.memory_info().rss / 1024 / 1024
            except psutil.Error:
                pass
        return Stats(cpu=cpu, mem=mem)