import os
import signal
import subprocess
import threading

import pytest

from fuku.errors import FailedToTerminateProcessError
from fuku.lifecycle import Lifecycle
from fuku.process import Process


def _watch(popen, name="test-service"):
    proc = Process(name, popen=popen)

    def wait():
        popen.wait()
        proc.mark_done()

    threading.Thread(target=wait, daemon=True).start()
    return proc


def test_popen_options_start_new_process_group():
    lifecycle = Lifecycle()
    options = lifecycle.popen_options()
    assert options == {"start_new_session": True}
    popen = subprocess.Popen(["sleep", "10"], **options)
    try:
        assert os.getpgid(popen.pid) == popen.pid
    finally:
        popen.kill()
        popen.wait()


def test_terminate_without_popen_does_nothing():
    proc = Process("test-service")
    assert Lifecycle().terminate(proc, 1.0) is None
    assert proc.is_done() is False


def test_terminate_process_exits_gracefully():
    lifecycle = Lifecycle()
    popen = subprocess.Popen(["sleep", "10"], **lifecycle.popen_options())
    proc = _watch(popen)

    lifecycle.terminate(proc, 5.0)

    assert proc.wait_done(1.0) is True
    assert popen.returncode == -signal.SIGTERM


def test_terminate_requires_force_kill():
    lifecycle = Lifecycle()
    popen = subprocess.Popen(
        ["sh", "-c", "trap '' TERM INT; echo ready; sleep 60"],
        stdout=subprocess.PIPE,
        text=True,
        **lifecycle.popen_options(),
    )
    assert popen.stdout.readline().strip() == "ready"
    proc = _watch(popen)

    lifecycle.terminate(proc, 0.1)

    assert proc.wait_done(2.0) is True
    assert popen.returncode == -signal.SIGKILL
    popen.stdout.close()


def test_terminate_falls_back_to_direct_signal():
    lifecycle = Lifecycle()
    popen = subprocess.Popen(["sleep", "10"])
    proc = _watch(popen)

    lifecycle.terminate(proc, 5.0)

    assert proc.wait_done(1.0) is True
    assert popen.returncode == -signal.SIGTERM


def test_terminate_already_exited_process_fails():
    lifecycle = Lifecycle()
    popen = subprocess.Popen(["true"])
    proc = _watch(popen)
    assert proc.wait_done(5.0) is True

    with pytest.raises(FailedToTerminateProcessError, match="failed to terminate process"):
        lifecycle.terminate(proc, 1.0)