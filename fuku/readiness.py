"""Readiness checks: polling an HTTP endpoint or watching output for a pattern."""

from __future__ import annotations

import http.client
import logging
import re
import threading
import time
import urllib.request
from typing import Iterable
from urllib.parse import urlsplit

from .config import ReadinessType, ServiceConfig
from .errors import (
    FailedToCreateRequestError,
    FukuError,
    InvalidReadinessTypeError,
    InvalidRegexPatternError,
    OperationCancelledError,
    ReadinessTimeoutError,
)
from .process import Process

_WAIT_STEP = 0.01
_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


def _build_request(url: str) -> urllib.request.Request:
    if any(ord(char) < 0x20 or ord(char) == 0x7F for char in url):
        raise ValueError("invalid control character in URL")
    return urllib.request.Request(url, method="GET")


def _opener_for(url: str) -> urllib.request.OpenerDirector:
    """Loopback addresses bypass any configured proxy."""
    if urlsplit(url).hostname in _LOOPBACK_HOSTS:
        return urllib.request.build_opener(urllib.request.ProxyHandler({}))
    return urllib.request.build_opener()


def _is_cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


class ReadinessChecker:
    """Decides when a started service is ready to serve."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logging.getLogger(__name__)

    def check_http(
        self,
        url: str,
        timeout: float,
        interval: float,
        cancel: threading.Event | None = None,
    ) -> None:
        """Poll ``url`` every ``interval`` seconds until it answers 2xx.

        Raises ReadinessTimeoutError after ``timeout`` seconds,
        FailedToCreateRequestError for a malformed URL and
        OperationCancelledError when ``cancel`` is set.
        """
        deadline = time.monotonic() + timeout
        opener = _opener_for(url)

        while True:
            if time.monotonic() > deadline:
                raise ReadinessTimeoutError(f"HTTP check after {timeout}s")

            try:
                request = _build_request(url)
            except ValueError as exc:
                raise FailedToCreateRequestError(exc) from exc

            if _is_cancelled(cancel):
                raise OperationCancelledError()

            try:
                with opener.open(request, timeout=interval or None) as response:
                    if 200 <= response.status < 300:
                        return
            except (OSError, http.client.HTTPException, ValueError):
                pass

            if cancel is not None:
                if cancel.wait(interval):
                    raise OperationCancelledError()
            else:
                time.sleep(interval)

    def check_log(
        self,
        pattern: str,
        stdout: Iterable[str] | None,
        stderr: Iterable[str] | None,
        timeout: float,
        cancel: threading.Event | None = None,
    ) -> None:
        """Wait until a line on either stream matches ``pattern``.

        A stream stops being read once it produced a match, leaving the rest
        of it to other readers. Raises InvalidRegexPatternError,
        ReadinessTimeoutError or OperationCancelledError.
        """
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise InvalidRegexPatternError(exc) from exc

        matched = threading.Event()
        deadline = time.monotonic() + max(timeout, 0.0)

        def scan(stream: Iterable[str]) -> None:
            for line in stream:
                if regex.search(line):
                    matched.set()
                    return

        for stream in (stdout, stderr):
            if stream is not None:
                threading.Thread(target=scan, args=(stream,), daemon=True).start()

        while True:
            if matched.is_set():
                return
            if _is_cancelled(cancel):
                raise OperationCancelledError()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ReadinessTimeoutError(f"log pattern check after {timeout}s")
            matched.wait(min(remaining, _WAIT_STEP))

    def check(
        self,
        name: str,
        service: ServiceConfig,
        process: Process,
        cancel: threading.Event | None = None,
    ) -> None:
        """Run the service's configured check and signal the outcome on ``process``."""
        options = service.readiness
        kind = getattr(options.type, "value", options.type)
        self._log.info("Starting %s readiness check for service '%s'", kind, name)

        error: FukuError | None = None
        try:
            if options.type == ReadinessType.HTTP:
                self.check_http(options.url, options.timeout, options.interval, cancel)
            elif options.type == ReadinessType.LOG:
                self.check_log(
                    options.pattern, process.stdout, process.stderr, options.timeout, cancel
                )
            else:
                raise InvalidReadinessTypeError(kind)
        except FukuError as exc:
            error = exc

        if error is not None:
            self._log.error("Readiness check failed for service '%s': %s", name, error)
        else:
            self._log.info("Service '%s' is ready", name)

        process.signal_ready(error)