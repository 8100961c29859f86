"""Command-line entry handling: parses arguments and runs a profile."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Any, Callable, Sequence

from .config import DEFAULT_PROFILE, VERSION

USAGE = """Usage:
  fuku --run=<PROFILE>            Run services with specified profile (with TUI)
  fuku --run=<PROFILE> --no-ui    Run services without TUI
  fuku help                       Show help
  fuku version                    Show version

Examples:
  fuku --run=default              Run all services with TUI
  fuku --run=core --no-ui         Run core services without TUI
  fuku --run=minimal              Run minimal services with TUI

TUI Controls (Services View):
  ↑/↓ or k/j                      Navigate services
  pgup/pgdn/home/end              Scroll viewport
  r                               Restart selected service
  s                               Stop/start selected service
  space                           Toggle logs for selected service
  ctrl+a                          Toggle all logs
  tab                             Switch to logs view
  q                               Quit (stops all services)

TUI Controls (Logs View):
  ↑/↓ or k/j                      Scroll logs
  pgup/pgdn/home/end              Scroll viewport
  a                               Toggle autoscroll
  ctrl+r                          Clear logs
  tab                             Switch back to services view
  q                               Quit (stops all services)"""

UNKNOWN_COMMAND = "Unknown command. Use 'fuku help' for more information"

_HELP_COMMANDS = {"help", "--help", "-h"}
_VERSION_COMMANDS = {"version", "--version", "-v"}
_RUN_COMMANDS = {"run", "-r"}

UIFactory = Callable[[str, threading.Event], Any]


class CLI:
    """Interprets command-line arguments and dispatches to the runner.

    ``runner`` needs a ``run(profile, cancel)`` method. ``ui`` is an optional
    factory called as ``ui(profile, cancel)`` that returns an object with a
    blocking ``run()`` method; without it, profiles run without a UI.
    """

    def __init__(
        self,
        config: Any,
        runner: Any,
        ui: UIFactory | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.ui = ui
        self._log = log or logging.getLogger(__name__)

    def run(self, args: Sequence[str]) -> int:
        """Process ``args`` and return the exit code."""
        no_ui = False
        profile = DEFAULT_PROFILE
        remaining: list[str] = []

        for arg in args:
            if arg == "--no-ui":
                no_ui = True
            elif arg.startswith("--run="):
                profile = arg[len("--run="):] or DEFAULT_PROFILE
            else:
                remaining.append(arg)

        if not remaining:
            return self._handle_run(profile, no_ui)

        command = remaining[0]
        if command in _HELP_COMMANDS:
            return self._handle_help()
        if command in _VERSION_COMMANDS:
            return self._handle_version()
        if command in _RUN_COMMANDS:
            if len(remaining) > 1:
                profile = remaining[1]
            return self._handle_run(profile, no_ui)
        return self._handle_unknown()

    def _handle_run(self, profile: str, no_ui: bool) -> int:
        self._log.debug("Running with profile: %s", profile)

        if no_ui or self.ui is None:
            try:
                self.runner.run(profile, threading.Event())
            except Exception as exc:
                self._log.error("Failed to run profile '%s': %s", profile, exc)
                print(f"Error: {exc}")
                return 1
            return 0

        cancel_runner = threading.Event()
        cancel_ui = threading.Event()
        try:
            try:
                program = self.ui(profile, cancel_ui)
            except Exception as exc:
                self._log.error("Failed to create UI: %s", exc)
                print(f"Failed to create UI: {exc}", file=sys.stderr)
                return 1

            outcome: dict[str, BaseException | None] = {"error": None}

            def run_profile() -> None:
                try:
                    self.runner.run(profile, cancel_runner)
                except Exception as exc:  # reported after the UI exits
                    outcome["error"] = exc

            worker = threading.Thread(target=run_profile, daemon=True)
            worker.start()

            try:
                program.run()
            except Exception as exc:
                self._log.error("UI error: %s", exc)
                print(f"UI error: {exc}", file=sys.stderr)
                return 1

            worker.join()
            error = outcome["error"]
            if error is not None:
                self._log.error("Failed to run profile '%s': %s", profile, error)
                print(f"Error: {error}")
                return 1
            return 0
        finally:
            cancel_runner.set()
            cancel_ui.set()

    def _handle_help(self) -> int:
        self._log.debug("Displaying help information")
        print(USAGE)
        return 0

    def _handle_version(self) -> int:
        self._log.debug("Displaying version information")
        print(f"Version: {VERSION}")
        return 0

    def _handle_unknown(self) -> int:
        self._log.debug("Unknown command")
        print(UNKNOWN_COMMAND)
        return 1