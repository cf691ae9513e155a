"""
Diagnostic logging for treetop.

This module provides the operator-visible diagnostic channel: a small
append-only log file plus console echo of warnings and errors while the
terminal is not owned by curses.

Purpose:
    A full-screen curses UI cannot print to the terminal without tearing
    the display, yet operators still need to know which watch-list entries
    were skipped, which change source was chosen and why a run ended. The
    log file keeps that history; the console echo covers startup and
    shutdown when the screen is in normal mode.

Design Decisions:
    - One log file per user (not per run), appended to, never truncated
    - Human-readable format with UTC timestamps
    - The directory is created lazily on the first write, so a run that
      never logs anything leaves no trace on disk
    - Echo can be switched off while curses owns the screen
"""

from __future__ import annotations

import datetime
import os
import sys
from pathlib import Path
from typing import Optional, TextIO


def log_root() -> Path:
    """
    Return the directory that holds the diagnostic log.

    Uses the TREETOP_LOG_ROOT environment variable if set, otherwise
    falls back to ~/.cache/treetop.

    Example:
        >>> os.environ["TREETOP_LOG_ROOT"] = "/var/log/treetop"
        >>> log_root()
        PosixPath('/var/log/treetop')
    """
    root = os.environ.get("TREETOP_LOG_ROOT")
    if root:
        return Path(root).expanduser()
    return Path.home() / ".cache" / "treetop"


def diag_log_path() -> Path:
    """Resolve the diagnostic log file path."""
    return log_root() / "treetop.log"


class DiagLog:
    """
    Minimal append-only diagnostic logger.

    Attributes:
        path: Log file to append to, or None to keep messages on the
              console only.
        echo: When True, warnings and errors are also written to `stream`.
        verbose: When True, debug messages are echoed as well.

    Log Line Format:
        <timestamp> [treetop] <LEVEL> <message>

    Example:
        >>> diag = DiagLog(Path("/tmp/treetop.log"))
        >>> diag.warn("Could not open file: '/var/log/missing.log'")
        # Writes: 2024-01-15T12:00:00Z [treetop] WARN Could not open file: ...
        # Echoes: [treetop][warning] Could not open file: ...
    """

    # Console prefixes for echoed levels
    ECHO_TAGS = {
        "DEBUG": "[debug] ",
        "WARN": "[warning] ",
        "ERROR": "[error] ",
    }

    def __init__(
        self,
        path: Optional[Path] = None,
        echo: bool = True,
        verbose: bool = False,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.path = path
        self.echo = echo
        self.verbose = verbose
        self.stream = stream

    def _ts(self) -> str:
        """Generate an ISO 8601 UTC timestamp such as 2024-01-15T12:00:00Z."""
        return (
            datetime.datetime.now(datetime.UTC)
            .isoformat(timespec="seconds")
            .replace("+00:00", "Z")
        )

    def log(self, level: str, message: str) -> None:
        """
        Write one diagnostic line.

        Args:
            level: Severity (DEBUG, INFO, WARN, ERROR).
            message: Human-readable message.

        Side Effects:
            Appends to the log file when a path is configured, and echoes
            to the console stream according to `echo` and `verbose`.
        """
        level = level.upper()
        if self.path is not None:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(f"{self._ts()} [treetop] {level} {message}\n")
            except OSError as exc:
                # Keep running on the console channel alone
                failed, self.path = self.path, None
                self.log("WARN", f"Diagnostic log disabled, cannot write '{failed}': {exc}")

        if not self.echo:
            return
        if level == "INFO" or (level == "DEBUG" and not self.verbose):
            return
        stream = self.stream or sys.stderr
        print(f"[treetop]{self.ECHO_TAGS.get(level, ' ')}{message}", file=stream)

    def debug(self, message: str) -> None:
        self.log("DEBUG", message)

    def info(self, message: str) -> None:
        self.log("INFO", message)

    def warn(self, message: str) -> None:
        """Log a recoverable problem, e.g. a watch-list entry that was skipped."""
        self.log("WARN", message)

    def error(self, message: str) -> None:
        """Log a failure that ends the run."""
        self.log("ERROR", message)
