#!/usr/bin/env python3
"""
treetop - A 'top' like text/log file monitor.

This module implements the command-line interface: it parses arguments,
loads the watch list, opens the monitored files, picks a change source and
hands control to the curses dashboard.

Responsibilities:
    - Validate arguments before the terminal is touched, so usage errors
      never leave the terminal in raw mode
    - Load the watch list and open the monitored files
    - Start the change source (notify or poll)
    - Run the dashboard and tear everything down on exit
    - Map failures to exit codes

Usage:
    treetop <config> [-d secs] [-w notify|poll] [-h]
    python -m treetop <config> [options]

Exit Codes:
    0: Normal quit, or --help
    1: Fatal error (config unreadable, nothing to monitor, watcher failure)
    2: Usage error
"""

# Standard library imports
import argparse
import curses
import os
import sys
from pathlib import Path
from typing import List, Optional

# Local imports
from .tui.coordinator import UpdateCoordinator
from .tui.registry import FileRegistry
from .tui.sources import POLL_INTERVAL, WATCHERS, WatchError, create_source
from .tui.views import run_dashboard
from .utils.config import ConfigError, load_watch_list
from .utils.diaglog import DiagLog, diag_log_path

PROG_NAME = "treetop"

# Default auto-update period (seconds)
DEFAULT_DELAY_SECS = 10

# ============================================================
# Environment Configuration
# ============================================================

def load_dotenv(path: Optional[Path] = None) -> None:
    """
    Load a .env file into os.environ if present.

    Lets operators pin TREETOP_WATCHER, TREETOP_POLL_INTERVAL and
    TREETOP_LOG_ROOT per directory without touching their shell profile.

    Args:
        path: File to read; defaults to .env in the working directory.

    Side Effects:
        Adds variables that are not already set (existing ones win).
    """
    env_path = path or Path.cwd() / ".env"

    # Silently skip if no .env file exists - it's optional
    if not env_path.is_file():
        return

    with env_path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue
            # Skip malformed lines (no = sign)
            if "=" not in line:
                continue
            # Split on first = only (value might contain =)
            key, value = line.split("=", 1)
            os.environ.setdefault(key.strip(), value.strip())


def env_poll_interval() -> float:
    """Polling-variant stat interval from TREETOP_POLL_INTERVAL."""
    raw = os.environ.get("TREETOP_POLL_INTERVAL")
    if not raw:
        return POLL_INTERVAL
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"TREETOP_POLL_INTERVAL must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"TREETOP_POLL_INTERVAL must be positive, got {raw!r}")
    return value


# ============================================================
# Command-Line Argument Parsing
# ============================================================

def non_negative_int(text: str) -> int:
    """argparse type for the -d value."""
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Incorrect timeout value specified: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"Incorrect timeout value specified: {text!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser.

    argparse prints usage and exits with status 2 on invalid input, and
    with status 0 for -h, before any curses initialisation happens.
    """
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="A 'top' like text/log file monitor.",
    )
    parser.add_argument(
        "config",
        help="Watch-list file: one path per line, '#' starts a comment",
    )
    parser.add_argument(
        "-d", "--delay",
        type=non_negative_int,
        default=DEFAULT_DELAY_SECS,
        metavar="secs",
        help=f"Auto-update display every 'secs' seconds, 0 to disable "
             f"(default: {DEFAULT_DELAY_SECS})",
    )
    parser.add_argument(
        "-w", "--watcher",
        choices=WATCHERS,
        default=os.environ.get("TREETOP_WATCHER", "notify"),
        help="Change detection: OS notification or stat polling "
             "(default: $TREETOP_WATCHER or notify)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Echo debug messages to stderr at startup",
    )
    return parser


# ============================================================
# Entry Point
# ============================================================

def run(args, diag: DiagLog) -> int:
    """
    Open everything, run the dashboard, tear everything down.

    Returns:
        Process exit code.

    Raises:
        ConfigError, WatchError: Fatal conditions, reported by main().
    """
    diag.debug(f"Using config:  {args.config}")
    diag.debug(f"Using timeout: {args.delay} seconds")

    entries = load_watch_list(Path(args.config))
    registry = FileRegistry.open(entries, diag)
    if not len(registry):
        raise ConfigError(f"No readable files listed in '{args.config}'")

    try:
        source = create_source(args.watcher, registry, env_poll_interval())
        source.start()
        diag.info(f"Watching {len(registry)} file(s) with the {source.kind} watcher")
        try:
            coordinator = UpdateCoordinator(
                registry,
                source,
                refresh_interval=args.delay,
                diag=diag,
            )
            # curses owns the terminal from here on
            diag.echo = False
            try:
                curses.wrapper(run_dashboard, coordinator)
            except KeyboardInterrupt:
                # Ctrl+C quits like q
                pass
            finally:
                diag.echo = True
        finally:
            source.close()
    finally:
        registry.close()

    diag.info("Shutdown")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the treetop CLI.

    This function:
    1. Loads environment configuration from .env
    2. Parses command-line arguments (usage errors exit here)
    3. Runs the dashboard and maps fatal errors to exit code 1
    """
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)
    # Defaults coming from the environment bypass argparse's choices check
    if args.watcher not in WATCHERS:
        parser.error(f"invalid TREETOP_WATCHER value: {args.watcher!r} (choose from {', '.join(WATCHERS)})")

    diag = DiagLog(diag_log_path(), verbose=args.verbose)
    try:
        return run(args, diag)
    except (ConfigError, WatchError, OSError) as exc:
        diag.error(str(exc))
        return 1


# Standard Python idiom: only run main() if this file is executed directly
if __name__ == "__main__":
    sys.exit(main())
