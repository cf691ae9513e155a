"""
Change detection for monitored files.

This module provides the ChangeSource interface and its two variants. Both
deliver the same typed events (see model.py) through one blocking call,
next_event(), so the coordinator's loop is identical whichever variant is
running.

Variants:
    - NotifySource: OS-level change notification through watchdog
      (inotify, kqueue, FSEvents or ReadDirectoryChangesW, whichever the
      platform offers). Zero CPU while idle, sub-second latency.
    - PollSource: portable fallback that stats every file on a short fixed
      interval and reports files whose modification time moved.

Foreground events:
    The interaction loop posts DetailViewToggled, ResizeRequested,
    SelectionMoved and Quit into the same queue via post(), so the worker
    wakes immediately instead of on its next tick.

Failure Semantics:
    - A notification facility that cannot start raises WatchError from
      start(). There is no silent fallback to polling.
    - A stat failure or a dead watcher thread is delivered as a
      WatchFailed event; the coordinator treats it as fatal.
"""

import os
import queue
import time
from typing import Dict, List, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .model import FileChanged, WatchFailed

# Stat interval of the polling variant (seconds)
POLL_INTERVAL = 0.025

# Longest single wait of the notify variant before it checks that the
# watcher thread is still alive
WAIT_SLICE = 0.5

WATCHERS = ("notify", "poll")


class WatchError(Exception):
    """The change source failed; the run cannot continue."""


class ChangeSource:
    """
    Base change source: a queue of events with a blocking read.

    On its own it only delivers events that were post()ed to it, which is
    what the foreground needs for toggles and what tests use to script the
    coordinator. Subclasses add real file-change detection.
    """

    kind = "manual"

    def __init__(self) -> None:
        self.events: "queue.Queue" = queue.Queue()

    def start(self) -> None:
        """Begin watching. Raises WatchError if the facility is unavailable."""

    def post(self, event) -> None:
        """Hand an event to the worker. Safe to call from any thread."""
        self.events.put(event)

    def next_event(self, timeout: Optional[float] = None):
        """
        Block until the next event is ready.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.

        Returns:
            The next event, or None if the timeout expired first.
        """
        try:
            return self.events.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self) -> list:
        """Drain and return every event that is already queued."""
        out = []
        while True:
            try:
                out.append(self.events.get_nowait())
            except queue.Empty:
                return out

    def close(self) -> None:
        """Stop watching and release OS resources."""


class _FileEventHandler(FileSystemEventHandler):
    """Translate watchdog events on watched paths into FileChanged."""

    def __init__(self, source: "NotifySource") -> None:
        super().__init__()
        self._source = source

    def on_modified(self, event) -> None:
        if not event.is_directory:
            self._source.notify(event.src_path)

    def on_created(self, event) -> None:
        # A new file under a watched name replaces the old one
        if not event.is_directory:
            self._source.notify(event.src_path)

    def on_deleted(self, event) -> None:
        if not event.is_directory:
            self._source.notify(event.src_path)

    def on_moved(self, event) -> None:
        if not event.is_directory:
            self._source.notify(event.src_path)
            self._source.notify(event.dest_path)


class NotifySource(ChangeSource):
    """
    OS-level change notification via watchdog.

    One watch is scheduled per distinct parent directory (watchdog watches
    directories, not files); events for files that are not in the registry
    are discarded.

    Example:
        >>> source = NotifySource(registry)
        >>> source.start()
        >>> event = source.next_event()
        >>> source.close()
    """

    kind = "notify"

    def __init__(self, registry) -> None:
        super().__init__()
        # path -> registry indices; a path may be listed more than once
        self._watched: Dict[str, List[int]] = {}
        for index, f in enumerate(registry):
            self._watched.setdefault(os.path.abspath(f.path), []).append(index)
        self._parents = sorted({os.path.dirname(p) for p in self._watched})
        self._observer: Optional[Observer] = None
        self._closing = False

    def start(self) -> None:
        observer = Observer()
        handler = _FileEventHandler(self)
        try:
            for parent in self._parents:
                observer.schedule(handler, parent, recursive=False)
            observer.start()
        except OSError as exc:
            raise WatchError(f"Can't initialize file change notification: {exc}") from exc
        self._observer = observer

    def notify(self, path) -> None:
        """Called from the watchdog thread for every relevant event."""
        if not path:
            return
        key = os.path.abspath(os.fsdecode(path))
        for index in self._watched.get(key, ()):
            self.events.put(FileChanged(index))

    def next_event(self, timeout: Optional[float] = None):
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = WAIT_SLICE
            if deadline is not None:
                wait = min(wait, max(0.0, deadline - time.monotonic()))
            try:
                return self.events.get(timeout=wait)
            except queue.Empty:
                pass

            observer = self._observer
            if observer is not None and not self._closing and not observer.is_alive():
                return WatchFailed("file watcher stopped unexpectedly")
            if deadline is not None and time.monotonic() >= deadline:
                return None

    def close(self) -> None:
        self._closing = True
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=2.0)


class PollSource(ChangeSource):
    """
    Fixed-interval stat polling.

    Every `interval` seconds each file is stat'ed; a file whose
    modification time differs from the last one seen yields exactly one
    FileChanged. A modification time the coordinator has already recorded
    (its periodic re-stat got there first) is not reported again. Polling
    pauses while events are still queued, so a busy file never piles up
    duplicate events.

    Attributes:
        interval: Seconds between scans.
    """

    kind = "poll"

    def __init__(self, registry, interval: float = POLL_INTERVAL) -> None:
        super().__init__()
        self.registry = registry
        self.interval = interval
        self._seen = [f.last_mtime for f in registry]
        self._next_poll = 0.0

    def scan(self) -> None:
        """Stat every file once and queue FileChanged for the moved ones."""
        for index, f in enumerate(self.registry):
            try:
                mtime = os.stat(f.path).st_mtime_ns
            except OSError as exc:
                self.events.put(WatchFailed(
                    f"Could not obtain file stats for: '{f.name}' ({exc.strerror or exc})"
                ))
                return
            if mtime == self._seen[index]:
                continue
            self._seen[index] = mtime
            if mtime != f.last_mtime:
                self.events.put(FileChanged(index))

    def next_event(self, timeout: Optional[float] = None):
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            now = time.monotonic()
            if now >= self._next_poll and self.events.empty():
                self.scan()
                self._next_poll = now + self.interval

            wait = self._next_poll - time.monotonic()
            if deadline is not None:
                wait = min(wait, deadline - time.monotonic())
            try:
                return self.events.get(timeout=max(0.0, wait))
            except queue.Empty:
                pass

            if deadline is not None and time.monotonic() >= deadline:
                return None


def create_source(kind: str, registry, poll_interval: float = POLL_INTERVAL) -> ChangeSource:
    """
    Build the change source selected on the command line.

    Args:
        kind: "notify" or "poll".
        registry: FileRegistry to watch.
        poll_interval: Stat interval for the polling variant.

    Raises:
        ValueError: For an unknown kind.
    """
    if kind == "notify":
        return NotifySource(registry)
    if kind == "poll":
        return PollSource(registry, poll_interval)
    raise ValueError(f"Unknown watcher: {kind!r} (expected one of {', '.join(WATCHERS)})")
