"""
The set of monitored files and their per-file state.

FileRegistry is built once at startup from the watch list, keeps the
watch-list order (which is also the display order) and lives until the
process exits. Files are never added or removed mid-run; a file that
disappears is an error, not a list change.

Ownership:
    Only the UpdateCoordinator mutates MonitoredFile state. The interaction
    loop renders from the coordinator's published snapshots and never reads
    these objects directly.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, List, Optional

from .model import FileState
from .tailer import TailBuffer, display_text, extract_tail

# Shown in the list until the first extraction completes
PLACEHOLDER_LINE = "Updating..."


class MonitoredFileError(OSError):
    """A monitored file can no longer be stat'ed or reopened."""


@dataclass(eq=False)
class MonitoredFile:
    """
    One watched file.

    Attributes:
        path: Absolute path from the watch list.
        name: Display name.
        handle: Open binary read handle.
        last_mtime: Modification time (ns) last observed for the path.
        tail: Buffer holding the most recently extracted tail.
        state: Change flag driving the "*" marker.
        needs_read: True when the tail must be re-extracted before the
                    next publish (content changed or budget changed).
        line: Decoded last line, as last published.
    """
    path: Path
    name: str
    handle: BinaryIO
    last_mtime: int = 0
    tail: TailBuffer = field(default_factory=TailBuffer)
    state: FileState = FileState.UNCHANGED
    needs_read: bool = True
    line: str = PLACEHOLDER_LINE

    @classmethod
    def open(cls, path: Path, name: str) -> "MonitoredFile":
        """Open `path` for reading. Raises OSError when it cannot be opened."""
        handle = open(path, "rb")
        try:
            mtime = os.fstat(handle.fileno()).st_mtime_ns
        except OSError:
            handle.close()
            raise
        return cls(path=path, name=name, handle=handle, last_mtime=mtime)

    @property
    def closed(self) -> bool:
        return self.handle.closed

    def stat(self) -> os.stat_result:
        """
        Stat the path on disk.

        Raises:
            MonitoredFileError: The file vanished or is inaccessible.
        """
        try:
            return os.stat(self.path)
        except OSError as exc:
            raise MonitoredFileError(
                f"Could not obtain file stats for: '{self.name}' ({exc.strerror or exc})"
            ) from exc

    def reopen_if_replaced(self, st: os.stat_result) -> bool:
        """
        Reopen the handle when the path now points at a different file.

        Log rotation typically moves the old file away and creates a new
        one under the same name; the old handle would keep reading the
        rotated file forever.

        Returns:
            True if the handle was replaced.
        """
        current = os.fstat(self.handle.fileno())
        if (current.st_dev, current.st_ino) == (st.st_dev, st.st_ino):
            return False
        try:
            handle = open(self.path, "rb")
        except OSError as exc:
            raise MonitoredFileError(
                f"Could not reopen replaced file: '{self.name}' ({exc.strerror or exc})"
            ) from exc
        self.handle.close()
        self.handle = handle
        return True

    def refresh(self, budget: int) -> None:
        """Re-extract the tail for `budget` bytes and update the last line."""
        if budget <= 0:
            return
        extract_tail(self.handle, budget, self.tail)
        self.line = display_text(self.tail.last_line)
        self.needs_read = False

    @property
    def text(self) -> str:
        """The whole extracted tail, decoded for the detail pane."""
        return self.tail.tail.decode("utf-8", errors="replace")

    def close(self) -> None:
        self.handle.close()


class FileRegistry:
    """
    Ordered collection of MonitoredFile objects.

    Example:
        >>> registry = FileRegistry.open(entries, diag)
        >>> for f in registry:
        ...     print(f.name, f.line)
        >>> registry.close()
    """

    def __init__(self, files: Iterable[MonitoredFile]) -> None:
        self._files: List[MonitoredFile] = list(files)

    @classmethod
    def open(cls, entries, diag=None) -> "FileRegistry":
        """
        Open every watch-list entry that can be opened.

        Entries that cannot be opened are skipped with a warning and never
        retried.

        Args:
            entries: Iterable of WatchEntry (path, name).
            diag: Optional DiagLog for the per-file messages.
        """
        files = []
        for entry in entries:
            try:
                files.append(MonitoredFile.open(entry.path, entry.name))
            except OSError as exc:
                if diag is not None:
                    diag.warn(f"Could not open file: '{entry.path}' ({exc.strerror or exc})")
                continue
            if diag is not None:
                diag.debug(f"Monitoring file: '{entry.path}'...")
        return cls(files)

    def __iter__(self) -> Iterator[MonitoredFile]:
        return iter(self._files)

    def __len__(self) -> int:
        return len(self._files)

    def __getitem__(self, index: int) -> MonitoredFile:
        return self._files[index]

    def index_of(self, path: Path) -> Optional[int]:
        """Return the index of the first file watching `path`, if any."""
        for index, f in enumerate(self._files):
            if f.path == path:
                return index
        return None

    @property
    def closed(self) -> bool:
        return all(f.closed for f in self._files)

    def close(self) -> None:
        """Close every handle. Safe to call more than once."""
        for f in self._files:
            f.close()
