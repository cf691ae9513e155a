"""
Data models shared by the dashboard components.

This module defines the small value types that flow between the change
sources, the background update coordinator and the foreground interaction
loop. Keeping them in one place keeps the other modules free of import
cycles.

Purpose:
    The background worker and the curses loop never share mutable objects
    directly. They exchange typed events (foreground -> worker) and
    immutable snapshots (worker -> foreground). This module defines both.

Note:
    ViewState is the one mutable structure written by the foreground and
    read by the background. It is only ever touched under the coordinator's
    state lock.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class FileState(Enum):
    """Change flag of a monitored file."""
    UNCHANGED = "unchanged"
    UPDATED = "updated"


# ------------------------------------------------------------
# Events
# ------------------------------------------------------------
# Everything a ChangeSource can hand to the coordinator. Change sources
# produce FileChanged and WatchFailed; the interaction loop posts the rest
# into the same queue so the worker wakes immediately.

@dataclass(frozen=True)
class FileChanged:
    """A monitored file's content or metadata changed."""
    index: int


@dataclass(frozen=True)
class ResizeRequested:
    """The terminal was resized; ViewState already holds the new viewport."""


@dataclass(frozen=True)
class DetailViewToggled:
    """The detail pane was opened (True) or closed (False)."""
    on: bool


@dataclass(frozen=True)
class SelectionMoved:
    """The highlighted row changed."""
    index: int


@dataclass(frozen=True)
class WatchFailed:
    """The change source hit an unrecoverable error."""
    reason: str


@dataclass(frozen=True)
class Quit:
    """Wake the worker so it can observe cancellation."""


@dataclass
class ViewState:
    """
    Foreground-owned view settings read by the background worker.

    Attributes:
        cursor: Index of the highlighted row in the file list.
        detail: Index of the file shown in the detail pane, or None when
                the pane is hidden.
        rows: Usable text rows inside the detail pane border.
        cols: Usable text columns inside the detail pane border.
    """
    cursor: int = 0
    detail: Optional[int] = None
    rows: int = 0
    cols: int = 0

    @property
    def detail_visible(self) -> bool:
        return self.detail is not None

    @property
    def byte_budget(self) -> int:
        """Bytes of tail that fit the detail pane (rows x columns)."""
        return max(0, self.rows) * max(0, self.cols)


@dataclass(frozen=True)
class Row:
    """One line of the file list: name, last line and change marker."""
    name: str
    line: str
    updated: bool


@dataclass(frozen=True)
class DetailView:
    """Content of the detail pane for the selected file."""
    name: str
    text: str


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable render state published by the coordinator.

    The interaction loop renders exclusively from the latest snapshot, so it
    never reads a file buffer while the worker is refilling it.
    """
    rows: Tuple[Row, ...] = ()
    detail: Optional[DetailView] = None
    generation: int = 0
