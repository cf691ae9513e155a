"""
Curses views and the foreground interaction loop.

This module draws the dashboard and turns keystrokes into view changes.
All curses calls happen here, on the main thread; the background worker
only publishes snapshots and pokes a self-pipe when a redraw is due.

Screen Layout:
    +--------------- }-= TreeTop =-{ ----------------+
    |                                                |
    | -->  app.log      last line of app.log         |
    |    * db.log       last line of db.log          |
    |      cron.log     last line of cron.log        |
    +------------------------------------------------+

    Enter opens a bordered detail pane over the list showing as much of
    the selected file's tail as fits; any other key closes it.

Architecture:
    - Background thread: UpdateCoordinator publishes a Snapshot, then
      calls Waker.wake()
    - Main thread: select() on stdin and the waker, handle keys, repaint
      from the latest snapshot
    - SIGWINCH also goes through the waker, so resizes are handled on the
      main thread between keystrokes
"""

import contextlib
import curses
import os
import selectors
import signal
import sys
from enum import Enum
from typing import List, Optional

from .model import (
    DetailViewToggled,
    ResizeRequested,
    Row,
    SelectionMoved,
    Snapshot,
    ViewState,
)

TITLE = "}-= TreeTop =-{"
MENU_MARK = "-->  "
UPDATED_CHAR = "*"


class Action(Enum):
    """What a keystroke asks the dashboard to do."""
    NONE = "none"
    UP = "up"
    DOWN = "down"
    SELECT = "select"
    DESELECT = "deselect"
    RESIZE = "resize"
    QUIT = "quit"


KEY_ACTIONS = {
    curses.KEY_UP: Action.UP,
    ord("k"): Action.UP,
    curses.KEY_DOWN: Action.DOWN,
    ord("j"): Action.DOWN,
    curses.KEY_ENTER: Action.SELECT,
    ord("\n"): Action.SELECT,
    ord("\r"): Action.SELECT,
    ord("l"): Action.SELECT,
    curses.KEY_RESIZE: Action.RESIZE,
    ord("q"): Action.QUIT,
    ord("Q"): Action.QUIT,
}


def classify_key(ch: int) -> Action:
    """Map a curses key code to an Action. Unknown keys close the detail pane."""
    if ch < 0:
        # ERR: no key was actually read
        return Action.NONE
    return KEY_ACTIONS.get(ch, Action.DESELECT)


def _printable(text: str) -> str:
    """Replace control characters, which curses refuses or misdraws."""
    return "".join(ch if ch.isprintable() else " " for ch in text)


def format_row(row: Row, highlighted: bool, name_width: int) -> str:
    """
    Build the text of one list row.

    The highlighted row carries the menu mark; other changed rows carry
    the marker at column 3.
    """
    if highlighted:
        prefix = MENU_MARK
    elif row.updated:
        prefix = "   " + UPDATED_CHAR + " "
    else:
        prefix = " " * len(MENU_MARK)
    return f"{prefix}{row.name.ljust(name_width)}  {_printable(row.line)}"


def layout_detail(text: str, rows: int, cols: int) -> List[str]:
    """
    Wrap tail text to `cols` columns and keep the last `rows` lines.

    Tabs are expanded before wrapping so the column count matches what
    the terminal will show.
    """
    if rows <= 0 or cols <= 0:
        return []
    out: List[str] = []
    for line in text.splitlines():
        line = _printable(line.expandtabs(8))
        if not line:
            out.append("")
            continue
        out.extend(line[i:i + cols] for i in range(0, len(line), cols))
    return out[-rows:]


class Waker:
    """
    Self-pipe used by the worker to interrupt the main thread's select().

    wake() is safe to call from any thread and from signal handlers; a full
    pipe already means a wakeup is pending.
    """

    def __init__(self) -> None:
        self._read_fd, self._write_fd = os.pipe()
        os.set_blocking(self._read_fd, False)
        os.set_blocking(self._write_fd, False)
        self.closed = False

    def fileno(self) -> int:
        return self._read_fd

    def wake(self) -> None:
        if self.closed:
            return
        with contextlib.suppress(BlockingIOError):
            os.write(self._write_fd, b"\0")

    def drain(self) -> None:
        """Consume pending wakeups."""
        while True:
            try:
                if not os.read(self._read_fd, 4096):
                    return
            except BlockingIOError:
                return

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        os.close(self._read_fd)
        os.close(self._write_fd)


class Renderer:
    """
    Draw the master frame, the file list and the detail pane.

    Windows:
        master: full screen, border and title
        content: file list, inside the border below the title line
        details: same area as content, drawn over it when a file is open
    """

    def __init__(self, stdscr) -> None:
        self.stdscr = stdscr
        self.master = None
        self.content = None
        self.details = None
        self.layout()

    def layout(self) -> None:
        """(Re)create the windows for the current terminal size."""
        lines, cols = self.stdscr.getmaxyx()
        # Keep stdscr from repainting over our windows on the next getch()
        self.stdscr.erase()
        self.stdscr.noutrefresh()

        self.master = curses.newwin(lines, cols, 0, 0)
        top, left = min(2, lines - 1), min(1, cols - 1)
        height = max(1, min(lines - 3, lines - top))
        width = max(1, min(cols - 2, cols - left))
        self.content = curses.newwin(height, width, top, left)
        self.details = curses.newwin(height, width, top, left)

    def viewport(self):
        """Rows and columns available for text inside the detail border."""
        height, width = self.details.getmaxyx()
        return max(0, height - 2), max(0, width - 2)

    @staticmethod
    def _put(win, y: int, x: int, text: str, attr: int = curses.A_NORMAL) -> None:
        height, width = win.getmaxyx()
        if y >= height or x >= width:
            return
        try:
            win.addnstr(y, x, text, max(0, width - x - 1), attr)
        except curses.error:
            # Writing into the last cell moves the cursor off-window
            pass

    def _draw_master(self) -> None:
        self.master.erase()
        self.master.box()
        width = self.master.getmaxyx()[1]
        self._put(self.master, 0, max(0, width // 2 - len(TITLE) // 2), TITLE)

    def _draw_list(self, rows, cursor: int) -> None:
        win = self.content
        win.erase()
        height = win.getmaxyx()[0]
        if not rows:
            return
        name_width = max(len(r.name) for r in rows)
        # Scroll so the highlighted row stays visible
        first = max(0, cursor - height + 1)
        for y, index in enumerate(range(first, min(len(rows), first + height))):
            highlighted = index == cursor
            attr = curses.A_REVERSE if highlighted else curses.A_NORMAL
            self._put(win, y, 0, format_row(rows[index], highlighted, name_width), attr)

    def _draw_detail(self, detail) -> None:
        win = self.details
        win.erase()
        rows, cols = self.viewport()
        for y, line in enumerate(layout_detail(detail.text, rows, cols), start=1):
            self._put(win, y, 1, line)
        win.box()
        self._put(win, 0, 1, f"[{_printable(detail.name)}]")

    def draw(self, snapshot: Snapshot, view: ViewState) -> None:
        """Paint one frame from a snapshot."""
        self._draw_master()
        self._draw_list(snapshot.rows, view.cursor)
        self.master.noutrefresh()
        self.content.noutrefresh()
        if snapshot.detail is not None and view.detail_visible:
            self._draw_detail(snapshot.detail)
            self.details.noutrefresh()
        curses.doupdate()


class InteractionLoop:
    """
    Foreground state machine: keystrokes in, ViewState changes and worker
    events out.

    The loop blocks in select() until a key arrives or the worker signals
    that a new snapshot is ready; there is no frame timer.

    Attributes:
        stdscr: curses screen to read keys from.
        coordinator: UpdateCoordinator owning file state.
        waker: Self-pipe the coordinator signals.
        renderer: Renderer, or None to run headless (tests).
    """

    def __init__(self, stdscr, coordinator, waker: Waker, renderer: Optional[Renderer] = None) -> None:
        self.stdscr = stdscr
        self.coordinator = coordinator
        self.waker = waker
        self.renderer = renderer
        self._winch = False

    def handle_key(self, ch: int) -> bool:
        """
        Apply one keystroke.

        Returns:
            False when the user asked to quit, True otherwise.
        """
        action = classify_key(ch)
        if action is Action.QUIT:
            return False

        view = self.coordinator.view()
        count = len(self.coordinator.registry)

        if action is Action.UP and view.cursor > 0:
            self.coordinator.update_view(cursor=view.cursor - 1)
            self.coordinator.post(SelectionMoved(view.cursor - 1))
        elif action is Action.DOWN and view.cursor < count - 1:
            self.coordinator.update_view(cursor=view.cursor + 1)
            self.coordinator.post(SelectionMoved(view.cursor + 1))
        elif action is Action.SELECT and count:
            self.coordinator.update_view(detail=view.cursor)
            self.coordinator.post(DetailViewToggled(True))
        elif action is Action.DESELECT and view.detail is not None:
            self.coordinator.update_view(detail=None)
            self.coordinator.post(DetailViewToggled(False))
        elif action is Action.RESIZE:
            self.resize()
        return True

    def resize(self) -> None:
        """Re-layout windows and tell the worker about the new viewport."""
        if self.renderer is not None:
            self.renderer.layout()
            rows, cols = self.renderer.viewport()
            self.coordinator.update_view(rows=rows, cols=cols)
        self.coordinator.post(ResizeRequested())

    def repaint(self) -> None:
        if self.renderer is not None:
            self.renderer.draw(self.coordinator.snapshot(), self.coordinator.view())

    def _on_winch(self, signum, frame) -> None:
        self._winch = True
        self.waker.wake()

    def _apply_winch(self) -> None:
        self._winch = False
        size = os.get_terminal_size(sys.__stdout__.fileno())
        curses.resizeterm(size.lines, size.columns)
        self.resize()

    def _read_keys(self) -> bool:
        while True:
            ch = self.stdscr.getch()
            if ch == -1:
                return True
            if not self.handle_key(ch):
                return False

    def run(self) -> None:
        """
        Block on input and redraw signals until the user quits.

        Raises:
            The worker's failure, if the background thread died.
        """
        self.stdscr.nodelay(True)
        winch = getattr(signal, "SIGWINCH", None)
        previous = signal.signal(winch, self._on_winch) if winch is not None else None

        selector = selectors.DefaultSelector()
        selector.register(sys.stdin, selectors.EVENT_READ)
        selector.register(self.waker, selectors.EVENT_READ)
        try:
            self.resize()
            self.coordinator.start()
            self.repaint()
            while True:
                for key, _mask in selector.select():
                    if key.fileobj is self.waker:
                        self.waker.drain()
                    elif not self._read_keys():
                        return
                if self.coordinator.failure is not None:
                    raise self.coordinator.failure
                if self._winch:
                    self._apply_winch()
                self.repaint()
        finally:
            selector.close()
            if winch is not None:
                signal.signal(winch, previous if previous is not None else signal.SIG_DFL)


def run_dashboard(stdscr, coordinator) -> None:
    """
    Run the interactive dashboard until the user quits.

    This is the curses entry point and should be called through
    curses.wrapper() so the terminal is restored on any exit path. The
    coordinator is started here and stopped before returning.

    Args:
        stdscr: The curses standard screen (provided by curses.wrapper).
        coordinator: UpdateCoordinator for the monitored files.
    """
    # Hide the cursor for a cleaner UI
    curses.curs_set(0)

    waker = Waker()
    coordinator.on_dirty = waker.wake
    loop = InteractionLoop(stdscr, coordinator, waker, Renderer(stdscr))
    try:
        loop.run()
    finally:
        coordinator.stop()
        # A worker stuck in a stalled read may still signal; leave its pipe open
        if not coordinator.running:
            waker.close()
