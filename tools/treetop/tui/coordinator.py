"""
Background update worker.

The UpdateCoordinator is the single owner of file state. It waits on the
change source, re-extracts the tails of changed files, and publishes an
immutable Snapshot for the interaction loop to render.

Architecture:
    - Worker thread: ChangeSource.next_event() -> handle() -> cycle()
    - Foreground: writes ViewState through update_view(), posts an event to
      the change source, renders from snapshot()
    - One lock (state_lock) guards ViewState and the published snapshot.
      It is held only for copies, never during file I/O.

Marker Rule:
    A file becomes UPDATED when its change is observed. The highlighted row
    and the file open in the detail pane never show the marker: their flag
    is cleared right after the fresh content has been published. Every
    other UPDATED file keeps its marker until the user highlights it.
"""

import threading
from typing import Callable, Optional

from .model import (
    DetailView,
    FileChanged,
    FileState,
    Quit,
    Row,
    Snapshot,
    ViewState,
    WatchFailed,
)
from .sources import ChangeSource, WatchError


class UpdateCoordinator:
    """
    Owns the registry and publishes render snapshots.

    Attributes:
        registry: FileRegistry being monitored.
        source: ChangeSource delivering events.
        refresh_interval: Seconds between forced re-stat passes, or None to
                          rely on change events alone.
        failure: The exception that stopped the worker, if any.

    Example:
        >>> coordinator = UpdateCoordinator(registry, source, on_dirty=waker.wake)
        >>> coordinator.update_view(rows=20, cols=78)
        >>> coordinator.start()
        >>> coordinator.snapshot().rows
        >>> coordinator.stop()
    """

    def __init__(
        self,
        registry,
        source: ChangeSource,
        on_dirty: Optional[Callable[[], None]] = None,
        refresh_interval: Optional[float] = None,
        diag=None,
    ) -> None:
        self.registry = registry
        self.source = source
        self.on_dirty = on_dirty
        self.refresh_interval = refresh_interval or None
        self.diag = diag
        self.failure: Optional[BaseException] = None

        self.state_lock = threading.Lock()
        self._view = ViewState()
        # Placeholder rows until the worker's first extraction
        self._snapshot = Snapshot(rows=tuple(
            Row(name=f.name, line=f.line, updated=False) for f in registry
        ))
        self._generation = 0
        # Budget used for the tails currently held in the buffers
        self._budget = 0
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------
    # Foreground API
    # ------------------------------------------------------------

    def update_view(self, **changes) -> ViewState:
        """Apply ViewState field changes under the state lock; return a copy."""
        with self.state_lock:
            for key, value in changes.items():
                if not hasattr(self._view, key):
                    raise AttributeError(f"ViewState has no field {key!r}")
                setattr(self._view, key, value)
            return ViewState(**vars(self._view))

    def view(self) -> ViewState:
        """Copy of the current ViewState."""
        with self.state_lock:
            return ViewState(**vars(self._view))

    def snapshot(self) -> Snapshot:
        """The most recently published snapshot."""
        with self.state_lock:
            return self._snapshot

    def post(self, event) -> None:
        """Hand a foreground event to the worker through the change source."""
        self.source.post(event)

    # ------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------

    def start(self) -> None:
        """Run the worker loop in a daemon thread."""
        self._thread = threading.Thread(target=self.run, name="treetop-updater", daemon=True)
        self._thread.start()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        """
        Worker loop: publish once, then wait for events until stopped.

        A fatal error is stored in `failure` and the foreground is woken so
        it can shut the whole process down.
        """
        try:
            self.cycle()
            while not self._stopping.is_set():
                self.step(self.refresh_interval)
        except (WatchError, OSError) as exc:
            self.failure = exc
            if self.diag is not None:
                self.diag.error(str(exc))
            self._signal()

    def step(self, timeout: Optional[float] = None) -> None:
        """
        Wait for the next event, apply it and anything queued behind it,
        then run one update cycle.

        A timeout with no event triggers a full re-stat of every file, which
        is how the periodic auto-update works.
        """
        # Waits interrupted by a signal are resumed by the interpreter
        event = self.source.next_event(timeout)
        if event is None:
            self.rescan()
        else:
            for queued in [event] + self.source.pending():
                self.handle(queued)
        if self._stopping.is_set():
            return
        self.cycle()

    def handle(self, event) -> None:
        """Apply one event to the registry or the worker's own state."""
        if isinstance(event, FileChanged):
            self._mark_changed(event.index)
        elif isinstance(event, WatchFailed):
            raise WatchError(event.reason)
        elif isinstance(event, Quit):
            self._stopping.set()
        # ResizeRequested, DetailViewToggled and SelectionMoved only wake the
        # worker: ViewState already holds the change and cycle() reads it

    def rescan(self) -> None:
        """Stat every file and flag the ones whose modification time moved."""
        for index, f in enumerate(self.registry):
            if f.stat().st_mtime_ns != f.last_mtime:
                self._mark_changed(index)

    def _mark_changed(self, index: int) -> None:
        f = self.registry[index]
        st = f.stat()
        if f.reopen_if_replaced(st) and self.diag is not None:
            self.diag.info(f"File replaced, reopened: '{f.path}'")
        f.last_mtime = st.st_mtime_ns
        f.state = FileState.UPDATED
        f.needs_read = True

    def cycle(self) -> Snapshot:
        """
        One update pass: extract, publish, clear self-selected markers,
        signal the renderer.
        """
        view = self.view()
        budget = view.byte_budget

        # A different viewport invalidates every buffered tail
        if budget and budget != self._budget:
            self._budget = budget
            for f in self.registry:
                f.needs_read = True

        for f in self.registry:
            if f.needs_read:
                f.refresh(budget)

        selected = {view.cursor}
        if view.detail is not None:
            selected.add(view.detail)

        rows = tuple(
            Row(
                name=f.name,
                line=f.line,
                updated=f.state is FileState.UPDATED and index not in selected,
            )
            for index, f in enumerate(self.registry)
        )
        detail = None
        if view.detail is not None and 0 <= view.detail < len(self.registry):
            shown = self.registry[view.detail]
            detail = DetailView(name=shown.name, text=shown.text)

        with self.state_lock:
            self._generation += 1
            self._snapshot = Snapshot(rows=rows, detail=detail, generation=self._generation)
            snapshot = self._snapshot

        # Published; the selected files have now been seen
        for index in selected:
            if 0 <= index < len(self.registry):
                f = self.registry[index]
                if not f.needs_read:
                    f.state = FileState.UNCHANGED

        self._signal()
        return snapshot

    def _signal(self) -> None:
        if self.on_dirty is not None:
            self.on_dirty()

    def stop(self, timeout: float = 2.0) -> None:
        """Cancel the worker and wait for it to finish its current step."""
        self._stopping.set()
        self.source.post(Quit())
        if self._thread is not None:
            self._thread.join(timeout)
