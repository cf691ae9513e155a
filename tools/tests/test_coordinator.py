"""
Tests for coordinator.py - update cycles, markers and worker lifecycle.
"""

import os
import signal
import threading
import time

import pytest

from treetop.tui.coordinator import UpdateCoordinator
from treetop.tui.model import (
    DetailView,
    DetailViewToggled,
    FileChanged,
    FileState,
    ResizeRequested,
    Row,
    SelectionMoved,
    WatchFailed,
)
from treetop.tui.registry import MonitoredFileError, PLACEHOLDER_LINE
from treetop.tui.sources import ChangeSource, NotifySource, PollSource, WatchError


@pytest.fixture
def coordinator(registry):
    """A coordinator over two_logs with a scripted change source."""
    coord = UpdateCoordinator(registry, ChangeSource())
    coord.update_view(rows=10, cols=40)
    coord.cycle()
    return coord


def _wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestInitialState:
    def test_first_frame_lists_every_file(self, registry):
        """Before the worker runs, each file is listed with the placeholder."""
        coord = UpdateCoordinator(registry, ChangeSource())
        snap = coord.snapshot()
        assert snap.generation == 0
        assert snap.rows == (
            Row("a.log", PLACEHOLDER_LINE, False),
            Row("b.log", PLACEHOLDER_LINE, False),
        )

    def test_placeholder_before_first_cycle(self, registry):
        coord = UpdateCoordinator(registry, ChangeSource())
        coord.cycle()
        assert [r.line for r in coord.snapshot().rows] == [PLACEHOLDER_LINE] * 2

    def test_first_cycle_shows_last_lines(self, coordinator):
        rows = coordinator.snapshot().rows
        assert [(r.name, r.line, r.updated) for r in rows] == [
            ("a.log", "alpha 2", False),
            ("b.log", "beta 1", False),
        ]

    def test_generation_advances(self, coordinator):
        before = coordinator.snapshot().generation
        coordinator.cycle()
        assert coordinator.snapshot().generation == before + 1

    def test_unknown_view_field(self, coordinator):
        with pytest.raises(AttributeError):
            coordinator.update_view(zoom=2)


class TestChangeMarkers:
    def test_only_changed_file_is_marked(self, coordinator, registry, two_logs, append):
        """A stays quiet while B is appended to: only B gets the marker."""
        append(two_logs[1], b"beta 2\n")
        coordinator.post(FileChanged(1))
        coordinator.step(timeout=0.5)

        assert registry[0].state is FileState.UNCHANGED
        assert registry[1].state is FileState.UPDATED
        rows = coordinator.snapshot().rows
        assert rows[0] == Row("a.log", "alpha 2", False)
        assert rows[1].line == "beta 2"
        assert rows[1].updated is True

    def test_quiet_file_is_not_reread(self, coordinator, registry, two_logs, append):
        append(two_logs[1], b"beta 2\n")
        coordinator.post(FileChanged(1))
        coordinator.step(timeout=0.5)
        assert registry[0].needs_read is False
        assert registry[0].line == "alpha 2"

    def test_highlighting_clears_marker(self, coordinator, registry, two_logs, append):
        append(two_logs[1], b"beta 2\n")
        coordinator.post(FileChanged(1))
        coordinator.step(timeout=0.5)

        coordinator.update_view(cursor=1)
        coordinator.post(SelectionMoved(1))
        coordinator.step(timeout=0.5)
        assert coordinator.snapshot().rows[1].updated is False
        assert registry[1].state is FileState.UNCHANGED

        # Moving away does not bring the marker back
        coordinator.update_view(cursor=0)
        coordinator.post(SelectionMoved(0))
        coordinator.step(timeout=0.5)
        assert coordinator.snapshot().rows[1].updated is False

    def test_highlighted_file_never_shows_marker(self, coordinator, registry, two_logs, append):
        coordinator.update_view(cursor=1)
        append(two_logs[1], b"beta 2\n")
        coordinator.post(FileChanged(1))
        coordinator.step(timeout=0.5)

        row = coordinator.snapshot().rows[1]
        assert row.line == "beta 2"
        assert row.updated is False
        assert registry[1].state is FileState.UNCHANGED

    def test_detail_file_never_shows_marker(self, coordinator, registry, two_logs, append):
        coordinator.update_view(detail=1)
        append(two_logs[1], b"beta 2\n")
        coordinator.post(FileChanged(1))
        coordinator.step(timeout=0.5)
        assert coordinator.snapshot().rows[1].updated is False

    def test_timeout_rescans_files(self, coordinator, registry, two_logs, append):
        """With no event at all, a timed-out wait re-stats every file."""
        append(two_logs[1], b"beta 2\n")
        coordinator.step(timeout=0.05)
        assert registry[1].state is FileState.UPDATED
        assert coordinator.snapshot().rows[1].line == "beta 2"

    def test_poll_source_drives_updates(self, registry, two_logs, append):
        coord = UpdateCoordinator(registry, PollSource(registry, interval=0.01))
        coord.update_view(rows=10, cols=40)
        coord.cycle()
        append(two_logs[1], b"beta 2\n")
        coord.step(timeout=1)
        assert coord.snapshot().rows[1].updated is True
        assert coord.snapshot().rows[0].updated is False

    def test_change_seen_by_rescan_is_not_polled_again(self, registry, two_logs, append):
        """One write marks the file once, whichever check notices it first."""
        coord = UpdateCoordinator(registry, PollSource(registry, interval=0.01))
        coord.update_view(rows=10, cols=40)
        coord.cycle()
        append(two_logs[1], b"beta 2\n")
        coord.rescan()

        # Highlight B, then move away: the change has been seen
        coord.update_view(cursor=1)
        coord.cycle()
        coord.update_view(cursor=0)
        coord.cycle()
        assert registry[1].state is FileState.UNCHANGED

        coord.step(timeout=0.1)
        assert registry[1].state is FileState.UNCHANGED
        assert coord.snapshot().rows[1].updated is False

    @pytest.mark.skipif(not hasattr(signal, "setitimer"), reason="needs interval timers")
    def test_signal_during_wait_keeps_waiting(self, coordinator, registry, two_logs, append):
        """A signal landing mid-wait neither ends the step nor loses the event."""
        fired = []

        def _write():
            append(two_logs[1], b"beta 2\n")
            coordinator.post(FileChanged(1))

        previous = signal.signal(signal.SIGALRM, lambda signum, frame: fired.append(signum))
        writer = threading.Timer(0.3, _write)
        try:
            writer.start()
            signal.setitimer(signal.ITIMER_REAL, 0.05)
            coordinator.step(timeout=3)
        finally:
            writer.join()
            signal.setitimer(signal.ITIMER_REAL, 0)
            signal.signal(signal.SIGALRM, previous)

        assert fired
        assert registry[1].state is FileState.UPDATED
        assert coordinator.snapshot().rows[1].line == "beta 2"


class TestDetailView:
    def test_snapshot_carries_selected_tail(self, coordinator):
        coordinator.update_view(detail=0)
        coordinator.post(DetailViewToggled(True))
        coordinator.step(timeout=0.5)
        assert coordinator.snapshot().detail == DetailView("a.log", "alpha 1\nalpha 2\n")

    def test_closing_removes_detail(self, coordinator):
        coordinator.update_view(detail=0)
        coordinator.cycle()
        coordinator.update_view(detail=None)
        coordinator.post(DetailViewToggled(False))
        coordinator.step(timeout=0.5)
        assert coordinator.snapshot().detail is None

    def test_resize_rebuilds_tails(self, coordinator, registry):
        """Shrinking then growing the viewport re-reads consistent tails."""
        coordinator.update_view(detail=1, rows=1, cols=4)
        coordinator.post(ResizeRequested())
        coordinator.step(timeout=0.5)
        snap = coordinator.snapshot()
        assert snap.detail.text == "a 1\n"
        assert snap.rows[1].line == "a 1"

        coordinator.update_view(rows=10, cols=40)
        coordinator.post(ResizeRequested())
        coordinator.step(timeout=0.5)
        snap = coordinator.snapshot()
        assert snap.detail.text == "beta 1\n"
        assert snap.rows[0].line == "alpha 2"
        assert registry[1].tail.capacity == 400


class TestFailures:
    def test_deleted_file_is_fatal(self, coordinator, two_logs):
        os.unlink(two_logs[1])
        coordinator.post(FileChanged(1))
        with pytest.raises(MonitoredFileError):
            coordinator.step(timeout=0.5)

    def test_watch_failure_is_fatal(self, coordinator):
        coordinator.post(WatchFailed("inotify queue overflow"))
        with pytest.raises(WatchError, match="overflow"):
            coordinator.step(timeout=0.5)

    def test_worker_records_failure_and_signals(self, registry, two_logs):
        signals = []
        coord = UpdateCoordinator(registry, ChangeSource(), on_dirty=lambda: signals.append(1))
        coord.start()
        assert _wait_until(lambda: signals)

        os.unlink(two_logs[0])
        coord.post(FileChanged(0))
        assert _wait_until(lambda: not coord.running)
        assert isinstance(coord.failure, MonitoredFileError)
        assert len(signals) >= 2


class TestLifecycle:
    def test_stop_is_prompt_while_polling(self, registry):
        coord = UpdateCoordinator(registry, PollSource(registry, interval=0.01))
        coord.start()
        assert coord.running
        started = time.monotonic()
        coord.stop()
        assert not coord.running
        assert time.monotonic() - started < 1.0
        assert coord.failure is None

    def test_stop_is_prompt_while_waiting_for_notifications(self, registry):
        source = NotifySource(registry)
        source.start()
        try:
            coord = UpdateCoordinator(registry, source)
            coord.start()
            coord.stop()
            assert not coord.running
        finally:
            source.close()
        registry.close()
        assert registry.closed

    def test_periodic_refresh_runs_without_events(self, registry, two_logs, append):
        coord = UpdateCoordinator(registry, ChangeSource(), refresh_interval=0.05)
        coord.update_view(rows=10, cols=40)
        coord.start()
        try:
            append(two_logs[1], b"beta 2\n")
            assert _wait_until(lambda: coord.snapshot().rows[1].line == "beta 2")
        finally:
            coord.stop()
