"""
Pytest configuration and shared fixtures for treetop tests.

This module provides temp log files, watch lists and registries used
across the test modules.
"""

import os

import pytest

from treetop.tui.registry import FileRegistry
from treetop.utils.config import WatchEntry


@pytest.fixture(autouse=True)
def isolated_log_root(tmp_path, monkeypatch):
    """Keep the diagnostic log out of the real home directory."""
    log_dir = tmp_path / "diag"
    monkeypatch.setenv("TREETOP_LOG_ROOT", str(log_dir))
    monkeypatch.delenv("TREETOP_WATCHER", raising=False)
    monkeypatch.delenv("TREETOP_POLL_INTERVAL", raising=False)
    return log_dir


@pytest.fixture
def make_log(tmp_path):
    """Factory creating a log file with the given content."""
    def _make(name: str, content: bytes = b"") -> "os.PathLike":
        path = tmp_path / name
        path.write_bytes(content)
        return path
    return _make


@pytest.fixture
def two_logs(make_log):
    """File A (quiet) and file B (about to be appended to)."""
    a = make_log("a.log", b"alpha 1\nalpha 2\n")
    b = make_log("b.log", b"beta 1\n")
    return a, b


@pytest.fixture
def registry(two_logs):
    """A registry over the two_logs files, closed after the test."""
    reg = FileRegistry.open([WatchEntry(p.resolve(), p.name) for p in two_logs])
    yield reg
    reg.close()


def _append(path, data: bytes) -> None:
    with open(path, "ab") as f:
        f.write(data)
    st = os.stat(path)
    os.utime(path, ns=(st.st_atime_ns, st.st_mtime_ns + 1_000_000_000))


@pytest.fixture
def append():
    """Append bytes and push the mtime forward so pollers always see it."""
    return _append
