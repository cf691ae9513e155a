"""
Tests for cli.py - argument parsing, startup failures and teardown.

curses.wrapper is replaced in every test that gets past argument parsing,
so no terminal is needed.
"""

import curses
import os

import pytest

from treetop import cli
from treetop.utils.config import ConfigError


@pytest.fixture(autouse=True)
def no_dotenv(tmp_path, monkeypatch):
    """Run from an empty directory so no stray .env is picked up."""
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


@pytest.fixture
def no_terminal(monkeypatch):
    """Fail the test if the dashboard is ever started."""
    def _wrapper(*args, **kwargs):
        raise AssertionError("curses must not be initialised")
    monkeypatch.setattr(curses, "wrapper", _wrapper)


@pytest.fixture
def fake_dashboard(monkeypatch):
    """Stand-in for curses.wrapper: start the worker, let it publish, stop."""
    seen = {}

    def _wrapper(func, coordinator):
        seen["coordinator"] = coordinator
        coordinator.update_view(rows=5, cols=40)
        coordinator.start()
        coordinator.stop()
        seen["snapshot"] = coordinator.snapshot()

    monkeypatch.setattr(curses, "wrapper", _wrapper)
    return seen


@pytest.fixture
def config_file(tmp_path, two_logs):
    path = tmp_path / "treetop.conf"
    path.write_text(f"# test watch list\n{two_logs[0]}\n{two_logs[1]}  beta log\n")
    return path


class TestParser:
    def test_config_is_required(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.build_parser().parse_args([])
        assert exc.value.code == 2
        assert "usage:" in capsys.readouterr().err

    def test_help_exits_zero(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.build_parser().parse_args(["-h"])
        assert exc.value.code == 0
        assert "-d secs" in capsys.readouterr().out

    @pytest.mark.parametrize("value", ["-1", "soon"])
    def test_bad_delay(self, value, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.build_parser().parse_args(["-d", value, "x.conf"])
        assert exc.value.code == 2
        assert "Incorrect timeout value specified" in capsys.readouterr().err

    def test_defaults(self):
        args = cli.build_parser().parse_args(["x.conf"])
        assert args.delay == cli.DEFAULT_DELAY_SECS
        assert args.watcher == "notify"

    def test_watcher_from_environment(self, monkeypatch):
        monkeypatch.setenv("TREETOP_WATCHER", "poll")
        assert cli.build_parser().parse_args(["x.conf"]).watcher == "poll"

    def test_bad_watcher_in_environment(self, monkeypatch, no_terminal):
        monkeypatch.setenv("TREETOP_WATCHER", "sonar")
        with pytest.raises(SystemExit) as exc:
            cli.main(["x.conf"])
        assert exc.value.code == 2


class TestEnvironment:
    def test_dotenv_does_not_override(self, no_dotenv, monkeypatch):
        monkeypatch.setenv("TREETOP_WATCHER", "notify")
        monkeypatch.delenv("TREETOP_POLL_INTERVAL", raising=False)
        (no_dotenv / ".env").write_text(
            "# local overrides\nTREETOP_WATCHER=poll\nTREETOP_POLL_INTERVAL = 0.5\nnonsense\n"
        )
        try:
            cli.load_dotenv()
            assert os.environ["TREETOP_WATCHER"] == "notify"
            assert os.environ["TREETOP_POLL_INTERVAL"] == "0.5"
        finally:
            os.environ.pop("TREETOP_POLL_INTERVAL", None)

    def test_poll_interval_default(self):
        assert cli.env_poll_interval() == cli.POLL_INTERVAL

    @pytest.mark.parametrize("raw", ["fast", "0", "-1"])
    def test_poll_interval_invalid(self, raw, monkeypatch):
        monkeypatch.setenv("TREETOP_POLL_INTERVAL", raw)
        with pytest.raises(ConfigError):
            cli.env_poll_interval()


class TestMain:
    def test_missing_config_exits_one(self, tmp_path, no_terminal, capsys):
        assert cli.main([str(tmp_path / "missing.conf")]) == 1
        assert "Could not open config file" in capsys.readouterr().err

    def test_nothing_readable_exits_one(self, tmp_path, no_terminal, capsys):
        config = tmp_path / "treetop.conf"
        config.write_text(f"{tmp_path}/nope-1.log\n{tmp_path}/nope-2.log\n")
        assert cli.main([str(config)]) == 1
        err = capsys.readouterr().err
        assert err.count("Could not open file") == 2
        assert "No readable files" in err

    def test_bad_poll_interval_exits_one(self, config_file, monkeypatch, no_terminal):
        monkeypatch.setenv("TREETOP_POLL_INTERVAL", "never")
        assert cli.main(["-w", "poll", str(config_file)]) == 1

    def test_run_and_teardown(self, config_file, fake_dashboard, isolated_log_root):
        assert cli.main(["-w", "poll", "-d", "0", str(config_file)]) == 0

        coordinator = fake_dashboard["coordinator"]
        assert not coordinator.running
        assert coordinator.registry.closed
        assert coordinator.refresh_interval is None
        rows = fake_dashboard["snapshot"].rows
        assert [r.name for r in rows] == ["a.log", "beta log"]
        assert [r.line for r in rows] == ["alpha 2", "beta 1"]

        log = (isolated_log_root / "treetop.log").read_text()
        assert "with the poll watcher" in log
        assert log.rstrip().endswith("INFO Shutdown")

    def test_worker_failure_exits_one(self, config_file, two_logs, monkeypatch):
        def _wrapper(func, coordinator):
            os.unlink(two_logs[0])
            coordinator.rescan()

        monkeypatch.setattr(curses, "wrapper", _wrapper)
        assert cli.main(["-w", "poll", str(config_file)]) == 1

    def test_ctrl_c_quits_cleanly(self, config_file, monkeypatch):
        captured = {}

        def _wrapper(func, coordinator):
            captured["coordinator"] = coordinator
            raise KeyboardInterrupt

        monkeypatch.setattr(curses, "wrapper", _wrapper)
        assert cli.main(["-w", "poll", str(config_file)]) == 0
        assert captured["coordinator"].registry.closed
