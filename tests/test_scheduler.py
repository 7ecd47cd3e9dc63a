"""Tests for the fixed-interval tick driver."""

import threading

from src.rotation.engine import TickResult
from src.rotation.errors import ArchiveCreationError, NoEligibleFilesError
from src.rotation.scheduler import TickScheduler


class ScriptedEngine:
    """Engine stand-in that raises or returns according to a script."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def tick(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return TickResult()


class TestRunOnce:
    def test_success(self):
        scheduler = TickScheduler(ScriptedEngine([None]), interval=0)
        assert scheduler.run_once() is True
        assert scheduler.failures == 0

    def test_snapshot_error_logged_not_raised(self, caplog):
        engine = ScriptedEngine([NoEligibleFilesError("/src")])
        scheduler = TickScheduler(engine, interval=0)
        assert scheduler.run_once() is False
        assert scheduler.failures == 1
        assert "retrying next interval" in caplog.text

    def test_os_error_logged_not_raised(self):
        scheduler = TickScheduler(ScriptedEngine([PermissionError(13, "denied")]), interval=0)
        assert scheduler.run_once() is False


class TestRun:
    def test_keeps_ticking_after_failures(self):
        engine = ScriptedEngine([
            ArchiveCreationError("/snap/x", "status 2"),
            None,
            NoEligibleFilesError("/src"),
        ])
        scheduler = TickScheduler(engine, interval=0)
        scheduler.run(max_ticks=3)
        assert engine.calls == 3
        assert scheduler.failures == 2

    def test_stop_before_start(self):
        stop = threading.Event()
        stop.set()
        engine = ScriptedEngine([])
        TickScheduler(engine, interval=0, stop_event=stop).run()
        assert engine.calls == 0

    def test_stop_from_another_thread(self):
        engine = ScriptedEngine([])
        scheduler = TickScheduler(engine, interval=60)
        t = threading.Thread(target=scheduler.run)
        t.start()
        scheduler.stop()
        t.join(timeout=5)
        assert not t.is_alive()
        assert engine.calls <= 1
