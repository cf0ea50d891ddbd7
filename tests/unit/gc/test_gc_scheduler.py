"""Unit tests for the sweep scheduler.

Tests cycle behavior, loop lifecycle and lifespan wiring.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import pytest

from relay.config import GCConfig, Settings
from relay.services.gc import lifecycle
from relay.services.gc.base import GCResult, GCTask
from relay.services.gc.scheduler import SweepScheduler
from relay.services.gc.tasks import ExpiredPairingCodeGC, IdleCaptureSessionGC
from tests.fakes import FakeMediaStore


class FakeGCTask(GCTask):
    """Fake sweep task for testing."""

    def __init__(self, name: str, cleaned: int = 0, errors: list[str] | None = None):
        self.name = name
        self._cleaned = cleaned
        self._errors = errors or []
        self.run_count = 0

    async def run(self) -> GCResult:
        self.run_count += 1
        result = GCResult(cleaned_count=self._cleaned)
        for error in self._errors:
            result.add_error(error)
        return result


class RaisingGCTask(FakeGCTask):
    def __init__(self, name: str, error: Exception):
        super().__init__(name)
        self._error = error

    async def run(self) -> GCResult:
        self.run_count += 1
        raise self._error


class SessionRecorder:
    """Stands in for the db session opener; counts opened sessions."""

    def __init__(self) -> None:
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def __call__(self):
        self.opened += 1
        try:
            yield object()
        finally:
            self.closed += 1


@pytest.fixture
def gc_config() -> GCConfig:
    return GCConfig(enabled=True, run_on_startup=True, interval_seconds=1)


def _scheduler(config: GCConfig, *tasks: GCTask, sessions: SessionRecorder | None = None):
    return SweepScheduler(
        config,
        open_session=sessions or SessionRecorder(),
        build_tasks=lambda _db: list(tasks),
    )


class TestRunOnce:
    async def test_runs_all_tasks_in_order(self, gc_config):
        task1 = FakeGCTask("task1", cleaned=2)
        task2 = FakeGCTask("task2", cleaned=3)

        results = await _scheduler(gc_config, task1, task2).run_once()

        assert [r.task_name for r in results] == ["task1", "task2"]
        assert [r.cleaned_count for r in results] == [2, 3]
        assert task1.run_count == task2.run_count == 1

    async def test_continues_after_task_failure(self, gc_config):
        task1 = FakeGCTask("task1", cleaned=1)
        task2 = RaisingGCTask("task2", RuntimeError("store down"))
        task3 = FakeGCTask("task3", cleaned=2)

        results = await _scheduler(gc_config, task1, task2, task3).run_once()

        assert len(results) == 3
        assert results[1].task_name == "task2"
        assert results[1].success is False
        assert "store down" in results[1].errors[0]
        assert results[2].cleaned_count == 2

    async def test_collects_item_errors(self, gc_config):
        scheduler = _scheduler(gc_config, FakeGCTask("task1", cleaned=1, errors=["e1", "e2"]))

        [result] = await scheduler.run_once()

        assert result.errors == ["e1", "e2"]
        assert not result.success

    async def test_one_session_per_cycle(self, gc_config):
        sessions = SessionRecorder()
        built_on: list[object] = []

        def build(db_session):
            built_on.append(db_session)
            return [FakeGCTask("task1")]

        scheduler = SweepScheduler(gc_config, open_session=sessions, build_tasks=build)

        await scheduler.run_once()
        await scheduler.run_once()

        assert sessions.opened == sessions.closed == 2
        assert len(built_on) == 2
        assert built_on[0] is not built_on[1]

    async def test_cycles_do_not_overlap(self, gc_config):
        active = 0
        peak = 0

        class SlowTask(FakeGCTask):
            async def run(self) -> GCResult:
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return GCResult()

        scheduler = _scheduler(gc_config, SlowTask("slow"))

        await asyncio.gather(scheduler.run_once(), scheduler.run_once())

        assert peak == 1


class TestLoop:
    async def test_start_stop(self, gc_config):
        task = FakeGCTask("task1")
        gc_config.interval_seconds = 0.05
        scheduler = _scheduler(gc_config, task)

        assert not scheduler.is_running
        await scheduler.start()
        assert scheduler.is_running

        await asyncio.sleep(0.2)

        await scheduler.stop()
        assert not scheduler.is_running
        assert task.run_count >= 2

    async def test_without_run_on_startup_first_cycle_waits(self, gc_config):
        task = FakeGCTask("task1")
        gc_config.run_on_startup = False
        gc_config.interval_seconds = 10
        scheduler = _scheduler(gc_config, task)

        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert task.run_count == 0

    async def test_start_is_idempotent(self, gc_config):
        task = FakeGCTask("task1")
        gc_config.interval_seconds = 10
        scheduler = _scheduler(gc_config, task)

        await scheduler.start()
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert task.run_count == 1

    async def test_failing_cycle_keeps_loop_alive(self, gc_config):
        gc_config.interval_seconds = 0.02
        calls = 0

        def build(_db):
            nonlocal calls
            calls += 1
            raise RuntimeError("cannot build")

        scheduler = SweepScheduler(gc_config, open_session=SessionRecorder(), build_tasks=build)

        await scheduler.start()
        await asyncio.sleep(0.1)
        assert scheduler.is_running
        await scheduler.stop()

        assert calls >= 2

    async def test_stop_without_start(self, gc_config):
        scheduler = _scheduler(gc_config)

        await scheduler.stop()
        await scheduler.stop()
        assert not scheduler.is_running


class TestLifecycle:
    @pytest.fixture
    def use_settings(self, monkeypatch: pytest.MonkeyPatch):
        def use(settings: Settings) -> None:
            monkeypatch.setattr(lifecycle, "get_settings", lambda: settings)
            monkeypatch.setattr(lifecycle, "get_media_store", lambda: FakeMediaStore())

        return use

    def test_builds_enabled_sweeps_in_order(self, use_settings):
        use_settings(Settings())

        tasks = lifecycle.build_sweep_tasks(db_session=object())

        assert [type(t) for t in tasks] == [IdleCaptureSessionGC, ExpiredPairingCodeGC]

    def test_disabled_sweep_is_not_built(self, use_settings):
        use_settings(Settings(gc={"idle_capture_session": {"enabled": False}}))

        tasks = lifecycle.build_sweep_tasks(db_session=object())

        assert [t.name for t in tasks] == ["expired_pairing_code"]

    async def test_disabled_scheduler_is_created_but_not_started(self, use_settings):
        use_settings(Settings(gc={"enabled": False}))

        scheduler = await lifecycle.init_gc_scheduler()

        assert isinstance(scheduler, SweepScheduler)
        assert lifecycle.get_gc_scheduler() is scheduler
        assert not scheduler.is_running

        await lifecycle.shutdown_gc_scheduler()
        assert lifecycle.get_gc_scheduler() is None
