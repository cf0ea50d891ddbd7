"""Background sweep loop.

Every cycle opens one db session, builds the enabled sweeps on it and runs
them in order. Cycles never overlap. A sweep that crashes is recorded as a
failed result and the remaining sweeps still run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from relay.services.gc.base import GCResult, GCTask

if TYPE_CHECKING:
    from relay.config import GCConfig

logger = structlog.get_logger()

SessionOpener = Callable[[], AbstractAsyncContextManager[AsyncSession]]
TaskBuilder = Callable[[AsyncSession], list[GCTask]]


class SweepScheduler:
    """Runs the relay's sweeps on a fixed interval.

    Usage:
        scheduler = SweepScheduler(
            settings.gc,
            open_session=get_async_session,
            build_tasks=build_sweep_tasks,
        )
        await scheduler.run_once()
        await scheduler.start()
        await scheduler.stop()
    """

    def __init__(
        self,
        config: "GCConfig",
        *,
        open_session: SessionOpener,
        build_tasks: TaskBuilder,
    ) -> None:
        self._config = config
        self._open_session = open_session
        self._build_tasks = build_tasks
        self._log = logger.bind(service="sweep_scheduler")

        self._cycle_lock = asyncio.Lock()
        self._stop_event: asyncio.Event | None = None
        self._loop_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def run_once(self) -> list[GCResult]:
        """Run one cycle now, after any cycle already in progress."""
        async with self._cycle_lock:
            async with self._open_session() as db_session:
                results = [await self._run_task(task) for task in self._build_tasks(db_session)]

        self._log.info(
            "gc.cycle.complete",
            tasks=len(results),
            cleaned=sum(r.cleaned_count for r in results),
            errors=sum(len(r.errors) for r in results),
        )
        return results

    async def _run_task(self, task: GCTask) -> GCResult:
        log = self._log.bind(task=task.name)

        try:
            result = await task.run()
        except Exception as e:
            log.exception("gc.task.failed", error=str(e))
            result = GCResult()
            result.add_error(f"Task failed: {e}")
        else:
            for error in result.errors:
                log.warning("gc.task.item_error", error=error)

        result.task_name = task.name
        log.info(
            "gc.task.complete",
            cleaned=result.cleaned_count,
            skipped=result.skipped_count,
            errors=len(result.errors),
        )
        return result

    async def start(self) -> None:
        """Start the background loop.

        The first cycle runs immediately when ``run_on_startup`` is set,
        otherwise after one interval.
        """
        if self.is_running:
            self._log.warning("gc.scheduler.already_running")
            return

        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._loop(self._stop_event))
        self._log.info(
            "gc.scheduler.started",
            interval_seconds=self._config.interval_seconds,
            run_on_startup=self._config.run_on_startup,
        )

    async def stop(self) -> None:
        """Stop the loop, letting a cycle in progress finish first."""
        if self._loop_task is None:
            return

        self._stop_event.set()
        await self._loop_task
        self._loop_task = None
        self._log.info("gc.scheduler.stopped")

    async def _loop(self, stop_event: asyncio.Event) -> None:
        if not self._config.run_on_startup and await self._sleep(stop_event):
            return

        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                self._log.exception("gc.cycle.failed", error=str(e))

            if await self._sleep(stop_event):
                return

    async def _sleep(self, stop_event: asyncio.Event) -> bool:
        """Wait one interval; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self._config.interval_seconds)
        except TimeoutError:
            return False
        return True
