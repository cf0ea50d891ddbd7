"""Sweep wiring for the FastAPI lifespan."""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from relay.api.dependencies import get_media_store
from relay.config import get_settings
from relay.db.session import get_async_session
from relay.services.gc.base import GCTask
from relay.services.gc.scheduler import SweepScheduler
from relay.services.gc.tasks import ExpiredPairingCodeGC, IdleCaptureSessionGC

logger = structlog.get_logger()

_gc_scheduler: SweepScheduler | None = None


def build_sweep_tasks(db_session: AsyncSession) -> list[GCTask]:
    """Build the enabled sweeps for one cycle, in run order."""
    settings = get_settings()
    tasks: list[GCTask] = []

    if settings.gc.idle_capture_session.enabled:
        tasks.append(IdleCaptureSessionGC(get_media_store(), db_session, settings.capture))

    if settings.gc.expired_pairing_code.enabled:
        tasks.append(ExpiredPairingCodeGC(db_session, settings.pairing))

    return tasks


async def init_gc_scheduler() -> SweepScheduler:
    """Create the scheduler and start its loop if sweeps are enabled.

    Called during lifespan startup, after the database and media store
    are ready.
    """
    global _gc_scheduler

    gc_config = get_settings().gc

    logger.info(
        "gc.init",
        enabled=gc_config.enabled,
        interval_seconds=gc_config.interval_seconds,
        idle_capture_session=gc_config.idle_capture_session.enabled,
        expired_pairing_code=gc_config.expired_pairing_code.enabled,
    )

    _gc_scheduler = SweepScheduler(
        gc_config,
        open_session=get_async_session,
        build_tasks=build_sweep_tasks,
    )

    if gc_config.enabled:
        await _gc_scheduler.start()
    else:
        logger.info("gc.background_disabled")

    return _gc_scheduler


async def shutdown_gc_scheduler() -> None:
    """Stop the scheduler. Called during lifespan shutdown."""
    global _gc_scheduler

    if _gc_scheduler is not None:
        await _gc_scheduler.stop()
        _gc_scheduler = None


def get_gc_scheduler() -> SweepScheduler | None:
    return _gc_scheduler
