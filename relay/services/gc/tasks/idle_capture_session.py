"""IdleCaptureSessionGC - auto-finalize capture sessions without recent uploads."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from relay.managers.capture import CaptureSessionManager
from relay.services.gc.base import GCResult, GCTask
from relay.utils.datetime import utcnow

if TYPE_CHECKING:
    from relay.config import CaptureConfig
    from relay.storage.base import MediaStore

logger = structlog.get_logger()


class IdleCaptureSessionGC(GCTask):
    """Finalize idle capture sessions.

    Trigger condition:
        status = 'active' AND last_activity_at < now - idle_timeout

    Action (per candidate, under the session lock):
        1. Re-read; skip if no longer active or no longer idle
        2. Stamp manifest ``endedAt`` (best-effort)
        3. Conditionally set status=completed, ended_at=now
    """

    name = "idle_capture_session"

    def __init__(
        self,
        media_store: "MediaStore",
        db_session: AsyncSession,
        config: "CaptureConfig | None" = None,
    ) -> None:
        self._db = db_session
        self._log = logger.bind(gc_task=self.name)
        self._capture_mgr = CaptureSessionManager(db_session, media_store, config)

    async def run(self) -> GCResult:
        result = GCResult(task_name=self.name)

        # Fresh transaction so SQLite does not serve a stale snapshot
        await self._db.rollback()

        cutoff = utcnow() - timedelta(seconds=self._capture_mgr.idle_timeout_seconds)
        session_ids = await self._capture_mgr.list_idle_session_ids(cutoff)

        self._log.info("gc.idle_capture_session.found", count=len(session_ids))

        for session_id in session_ids:
            try:
                if await self._capture_mgr.auto_finalize(session_id, cutoff=cutoff):
                    result.cleaned_count += 1
                    self._log.info("gc.idle_capture_session.cleaned", session_id=session_id)
                else:
                    result.skipped_count += 1
            except Exception as e:
                await self._db.rollback()
                self._log.exception(
                    "gc.idle_capture_session.item_error",
                    session_id=session_id,
                    error=str(e),
                )
                result.add_error(f"capture session {session_id}: {e}")

        return result
