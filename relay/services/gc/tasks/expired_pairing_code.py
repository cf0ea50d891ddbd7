"""ExpiredPairingCodeGC - purge pairing codes long past expiry."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.pairing import PairingCode
from relay.services.gc.base import GCResult, GCTask
from relay.utils.datetime import utcnow

if TYPE_CHECKING:
    from relay.config import PairingConfig

logger = structlog.get_logger()


class ExpiredPairingCodeGC(GCTask):
    """Delete pairing code rows whose expiry is older than the retention window.

    Until purged, a used or expired code still answers 410 on redemption;
    after that it is simply unknown (404) and its digits can be reissued.
    """

    name = "expired_pairing_code"

    def __init__(self, db_session: AsyncSession, config: "PairingConfig") -> None:
        self._db = db_session
        self._config = config
        self._log = logger.bind(gc_task=self.name)

    async def run(self) -> GCResult:
        result = GCResult(task_name=self.name)

        await self._db.rollback()

        cutoff = utcnow() - timedelta(seconds=self._config.retention_seconds)
        db_result = await self._db.execute(
            delete(PairingCode).where(PairingCode.expires_at < cutoff)
        )
        await self._db.commit()

        result.cleaned_count = db_result.rowcount or 0
        if result.cleaned_count:
            self._log.info("gc.expired_pairing_code.purged", count=result.cleaned_count)

        return result
