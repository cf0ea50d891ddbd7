"""CaptureSessionManager - manages capture session lifecycle.

A capture session spans two stores: the relational row (status, counters,
finalize token) and the media store (uploaded files plus the manifest).
Neither store participates in the other's transactions, so every compound
step writes in a fixed order:

- create:   manifest -> row
- upload:   blob -> manifest -> row counters
- finalize: manifest ``endedAt`` -> row status

A failure part-way leaves the earlier writes in place. Manifest steps are
skipped (with a warning) when the manifest object is missing.
"""

from __future__ import annotations

import hmac
import secrets
import uuid
from datetime import datetime

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from relay.concurrency.locks import get_capture_session_lock
from relay.config import CaptureConfig, get_settings
from relay.errors import ForbiddenError, InvalidRequestError, NotFoundError
from relay.managers.capture.grants import CapabilityGrant, FinalizeGrant, OwnerGrant
from relay.managers.capture.manifest import (
    CaptureFile,
    CaptureManifest,
    read_manifest,
    write_manifest,
)
from relay.models.capture import CaptureSession, CaptureSessionStatus
from relay.storage.base import (
    MediaStore,
    StoredObject,
    manifest_key,
    session_object_key,
    session_prefix,
)
from relay.utils.datetime import to_iso, utcnow
from relay.validators.filename import (
    content_type_for,
    is_key_segment,
    validate_capture_filename,
)

logger = structlog.get_logger()

DEFAULT_CAPTURE_SOURCE = "unknown"


class CaptureSessionManager:
    """Manages capture sessions of a channel."""

    def __init__(
        self,
        db_session: AsyncSession,
        media_store: MediaStore,
        config: CaptureConfig | None = None,
    ) -> None:
        self._db = db_session
        self._store = media_store
        self._config = config or get_settings().capture
        self._log = logger.bind(manager="capture")

    async def _load(
        self,
        session_id: str,
        *,
        channel_id: str | None = None,
        active_only: bool = False,
    ) -> CaptureSession | None:
        """Read a session row, bypassing the identity map."""
        query = select(CaptureSession).where(CaptureSession.id == session_id)
        if channel_id is not None:
            query = query.where(CaptureSession.channel_id == channel_id)
        if active_only:
            query = query.where(CaptureSession.status == CaptureSessionStatus.ACTIVE)

        result = await self._db.execute(query.execution_options(populate_existing=True))
        return result.scalars().first()

    async def _complete(
        self,
        session: CaptureSession,
        now: datetime,
        *,
        touch_activity: bool,
    ) -> bool:
        """Mark an active session completed. Caller holds the session lock.

        Returns:
            False if the row was no longer active when updated
        """
        manifest = await read_manifest(self._store, session.channel_id, session.id)
        if manifest is None:
            self._log.warning(
                "capture.manifest_missing",
                session_id=session.id,
                step="finalize",
            )
        else:
            manifest.ended_at = to_iso(now)
            await write_manifest(self._store, manifest)

        values: dict = {"status": CaptureSessionStatus.COMPLETED, "ended_at": now}
        if touch_activity:
            values["last_activity_at"] = now

        result = await self._db.execute(
            update(CaptureSession)
            .where(
                CaptureSession.id == session.id,
                CaptureSession.status == CaptureSessionStatus.ACTIVE,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._db.commit()
        return result.rowcount == 1

    async def create(self, channel_id: str) -> CaptureSession:
        """Start a capture session with an empty manifest.

        Returns:
            The new session; ``finalize_token`` is returned to the creator
            only here
        """
        now = utcnow()
        session = CaptureSession(
            id=uuid.uuid4().hex,
            channel_id=channel_id,
            status=CaptureSessionStatus.ACTIVE,
            file_count=0,
            finalize_token=secrets.token_urlsafe(32),
            started_at=now,
            last_activity_at=now,
        )

        await write_manifest(
            self._store,
            CaptureManifest(
                session_id=session.id,
                channel_id=channel_id,
                started_at=to_iso(now),
            ),
        )

        self._db.add(session)
        await self._db.commit()
        await self._db.refresh(session)

        self._log.info("capture.create", channel_id=channel_id, session_id=session.id)
        return session

    async def upload(
        self,
        channel_id: str,
        session_id: str,
        *,
        filename: str | None,
        started_at: str | None,
        data: bytes,
        source: str | None = None,
    ) -> int:
        """Store one file in an active session of the caller's channel.

        Re-uploading a filename overwrites the object and appends another
        manifest entry.

        Returns:
            Number of bytes stored

        Raises:
            InvalidRequestError: If filename or started_at is missing, or the
                filename is not a single safe path segment
            NotFoundError: If the session is not owned by the caller or is
                no longer active
        """
        if not filename or not started_at:
            raise InvalidRequestError(
                "X-Capture-Filename and X-Capture-Started-At headers are required"
            )
        validate_capture_filename(filename)
        source = source or DEFAULT_CAPTURE_SOURCE

        if await self._load(session_id, channel_id=channel_id, active_only=True) is None:
            raise NotFoundError("Session not found or not active")

        lock = get_capture_session_lock(session_id)
        async with lock:
            # Re-check: may have been finalized while we waited
            session = await self._load(session_id, channel_id=channel_id, active_only=True)
            if session is None:
                raise NotFoundError("Session not found or not active")

            content_type = content_type_for(filename)
            await self._store.put(
                session_object_key(channel_id, session_id, filename),
                data,
                content_type=content_type,
            )

            manifest = await read_manifest(self._store, channel_id, session_id)
            if manifest is None:
                self._log.warning(
                    "capture.manifest_missing",
                    session_id=session_id,
                    step="upload",
                )
            else:
                manifest.files.append(
                    CaptureFile(
                        name=filename,
                        type=content_type,
                        started_at=started_at,
                        size=len(data),
                        source=source,
                    )
                )
                await write_manifest(self._store, manifest)

            await self._db.execute(
                update(CaptureSession)
                .where(CaptureSession.id == session_id)
                .values(
                    file_count=CaptureSession.file_count + 1,
                    last_activity_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            await self._db.commit()

        self._log.info(
            "capture.upload",
            session_id=session_id,
            filename=filename,
            size=len(data),
            content_type=content_type,
        )
        return len(data)

    async def finalize(self, grant: FinalizeGrant, session_id: str) -> datetime:
        """Finalize an active session.

        Args:
            grant: Owner (bearer key of the session's channel) or capability
                (the session's finalize token)
            session_id: Session to finalize

        Returns:
            The ``ended_at`` stamped on the session

        Raises:
            NotFoundError: Owner grant, session not owned or not active
            ForbiddenError: Capability grant, token does not match an active
                session
        """
        if isinstance(grant, OwnerGrant):
            return await self._finalize_as_owner(grant.channel_id, session_id)
        if isinstance(grant, CapabilityGrant):
            return await self._finalize_with_token(grant.token, session_id)
        raise TypeError(f"Unsupported finalize grant: {grant!r}")

    async def _finalize_as_owner(self, channel_id: str, session_id: str) -> datetime:
        if await self._load(session_id, channel_id=channel_id, active_only=True) is None:
            raise NotFoundError("Session not found or not active")

        async with get_capture_session_lock(session_id):
            session = await self._load(session_id, channel_id=channel_id, active_only=True)
            if session is None:
                raise NotFoundError("Session not found or not active")

            now = utcnow()
            if not await self._complete(session, now, touch_activity=True):
                raise NotFoundError("Session not found or not active")

        self._log.info("capture.finalize", session_id=session_id, via="owner")
        return now

    async def _finalize_with_token(self, token: str, session_id: str) -> datetime:
        def token_matches(session: CaptureSession | None) -> bool:
            return session is not None and hmac.compare_digest(
                session.finalize_token.encode(), token.encode()
            )

        if not token_matches(await self._load(session_id, active_only=True)):
            raise ForbiddenError("Invalid token or session not active")

        async with get_capture_session_lock(session_id):
            session = await self._load(session_id, active_only=True)
            if not token_matches(session):
                raise ForbiddenError("Invalid token or session not active")

            now = utcnow()
            if not await self._complete(session, now, touch_activity=True):
                raise ForbiddenError("Invalid token or session not active")

        self._log.info("capture.finalize", session_id=session_id, via="token")
        return now

    async def list(self, channel_id: str, status: str | None = None) -> list[CaptureSession]:
        """List sessions of a channel, newest first.

        Raises:
            InvalidRequestError: If status is not a known session status
        """
        query = select(CaptureSession).where(CaptureSession.channel_id == channel_id)

        if status:
            try:
                status_filter = CaptureSessionStatus(status)
            except ValueError:
                raise InvalidRequestError(
                    f"Invalid status: {status}",
                    details={"field": "status", "value": status},
                ) from None
            query = query.where(CaptureSession.status == status_filter)

        query = query.order_by(CaptureSession.started_at.desc())
        result = await self._db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def get_manifest(self, channel_id: str, session_id: str) -> StoredObject:
        """Fetch the stored manifest bytes of a session of this channel."""
        if not is_key_segment(session_id):
            raise NotFoundError("Manifest not found")
        obj = await self._store.get(manifest_key(channel_id, session_id))
        if obj is None:
            raise NotFoundError("Manifest not found")
        return obj

    async def get_file(self, channel_id: str, session_id: str, filename: str) -> StoredObject:
        """Fetch one uploaded file of a session of this channel."""
        validate_capture_filename(filename)
        if not is_key_segment(session_id):
            raise NotFoundError("File not found")
        obj = await self._store.get(session_object_key(channel_id, session_id, filename))
        if obj is None:
            raise NotFoundError("File not found")
        return obj

    async def delete(self, channel_id: str, session_id: str) -> None:
        """Delete a session, its files and its manifest.

        Raises:
            NotFoundError: If the session is not owned by the caller
        """
        if await self._load(session_id, channel_id=channel_id) is None:
            raise NotFoundError("Session not found")

        async with get_capture_session_lock(session_id):
            session = await self._load(session_id, channel_id=channel_id)
            if session is None:
                raise NotFoundError("Session not found")

            keys = await self._store.list_keys(session_prefix(channel_id, session_id))
            if keys:
                await self._store.delete(keys)

            await self._db.delete(session)
            await self._db.commit()

        self._log.info(
            "capture.delete",
            channel_id=channel_id,
            session_id=session_id,
            objects_deleted=len(keys),
        )

    async def list_idle_session_ids(self, cutoff: datetime) -> list[str]:
        """IDs of active sessions whose last activity is before ``cutoff``."""
        result = await self._db.execute(
            select(CaptureSession.id).where(
                CaptureSession.status == CaptureSessionStatus.ACTIVE,
                CaptureSession.last_activity_at < cutoff,
            )
        )
        return list(result.scalars().all())

    async def auto_finalize(self, session_id: str, *, cutoff: datetime) -> bool:
        """Finalize one idle session.

        The session is re-read under its lock and skipped if it was
        finalized, deleted, or touched since it was selected.

        Returns:
            True if finalized, False if skipped
        """
        async with get_capture_session_lock(session_id):
            session = await self._load(session_id)

            if session is None or not session.is_active:
                self._log.debug("capture.auto_finalize.skip.inactive", session_id=session_id)
                return False

            if session.last_activity_at >= cutoff:
                self._log.debug(
                    "capture.auto_finalize.skip.recent_activity",
                    session_id=session_id,
                    last_activity_at=session.last_activity_at.isoformat(),
                )
                return False

            return await self._complete(session, utcnow(), touch_activity=False)

    @property
    def idle_timeout_seconds(self) -> int:
        return self._config.idle_timeout_seconds
