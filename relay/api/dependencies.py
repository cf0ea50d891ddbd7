"""FastAPI dependencies for the relay API.

Provides dependency injection for:
- Database sessions
- Media store
- Managers (Channel, Pairing, Mailbox, CaptureSession)
- Authentication and finalize grants
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

import structlog
from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from relay.config import get_settings
from relay.db.session import get_session_dependency
from relay.errors import UnauthorizedError
from relay.managers.capture import (
    CapabilityGrant,
    CaptureSessionManager,
    FinalizeGrant,
    OwnerGrant,
)
from relay.managers.channel import ChannelManager
from relay.managers.mailbox import MailboxManager
from relay.managers.pairing import PairingManager
from relay.services.api_key import ApiKeyService, AuthContext
from relay.storage.base import MediaStore
from relay.storage.local import LocalMediaStore
from relay.storage.s3 import MinioMediaStore

logger = structlog.get_logger()


@lru_cache
def get_media_store() -> MediaStore:
    """Get cached media store instance.

    One store (and one MinIO client) per process.
    """
    settings = get_settings()
    media = settings.media
    if media.backend == "local":
        return LocalMediaStore(media.local.root_path)
    elif media.backend == "minio":
        return MinioMediaStore(media.minio)
    else:
        raise ValueError(f"Unsupported media backend: {media.backend}")


SessionDep = Annotated[AsyncSession, Depends(get_session_dependency)]
MediaStoreDep = Annotated[MediaStore, Depends(get_media_store)]


async def get_channel_manager(session: SessionDep) -> ChannelManager:
    return ChannelManager(db_session=session)


async def get_pairing_manager(session: SessionDep) -> PairingManager:
    return PairingManager(db_session=session, config=get_settings().pairing)


async def get_mailbox_manager(session: SessionDep) -> MailboxManager:
    return MailboxManager(db_session=session)


async def get_capture_manager(
    session: SessionDep,
    media_store: MediaStoreDep,
) -> CaptureSessionManager:
    """Get CaptureSessionManager with injected dependencies."""
    return CaptureSessionManager(
        db_session=session,
        media_store=media_store,
        config=get_settings().capture,
    )


async def get_optional_auth(request: Request, session: SessionDep) -> AuthContext | None:
    """Resolve the bearer key, if any, without failing the request."""
    token = ApiKeyService.parse_bearer(request.headers.get("Authorization"))
    return await ApiKeyService.authenticate(session, token)


async def require_auth(
    auth: Annotated[AuthContext | None, Depends(get_optional_auth)],
) -> AuthContext:
    """Require a valid bearer key.

    Raises:
        UnauthorizedError: If the header is missing, malformed or matches
            no active key
    """
    if auth is None:
        raise UnauthorizedError()
    return auth


async def get_finalize_grant(
    auth: Annotated[AuthContext | None, Depends(get_optional_auth)],
    token: Annotated[str | None, Query()] = None,
) -> FinalizeGrant:
    """Resolve finalize credentials into exactly one grant.

    A valid bearer key wins over ``?token=``; a request with neither is
    unauthorized.
    """
    if auth is not None:
        return OwnerGrant(channel_id=auth.channel_id)
    if token:
        return CapabilityGrant(token=token)
    raise UnauthorizedError()


# Type aliases for cleaner dependency injection
AuthDep = Annotated[AuthContext, Depends(require_auth)]
FinalizeGrantDep = Annotated[FinalizeGrant, Depends(get_finalize_grant)]
ChannelManagerDep = Annotated[ChannelManager, Depends(get_channel_manager)]
PairingManagerDep = Annotated[PairingManager, Depends(get_pairing_manager)]
MailboxManagerDep = Annotated[MailboxManager, Depends(get_mailbox_manager)]
CaptureManagerDep = Annotated[CaptureSessionManager, Depends(get_capture_manager)]
