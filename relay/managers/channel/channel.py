"""ChannelManager - issues channels and their agent key."""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from relay.models.api_key import ApiKeyLabel
from relay.models.channel import Channel
from relay.services.api_key import ApiKeyService
from relay.utils.datetime import utcnow

logger = structlog.get_logger()


class ChannelManager:
    """Manages channel creation."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._log = logger.bind(manager="channel")

    async def create(self) -> tuple[Channel, str]:
        """Create a channel together with its agent key.

        The channel row and the key row are committed in one transaction,
        so a channel never exists without a key that can reach it.

        Returns:
            Tuple of (channel, plaintext agent key). The plaintext is not
            stored anywhere and cannot be recovered later.
        """
        now = utcnow()
        channel = Channel(id=uuid.uuid4().hex, created_at=now)

        plaintext, _ = ApiKeyService.generate_key()
        api_key = ApiKeyService.build_record(plaintext, channel.id, ApiKeyLabel.AGENT)

        self._db.add(channel)
        self._db.add(api_key)
        await self._db.commit()

        self._log.info("channel.create", channel_id=channel.id, key_id=api_key.id)
        return channel, plaintext
