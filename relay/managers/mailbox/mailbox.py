"""MailboxManager - append-only encrypted message log per channel."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from relay.errors import InvalidRequestError, NotFoundError
from relay.models.message import Message
from relay.utils.datetime import parse_iso, utcnow

logger = structlog.get_logger()


class MailboxManager:
    """Manages the message log of a channel.

    Any key of a channel may post, list and delete; ``sender`` is a
    self-declared label and is not checked against the key.
    """

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._log = logger.bind(manager="mailbox")

    async def _next_timestamp(self, channel_id: str) -> datetime:
        """Return a creation time strictly after the channel's latest message."""
        now = utcnow()
        result = await self._db.execute(
            select(func.max(Message.created_at)).where(Message.channel_id == channel_id)
        )
        latest = result.scalar_one_or_none()
        if latest is not None and now <= latest:
            # Clock did not advance (or stepped back); keep the log ordered
            now = latest + timedelta(microseconds=1)
        return now

    async def post(
        self,
        channel_id: str,
        *,
        sender: str | None,
        body: str | None,
        nonce: str | None,
        content_type: str | None = None,
    ) -> Message:
        """Append a message to the channel log.

        Raises:
            InvalidRequestError: If sender, body or nonce is missing
        """
        if not sender or not body or not nonce:
            raise InvalidRequestError("sender, body, and nonce are required")

        message = Message(
            id=uuid.uuid4().hex,
            channel_id=channel_id,
            sender=sender,
            content_type=content_type,
            body=body,
            nonce=nonce,
            created_at=await self._next_timestamp(channel_id),
        )
        self._db.add(message)
        await self._db.commit()
        await self._db.refresh(message)

        self._log.info(
            "mailbox.post",
            channel_id=channel_id,
            message_id=message.id,
            sender=sender,
        )
        return message

    async def list(self, channel_id: str, since: str | None = None) -> list[Message]:
        """List messages in ascending creation order.

        Args:
            channel_id: Caller's channel
            since: Optional ISO-8601 cursor; only messages created strictly
                after it are returned

        Raises:
            InvalidRequestError: If since is not an ISO-8601 timestamp
        """
        query = select(Message).where(Message.channel_id == channel_id)

        if since:
            try:
                cursor = parse_iso(since)
            except ValueError:
                raise InvalidRequestError(
                    "since must be an ISO-8601 timestamp",
                    details={"field": "since", "value": since},
                ) from None
            query = query.where(Message.created_at > cursor)

        query = query.order_by(Message.created_at.asc(), Message.seq.asc())
        result = await self._db.execute(query)
        return list(result.scalars().all())

    async def delete(self, channel_id: str, message_id: str) -> None:
        """Delete one message of the caller's channel.

        A message of another channel is reported exactly like a missing one.

        Raises:
            NotFoundError: If no such message exists in this channel
        """
        result = await self._db.execute(
            delete(Message).where(
                Message.id == message_id,
                Message.channel_id == channel_id,
            )
        )
        if result.rowcount == 0:
            await self._db.rollback()
            raise NotFoundError("Message not found")

        await self._db.commit()
        self._log.info("mailbox.delete", channel_id=channel_id, message_id=message_id)
