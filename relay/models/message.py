"""Mailbox message data model.

Messages are immutable once written. ``body`` and ``nonce`` are ciphertext
produced and consumed by the parties; the relay stores and returns them
verbatim and never decodes them.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Text
from sqlmodel import Field, SQLModel

from relay.utils.datetime import utcnow


class Message(SQLModel, table=True):
    """Encrypted message in a channel mailbox.

    Ordering key is ``(created_at, seq)``: ``seq`` is the insertion
    sequence and breaks ties between equal timestamps.
    """

    __tablename__ = "messages"

    seq: Optional[int] = Field(default=None, primary_key=True)
    id: str = Field(unique=True, index=True)
    channel_id: str = Field(foreign_key="channels.id", index=True)
    sender: str = Field()
    content_type: Optional[str] = Field(default=None)
    body: str = Field(sa_type=Text)
    nonce: str = Field(sa_type=Text)
    created_at: datetime = Field(default_factory=utcnow, index=True)
