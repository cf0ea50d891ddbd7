"""Channel data model.

A channel is the tenant boundary: it owns API keys, pairing codes,
mailbox messages and capture sessions. Channels are created once and
never mutated.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel

from relay.utils.datetime import utcnow


class Channel(SQLModel, table=True):
    """Channel - root identity for a pair of parties."""

    __tablename__ = "channels"

    id: str = Field(primary_key=True)
    created_at: datetime = Field(default_factory=utcnow)
