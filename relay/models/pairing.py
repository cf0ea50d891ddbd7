"""Pairing code data model.

A pairing code is a short-lived dead-drop: the agent leaves an opaque
``encrypted_channel_key`` and the relay pre-mints a client key; whoever
redeems the code first (and in time) receives both.
"""

from datetime import datetime

from sqlalchemy import Text
from sqlmodel import Field, SQLModel

from relay.utils.datetime import utcnow


class PairingCode(SQLModel, table=True):
    """Single-use, time-limited pairing code.

    ``used`` is a one-way latch. ``api_key`` is the plaintext client key to
    be handed out once on redemption; it is blanked when the code is
    redeemed. Rows are purged by the pairing-code sweep once they are past
    expiry by the retention window.
    """

    __tablename__ = "pairing_codes"

    code: str = Field(primary_key=True)  # 6 digits, zero-padded
    channel_id: str = Field(foreign_key="channels.id", index=True)
    api_key: str = Field()
    encrypted_channel_key: str = Field(sa_type=Text)  # opaque to the relay
    expires_at: datetime = Field(index=True)
    used: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
