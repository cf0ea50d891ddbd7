"""API Key data model.

Stores hashed bearer keys for channel authentication.
Plaintext keys are never stored here, only SHA-256 hashes.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from relay.utils.datetime import utcnow


class ApiKeyLabel:
    """Well-known key labels."""

    AGENT = "agent"  # issued with the channel
    CLIENT = "client"  # issued by pairing-code redemption (default)


class ApiKey(SQLModel, table=True):
    """Bearer key bound to exactly one channel.

    Revocation is soft: a non-null ``revoked_at`` makes the key fail
    authentication while keeping the row for audit.
    """

    __tablename__ = "api_keys"

    id: str = Field(primary_key=True)
    channel_id: str = Field(foreign_key="channels.id", index=True)
    key_hash: str = Field(unique=True, index=True)  # SHA-256 hex digest
    label: str = Field(default=ApiKeyLabel.CLIENT)
    created_at: datetime = Field(default_factory=utcnow)
    revoked_at: Optional[datetime] = Field(default=None)
