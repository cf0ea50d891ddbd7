"""Capture session data model.

The relational row is the fast-path index for a capture session; the
manifest in the media store is the client-facing record of its files.

State machine:
    [created] --(upload)--> active (last_activity_at bumped)
    active --(explicit finalize | idle timeout)--> completed (terminal)
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from relay.utils.datetime import utcnow


class CaptureSessionStatus(str, Enum):
    """Capture session lifecycle status."""

    ACTIVE = "active"
    COMPLETED = "completed"


class CaptureSession(SQLModel, table=True):
    """Capture session - a bounded window of media uploads."""

    __tablename__ = "capture_sessions"

    id: str = Field(primary_key=True)
    channel_id: str = Field(foreign_key="channels.id", index=True)

    status: CaptureSessionStatus = Field(default=CaptureSessionStatus.ACTIVE, index=True)
    file_count: int = Field(default=0)

    # Capability secret for unauthenticated finalize; meaningful while active
    finalize_token: str = Field()

    # Timestamps
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = Field(default=None)
    last_activity_at: datetime = Field(default_factory=utcnow, index=True)

    @property
    def is_active(self) -> bool:
        return self.status == CaptureSessionStatus.ACTIVE
