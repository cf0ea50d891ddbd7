"""Media store base class - object storage abstraction.

The media store holds capture-session payloads: uploaded files and one
JSON manifest per session. It knows nothing about sessions, channels or
authentication; it only stores opaque objects under string keys.

Key layout (shared by every backend):
    {channel_id}/{session_id}/manifest.json
    {channel_id}/{session_id}/{filename}

so everything a session owns can be found and deleted by prefix.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from relay.validators.filename import MANIFEST_FILENAME


def session_prefix(channel_id: str, session_id: str) -> str:
    """Key prefix covering every object of a capture session."""
    return f"{channel_id}/{session_id}/"


def session_object_key(channel_id: str, session_id: str, name: str) -> str:
    """Key of one object inside a capture session."""
    return f"{session_prefix(channel_id, session_id)}{name}"


def manifest_key(channel_id: str, session_id: str) -> str:
    """Key of the session manifest."""
    return session_object_key(channel_id, session_id, MANIFEST_FILENAME)


@dataclass
class StoredObject:
    """An object read back from the media store."""

    key: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


class MediaStore(ABC):
    """Abstract object store used by the capture session manager.

    Implementations must make ``put`` replace an existing object whole
    (no partial reads of a half-written object) and must treat deleting
    a missing key as success.
    """

    async def startup(self) -> None:
        """Prepare the backend (create bucket/root directory). Idempotent."""

    async def shutdown(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def put(self, key: str, data: bytes, *, content_type: str) -> None:
        """Store ``data`` under ``key``, replacing any existing object."""
        ...

    @abstractmethod
    async def get(self, key: str) -> StoredObject | None:
        """Read an object, or None if it does not exist."""
        ...

    @abstractmethod
    async def list_keys(self, prefix: str) -> list[str]:
        """List every key starting with ``prefix`` (recursive)."""
        ...

    @abstractmethod
    async def delete(self, keys: list[str]) -> None:
        """Delete objects by key. Missing keys are ignored."""
        ...
