"""Capture session manifest.

One JSON object per session, stored in the media store next to the files
it lists. The manifest is the client-facing record; the relational row
only mirrors ``file_count`` and ``ended_at`` for fast listing.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from relay.storage.base import MediaStore, manifest_key

_MANIFEST_CONTENT_TYPE = "application/json"


class CaptureFile(BaseModel):
    """One uploaded file as listed in the manifest."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    type: str
    started_at: str
    size: int
    source: str = "unknown"


class CaptureManifest(BaseModel):
    """Manifest of a capture session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    channel_id: str
    started_at: str
    ended_at: str | None = None
    files: list[CaptureFile] = Field(default_factory=list)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode()

    @classmethod
    def from_json_bytes(cls, data: bytes) -> "CaptureManifest":
        return cls.model_validate_json(data)


async def read_manifest(
    store: MediaStore, channel_id: str, session_id: str
) -> CaptureManifest | None:
    """Load the manifest of a session, or None if it is missing."""
    obj = await store.get(manifest_key(channel_id, session_id))
    if obj is None:
        return None
    return CaptureManifest.from_json_bytes(obj.data)


async def write_manifest(store: MediaStore, manifest: CaptureManifest) -> None:
    """Replace the manifest of a session as a whole object."""
    await store.put(
        manifest_key(manifest.channel_id, manifest.session_id),
        manifest.to_json_bytes(),
        content_type=_MANIFEST_CONTENT_TYPE,
    )
