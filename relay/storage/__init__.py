"""Media store backends."""

from relay.storage.base import (
    MediaStore,
    StoredObject,
    manifest_key,
    session_object_key,
    session_prefix,
)
from relay.storage.local import LocalMediaStore
from relay.storage.s3 import MinioMediaStore

__all__ = [
    "MediaStore",
    "StoredObject",
    "LocalMediaStore",
    "MinioMediaStore",
    "manifest_key",
    "session_object_key",
    "session_prefix",
]
