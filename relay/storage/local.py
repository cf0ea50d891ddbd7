"""Filesystem media store.

Objects live under ``{root}/objects/{key}``; each object's content type is
kept in a JSON sidecar at ``{root}/meta/{key}.json``. Writes go to a
temporary file first and are moved into place, so readers never see a
partially written manifest.

Blocking file I/O runs in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path

import structlog

from relay.storage.base import MediaStore, StoredObject

logger = structlog.get_logger()

_DEFAULT_CONTENT_TYPE = "application/octet-stream"


class LocalMediaStore(MediaStore):
    """Media store backed by a local directory tree."""

    def __init__(self, root_path: str | Path) -> None:
        self._root = Path(root_path).resolve()
        self._objects = self._root / "objects"
        self._meta = self._root / "meta"
        self._log = logger.bind(media_store="local", root=str(self._root))

    async def startup(self) -> None:
        await asyncio.to_thread(self._ensure_dirs)
        self._log.info("media.local.ready")

    def _ensure_dirs(self) -> None:
        self._objects.mkdir(parents=True, exist_ok=True)
        self._meta.mkdir(parents=True, exist_ok=True)

    def _object_path(self, key: str) -> Path:
        path = (self._objects / key).resolve()
        if not path.is_relative_to(self._objects):
            raise ValueError(f"Key escapes media root: {key!r}")
        return path

    def _meta_path(self, key: str) -> Path:
        path = (self._meta / f"{key}.json").resolve()
        if not path.is_relative_to(self._meta):
            raise ValueError(f"Key escapes media root: {key!r}")
        return path

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _put_sync(self, key: str, data: bytes, content_type: str) -> None:
        self._atomic_write(self._object_path(key), data)
        meta = json.dumps({"content_type": content_type}).encode()
        self._atomic_write(self._meta_path(key), meta)

    async def put(self, key: str, data: bytes, *, content_type: str) -> None:
        await asyncio.to_thread(self._put_sync, key, data, content_type)

    def _get_sync(self, key: str) -> StoredObject | None:
        path = self._object_path(key)
        # A directory is a key prefix, not an object
        if path.is_dir():
            return None
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None

        content_type = _DEFAULT_CONTENT_TYPE
        try:
            meta = json.loads(self._meta_path(key).read_text())
            content_type = meta.get("content_type") or _DEFAULT_CONTENT_TYPE
        except FileNotFoundError:
            self._log.warning("media.local.meta_missing", key=key)

        return StoredObject(key=key, data=data, content_type=content_type)

    async def get(self, key: str) -> StoredObject | None:
        return await asyncio.to_thread(self._get_sync, key)

    def _list_sync(self, prefix: str) -> list[str]:
        # Only walk the deepest directory the prefix pins down
        start = self._objects.joinpath(*prefix.split("/")[:-1])
        if not start.is_dir():
            return []

        keys: list[str] = []
        for path in start.rglob("*"):
            if not path.is_file() or path.name.startswith(".tmp-"):
                continue
            key = path.relative_to(self._objects).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    async def list_keys(self, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    def _delete_sync(self, keys: list[str]) -> None:
        for key in keys:
            self._object_path(key).unlink(missing_ok=True)
            self._meta_path(key).unlink(missing_ok=True)
            self._prune_empty_dirs(self._object_path(key).parent, self._objects)
            self._prune_empty_dirs(self._meta_path(key).parent, self._meta)

    @staticmethod
    def _prune_empty_dirs(directory: Path, stop: Path) -> None:
        while directory != stop and directory.is_relative_to(stop):
            try:
                directory.rmdir()
            except OSError:
                # Not empty (or already gone)
                return
            directory = directory.parent

    async def delete(self, keys: list[str]) -> None:
        if not keys:
            return
        await asyncio.to_thread(self._delete_sync, keys)
