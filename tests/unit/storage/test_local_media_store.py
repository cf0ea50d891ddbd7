"""Unit tests for LocalMediaStore."""

from __future__ import annotations

import pytest

from relay.storage.local import LocalMediaStore


@pytest.fixture
async def store(tmp_path) -> LocalMediaStore:
    media_store = LocalMediaStore(tmp_path / "media")
    await media_store.startup()
    return media_store


async def test_put_get_preserves_bytes_and_content_type(store: LocalMediaStore):
    await store.put("c1/s1/a.jpg", b"\xff\xd8\xff", content_type="image/jpeg")

    obj = await store.get("c1/s1/a.jpg")

    assert obj is not None
    assert obj.data == b"\xff\xd8\xff"
    assert obj.content_type == "image/jpeg"
    assert obj.size == 3


async def test_put_replaces_whole_object(store: LocalMediaStore):
    await store.put("c1/s1/manifest.json", b'{"files": [1, 2, 3]}', content_type="application/json")
    await store.put("c1/s1/manifest.json", b"{}", content_type="application/json")

    obj = await store.get("c1/s1/manifest.json")
    assert obj.data == b"{}"


async def test_get_missing(store: LocalMediaStore):
    assert await store.get("c1/s1/nope.png") is None


async def test_get_prefix_is_not_an_object(store: LocalMediaStore):
    await store.put("c2/s1/a.jpg", b"x", content_type="image/jpeg")

    assert await store.get("c2/s1") is None
    assert await store.get("c1/../c2") is None


async def test_list_keys_by_prefix(store: LocalMediaStore):
    for key in ["c1/s1/a.jpg", "c1/s1/manifest.json", "c1/s2/b.jpg", "c2/s1/c.jpg"]:
        await store.put(key, b"x", content_type="application/octet-stream")

    assert await store.list_keys("c1/s1/") == ["c1/s1/a.jpg", "c1/s1/manifest.json"]
    assert await store.list_keys("c1/") == ["c1/s1/a.jpg", "c1/s1/manifest.json", "c1/s2/b.jpg"]
    assert await store.list_keys("c3/s1/") == []


async def test_delete_removes_objects_and_empty_dirs(store: LocalMediaStore, tmp_path):
    await store.put("c1/s1/a.jpg", b"x", content_type="image/jpeg")
    await store.put("c1/s1/manifest.json", b"{}", content_type="application/json")
    await store.put("c1/s2/b.jpg", b"x", content_type="image/jpeg")

    await store.delete(["c1/s1/a.jpg", "c1/s1/manifest.json", "c1/s1/missing.png"])

    assert await store.list_keys("c1/s1/") == []
    assert not (tmp_path / "media" / "objects" / "c1" / "s1").exists()
    assert await store.get("c1/s2/b.jpg") is not None


async def test_delete_nothing(store: LocalMediaStore):
    await store.delete([])


@pytest.mark.parametrize("key", ["../escape.txt", "c1/../../escape.txt"])
async def test_rejects_keys_outside_root(store: LocalMediaStore, key: str):
    with pytest.raises(ValueError):
        await store.put(key, b"x", content_type="text/plain")
