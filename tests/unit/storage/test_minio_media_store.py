"""Unit tests for MinioMediaStore against a mocked minio client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from minio.error import S3Error

from relay.config import MinioMediaConfig
from relay.storage.s3 import MinioMediaStore


def _s3_error(code: str) -> S3Error:
    return S3Error(
        code=code,
        message="err",
        resource="/relay-media/key",
        request_id="req",
        host_id="host",
        response=MagicMock(),
    )


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def store(client: MagicMock) -> MinioMediaStore:
    return MinioMediaStore(MinioMediaConfig(bucket="relay-media"), client=client)


async def test_startup_creates_missing_bucket(store: MinioMediaStore, client: MagicMock):
    client.bucket_exists.return_value = False

    await store.startup()

    client.make_bucket.assert_called_once_with(bucket_name="relay-media")


async def test_put_streams_bytes(store: MinioMediaStore, client: MagicMock):
    await store.put("c/s/a.png", b"png-bytes", content_type="image/png")

    kwargs = client.put_object.call_args.kwargs
    assert kwargs["bucket_name"] == "relay-media"
    assert kwargs["object_name"] == "c/s/a.png"
    assert kwargs["length"] == 9
    assert kwargs["data"].read() == b"png-bytes"
    assert kwargs["content_type"] == "image/png"


async def test_get_reads_and_releases(store: MinioMediaStore, client: MagicMock):
    response = MagicMock()
    response.read.return_value = b"data"
    response.headers = {"Content-Type": "image/jpeg"}
    client.get_object.return_value = response

    obj = await store.get("c/s/a.jpg")

    assert obj.data == b"data"
    assert obj.content_type == "image/jpeg"
    response.close.assert_called_once()
    response.release_conn.assert_called_once()


async def test_get_missing_returns_none(store: MinioMediaStore, client: MagicMock):
    client.get_object.side_effect = _s3_error("NoSuchKey")

    assert await store.get("c/s/none.jpg") is None


async def test_get_other_errors_propagate(store: MinioMediaStore, client: MagicMock):
    client.get_object.side_effect = _s3_error("AccessDenied")

    with pytest.raises(S3Error):
        await store.get("c/s/a.jpg")


async def test_list_and_delete(store: MinioMediaStore, client: MagicMock):
    client.list_objects.return_value = [
        MagicMock(object_name="c/s/manifest.json"),
        MagicMock(object_name="c/s/a.jpg"),
    ]
    client.remove_objects.return_value = iter([])

    keys = await store.list_keys("c/s/")
    await store.delete(keys)

    assert keys == ["c/s/a.jpg", "c/s/manifest.json"]
    client.list_objects.assert_called_once_with(
        bucket_name="relay-media", prefix="c/s/", recursive=True
    )
    client.remove_objects.assert_called_once()


async def test_delete_surfaces_errors(store: MinioMediaStore, client: MagicMock):
    error = MagicMock(message="denied")
    error.name = "c/s/a.jpg"
    client.remove_objects.return_value = iter([error])

    with pytest.raises(RuntimeError):
        await store.delete(["c/s/a.jpg"])
