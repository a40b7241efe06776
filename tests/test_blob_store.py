"""Tests for blob staging backends (memory, local directory, S3)."""

from __future__ import annotations

import io
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import patch

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from transit_sync.errors import BlobStoreError
from transit_sync.storage import LocalBlobStore, MemoryBlobStore
from transit_sync.storage.s3 import S3BlobStore


@pytest.fixture(params=["memory", "local"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> Any:
    if request.param == "memory":
        return MemoryBlobStore()
    return LocalBlobStore(tmp_path / "blobs")


class TestBlobStore:
    async def test_put_get_head(self, store: Any) -> None:
        await store.put("imports/r1/archive.zip", b"PK-data")

        assert await store.get("imports/r1/archive.zip") == b"PK-data"
        assert await store.head("imports/r1/archive.zip") == 7

    async def test_missing_key(self, store: Any) -> None:
        assert await store.get("imports/none") is None
        assert await store.head("imports/none") is None

    async def test_get_range(self, store: Any) -> None:
        await store.put("imports/r1/stops.txt", b"0123456789")

        assert await store.get_range("imports/r1/stops.txt", 2, 4) == b"2345"
        assert await store.get_range("imports/r1/stops.txt", 8, 10) == b"89"

    async def test_put_stream(self, store: Any) -> None:
        written = await store.put_stream("imports/r1/trips.txt", io.BytesIO(b"a,b\n1,2\n"))

        assert written == 8
        assert await store.get("imports/r1/trips.txt") == b"a,b\n1,2\n"

    async def test_list_and_delete_prefix(self, store: Any) -> None:
        await store.put("imports/r1/a.txt", b"a")
        await store.put("imports/r1/b.txt", b"b")
        await store.put("imports/r2/a.txt", b"c")

        assert await store.list("imports/r1/") == ["imports/r1/a.txt", "imports/r1/b.txt"]
        assert await store.delete_prefix("imports/r1/") == 2
        assert await store.list("imports/r1/") == []
        assert await store.get("imports/r2/a.txt") == b"c"

    async def test_delete_ignores_missing_keys(self, store: Any) -> None:
        assert await store.delete(["imports/nothing"]) == 1


class TestLocalBlobStore:
    async def test_rejects_escaping_keys(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path)
        with pytest.raises(ValueError, match="Invalid blob key"):
            await store.put("../outside", b"x")

    async def test_delete_prunes_empty_directories(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path / "blobs")
        await store.put("imports/r1/a.txt", b"a")
        await store.delete_prefix("imports/r1/")

        assert not (tmp_path / "blobs" / "imports" / "r1").exists()


@pytest.fixture
def s3_stub() -> Iterator[Stubber]:
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber, patch(
        "transit_sync.storage.s3.get_s3_client", return_value=client
    ):
        yield stubber
        stubber.assert_no_pending_responses()


def _body(data: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(data), len(data))


class TestS3BlobStore:
    async def test_put_uses_prefixed_key(self, s3_stub: Stubber) -> None:
        s3_stub.add_response(
            "put_object",
            {},
            expected_params={"Bucket": "staging", "Key": "gtfs/imports/r1/a.txt", "Body": b"a"},
        )
        await S3BlobStore("staging", "/gtfs/").put("imports/r1/a.txt", b"a")

    async def test_get_range_sends_inclusive_range(self, s3_stub: Stubber) -> None:
        s3_stub.add_response(
            "get_object",
            {"Body": _body(b"2345")},
            expected_params={"Bucket": "staging", "Key": "imports/r1/a.txt", "Range": "bytes=2-5"},
        )
        data = await S3BlobStore("staging").get_range("imports/r1/a.txt", 2, 4)
        assert data == b"2345"

    async def test_head_missing_returns_none(self, s3_stub: Stubber) -> None:
        s3_stub.add_client_error("head_object", service_error_code="404", http_status_code=404)
        assert await S3BlobStore("staging").head("imports/none") is None

    async def test_get_missing_returns_none(self, s3_stub: Stubber) -> None:
        s3_stub.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
        assert await S3BlobStore("staging").get("imports/none") is None

    async def test_access_denied_is_blob_store_error(self, s3_stub: Stubber) -> None:
        s3_stub.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
        with pytest.raises(BlobStoreError, match="put_object"):
            await S3BlobStore("staging").put("imports/r1/a.txt", b"a")

    async def test_delete_prefix(self, s3_stub: Stubber) -> None:
        s3_stub.add_response(
            "list_objects_v2",
            {
                "Contents": [{"Key": "gtfs/imports/r1/a.txt"}, {"Key": "gtfs/imports/r1/b.txt"}],
                "IsTruncated": False,
            },
            expected_params={"Bucket": "staging", "Prefix": "gtfs/imports/r1/"},
        )
        s3_stub.add_response(
            "delete_objects",
            {},
            expected_params={
                "Bucket": "staging",
                "Delete": {
                    "Objects": [{"Key": "gtfs/imports/r1/a.txt"}, {"Key": "gtfs/imports/r1/b.txt"}],
                    "Quiet": True,
                },
            },
        )
        assert await S3BlobStore("staging", "gtfs").delete_prefix("imports/r1/") == 2
