"""S3-backed blob store."""

from __future__ import annotations

import asyncio
from typing import Any, BinaryIO

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from transit_sync.errors import BlobStoreError
from transit_sync.logging import get_logger
from transit_sync.storage.blob import BlobStore

logger = get_logger(__name__)

# delete_objects accepts at most this many keys per request
DELETE_BATCH = 1000

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def get_s3_client() -> Any:
    """Thin function needed for stubbing tests"""
    return boto3.client("s3")


def _is_not_found(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES


class S3BlobStore(BlobStore):
    """Blob store over one S3 bucket, optionally under a key prefix.

    boto3 is synchronous, so every call runs in a worker thread.
    """

    def __init__(self, bucket: str, prefix: str = "") -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/") + "/" if prefix.strip("/") else ""

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def _call(self, operation: str, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except ClientError as exc:
            if _is_not_found(exc):
                raise
            logger.error("S3 request failed", operation=operation, bucket=self.bucket, error=str(exc))
            msg = f"S3 {operation} failed: {exc}"
            raise BlobStoreError(msg) from exc
        except BotoCoreError as exc:
            logger.error("S3 client error", operation=operation, bucket=self.bucket, error=str(exc))
            msg = f"S3 {operation} failed: {exc}"
            raise BlobStoreError(msg) from exc

    async def put(self, key: str, data: bytes) -> None:
        def _put() -> None:
            get_s3_client().put_object(Bucket=self.bucket, Key=self._key(key), Body=data)

        await self._call("put_object", _put)

    async def put_stream(self, key: str, stream: BinaryIO) -> int:
        def _upload() -> int:
            client = get_s3_client()
            client.upload_fileobj(stream, self.bucket, self._key(key))
            head = client.head_object(Bucket=self.bucket, Key=self._key(key))
            return int(head["ContentLength"])

        return await self._call("upload_fileobj", _upload)

    async def get(self, key: str) -> bytes | None:
        def _get() -> bytes:
            response = get_s3_client().get_object(Bucket=self.bucket, Key=self._key(key))
            return response["Body"].read()

        try:
            return await self._call("get_object", _get)
        except ClientError:
            return None

    async def get_range(self, key: str, offset: int, length: int) -> bytes:
        if length <= 0:
            return b""

        def _get_range() -> bytes:
            response = get_s3_client().get_object(
                Bucket=self.bucket,
                Key=self._key(key),
                Range=f"bytes={offset}-{offset + length - 1}",
            )
            return response["Body"].read()

        try:
            return await self._call("get_object", _get_range)
        except ClientError as exc:
            msg = f"S3 object not found: {key}"
            raise BlobStoreError(msg) from exc

    async def head(self, key: str) -> int | None:
        def _head() -> int:
            response = get_s3_client().head_object(Bucket=self.bucket, Key=self._key(key))
            return int(response["ContentLength"])

        try:
            return await self._call("head_object", _head)
        except ClientError:
            return None

    async def list(self, prefix: str) -> list[str]:
        def _list() -> list[str]:
            paginator = get_s3_client().get_paginator("list_objects_v2")
            keys: list[str] = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self._key(prefix)):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"][len(self.prefix) :])
            return keys

        return await self._call("list_objects_v2", _list)

    async def delete(self, keys: list[str]) -> int:
        def _delete(batch: list[str]) -> None:
            response = get_s3_client().delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": self._key(k)} for k in batch], "Quiet": True},
            )
            errors = response.get("Errors", [])
            if errors:
                msg = f"S3 delete_objects reported {len(errors)} errors"
                raise BlobStoreError(msg)

        for start in range(0, len(keys), DELETE_BATCH):
            await self._call("delete_objects", _delete, keys[start : start + DELETE_BATCH])
        return len(keys)
