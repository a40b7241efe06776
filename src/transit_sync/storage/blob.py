"""Byte-addressable blob stores used to stage archives during an import run."""

from __future__ import annotations

import abc
import asyncio
import shutil
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from transit_sync.logging import get_logger

logger = get_logger(__name__)


class BlobStore(abc.ABC):
    """Object storage with range reads.

    Keys are ``/``-separated strings. Staging for a workflow run lives under
    ``imports/{run_id}/`` so concurrent runs never share keys.
    """

    @abc.abstractmethod
    async def put(self, key: str, data: bytes) -> None: ...

    @abc.abstractmethod
    async def put_stream(self, key: str, stream: BinaryIO) -> int:
        """Copy a readable binary stream into ``key``; returns bytes written."""

    @abc.abstractmethod
    async def get(self, key: str) -> bytes | None: ...

    @abc.abstractmethod
    async def get_range(self, key: str, offset: int, length: int) -> bytes:
        """Read up to ``length`` bytes starting at ``offset``."""

    @abc.abstractmethod
    async def head(self, key: str) -> int | None:
        """Size of the object in bytes, or None when it does not exist."""

    @abc.abstractmethod
    async def list(self, prefix: str) -> list[str]: ...

    @abc.abstractmethod
    async def delete(self, keys: list[str]) -> int:
        """Delete keys; missing keys are ignored. Returns the number requested."""

    async def delete_prefix(self, prefix: str) -> int:
        keys = await self.list(prefix)
        if keys:
            await self.delete(keys)
        return len(keys)


class MemoryBlobStore(BlobStore):
    """Process-local store, suitable for single-process runs and tests."""

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}

    async def put(self, key: str, data: bytes) -> None:
        self._objects[key] = bytes(data)

    async def put_stream(self, key: str, stream: BinaryIO) -> int:
        data = stream.read()
        self._objects[key] = data
        return len(data)

    async def get(self, key: str) -> bytes | None:
        return self._objects.get(key)

    async def get_range(self, key: str, offset: int, length: int) -> bytes:
        data = self._objects.get(key, b"")
        return data[offset : offset + length]

    async def head(self, key: str) -> int | None:
        data = self._objects.get(key)
        return None if data is None else len(data)

    async def list(self, prefix: str) -> list[str]:
        return sorted(key for key in self._objects if key.startswith(prefix))

    async def delete(self, keys: list[str]) -> int:
        for key in keys:
            self._objects.pop(key, None)
        return len(keys)


class LocalBlobStore(BlobStore):
    """Directory-backed store; blocking file IO runs in worker threads."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or ".." in parts or key.startswith("/"):
            msg = f"Invalid blob key: {key!r}"
            raise ValueError(msg)
        return self.root.joinpath(*parts)

    async def put(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._write, self._path(key), data)

    async def put_stream(self, key: str, stream: BinaryIO) -> int:
        return await asyncio.to_thread(self._copy, self._path(key), stream)

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)
        return await asyncio.to_thread(lambda: path.read_bytes() if path.is_file() else None)

    async def get_range(self, key: str, offset: int, length: int) -> bytes:
        return await asyncio.to_thread(self._read_range, self._path(key), offset, length)

    async def head(self, key: str) -> int | None:
        path = self._path(key)
        return await asyncio.to_thread(lambda: path.stat().st_size if path.is_file() else None)

    async def list(self, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._list, prefix)

    async def delete(self, keys: list[str]) -> int:
        await asyncio.to_thread(self._delete, [self._path(key) for key in keys])
        return len(keys)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    @staticmethod
    def _copy(path: Path, stream: BinaryIO) -> int:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as out:
            shutil.copyfileobj(stream, out, length=1024 * 1024)
        return path.stat().st_size

    @staticmethod
    def _read_range(path: Path, offset: int, length: int) -> bytes:
        with path.open("rb") as fh:
            fh.seek(offset)
            return fh.read(length)

    def _list(self, prefix: str) -> list[str]:
        base = self.root
        if "/" in prefix:
            base = self.root.joinpath(*PurePosixPath(prefix.rsplit("/", 1)[0]).parts)
        if not base.is_dir():
            return []
        keys = (p.relative_to(self.root).as_posix() for p in base.rglob("*") if p.is_file())
        return sorted(key for key in keys if key.startswith(prefix))

    def _delete(self, paths: list[Path]) -> None:
        parents: set[Path] = set()
        for path in paths:
            path.unlink(missing_ok=True)
            parents.add(path.parent)
        # prune directories emptied by the delete, deepest first
        for parent in sorted(parents, key=lambda p: len(p.parts), reverse=True):
            current = parent
            while current != self.root and current.is_dir() and not any(current.iterdir()):
                current.rmdir()
                current = current.parent
