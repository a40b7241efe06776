"""GTFS ZIP archive - validation and staging of table files into the blob store."""

from __future__ import annotations

import hashlib
import io
import posixpath
import zipfile
from typing import TYPE_CHECKING

from transit_sync.errors import InvalidArchiveError, MissingRequiredFileError
from transit_sync.logging import get_logger
from transit_sync.services.gtfs_static.tables import REQUIRED_FILES, TABLES

if TYPE_CHECKING:
    from transit_sync.storage.blob import BlobStore

logger = get_logger(__name__)

# ZIP magic bytes
ZIP_MAGIC = b"PK\x03\x04"

KNOWN_FILES = {spec.filename for spec in TABLES.values()}


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def validate_zip(data: bytes) -> None:
    """Validate that data looks like a ZIP archive.

    Raises:
        InvalidArchiveError: If it does not.
    """
    if len(data) < 4 or data[:4] != ZIP_MAGIC or not zipfile.is_zipfile(io.BytesIO(data)):
        msg = "Downloaded content is not a valid ZIP file"
        raise InvalidArchiveError(msg)


class GtfsArchive:
    """Opens and validates a GTFS ZIP archive.

    Table files are addressed by lowercased base name; files nested in a
    folder are treated as if they were at the archive root.
    """

    def __init__(self, data: bytes) -> None:
        """Initialize from ZIP bytes.

        Raises:
            InvalidArchiveError: If data is not a valid ZIP.
            MissingRequiredFileError: If required files are missing.
        """
        validate_zip(data)
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise InvalidArchiveError(str(exc)) from exc
        self.members = self._index_members()
        self._validate_required_files()

    def _index_members(self) -> dict[str, str]:
        members: dict[str, str] = {}
        entries = sorted(self._zip.infolist(), key=lambda info: info.filename.count("/"))
        for info in entries:
            if info.is_dir() or info.filename.startswith("__MACOSX/"):
                continue
            name = posixpath.basename(info.filename).lower()
            if name.endswith(".txt") and name not in members:
                members[name] = info.filename
        return members

    def _validate_required_files(self) -> None:
        """Ensure all required GTFS files exist in the archive."""
        missing = set(REQUIRED_FILES) - set(self.members)
        if missing:
            msg = f"Missing required GTFS files: {sorted(missing)}"
            raise MissingRequiredFileError(msg)

        logger.info(
            "GTFS ZIP validated",
            required_files=sorted(REQUIRED_FILES),
            optional_present=sorted(set(self.members) & KNOWN_FILES - set(REQUIRED_FILES)),
            unknown_files=sorted(set(self.members) - KNOWN_FILES),
            total_files=len(self.members),
        )

    def open_file(self, filename: str) -> zipfile.ZipExtFile:
        """Open a table file from the archive for binary reading."""
        try:
            return self._zip.open(self.members[filename])
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            msg = f"Unreadable archive member {filename}: {exc}"
            raise InvalidArchiveError(msg) from exc

    async def stage(self, blob_store: BlobStore, prefix: str) -> dict[str, int]:
        """Copy every table file to ``{prefix}/{filename}``; returns sizes by filename."""
        sizes: dict[str, int] = {}
        for filename in sorted(self.members):
            with self.open_file(filename) as stream:
                sizes[filename] = await blob_store.put_stream(f"{prefix}/{filename}", stream)
        logger.info("Staged archive files", prefix=prefix, files=len(sizes), bytes=sum(sizes.values()))
        return sizes

    def close(self) -> None:
        """Close the ZIP archive."""
        self._zip.close()

    def __enter__(self) -> GtfsArchive:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
