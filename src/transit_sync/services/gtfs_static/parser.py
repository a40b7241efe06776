"""Streaming parser for GTFS tabular (CSV) files.

Rows are yielded as ``dict[str, str | None]``; values are trimmed and an empty
value becomes ``None``. Type conversion happens later, in the normalizer.

Large files are read from the blob store in byte-range chunks. A chunk is cut
after the last line terminator that is not inside a quoted field, and the
remainder is carried into the next chunk, so no row is ever split.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO

from transit_sync.errors import MissingColumnError
from transit_sync.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Iterator

    from transit_sync.storage.blob import BlobStore

logger = get_logger(__name__)

Row = dict[str, "str | None"]

HEADER_PROBE_BYTES = 4096
QUOTE = b'"'
NEWLINE = b"\n"


def find_row_boundary(data: bytes) -> int:
    """Index just past the last line terminator outside a quoted field, or 0.

    ``data`` must start at a row boundary. Doubled quotes inside a quoted
    field toggle the state twice and so cancel out.
    """
    if QUOTE not in data:
        return data.rfind(NEWLINE) + 1

    boundary = 0
    quotes = 0
    start = 0
    pos = data.find(NEWLINE)
    while pos != -1:
        quotes += data.count(QUOTE, start, pos)
        if quotes % 2 == 0:
            boundary = pos + 1
        start = pos
        pos = data.find(NEWLINE, pos + 1)
    return boundary


def _clean_header(values: list[str]) -> list[str]:
    header = [value.strip() for value in values]
    if header:
        header[0] = header[0].lstrip("\ufeff")
    return header


def _is_blank(values: list[str]) -> bool:
    return not values or all(not value.strip() for value in values)


def _validate_header(
    header: list[str], required_columns: Collection[str], filename: str
) -> None:
    missing = set(required_columns) - set(header)
    if missing:
        msg = f"Missing required columns in {filename}: {sorted(missing)}"
        raise MissingColumnError(msg)


def _iter_records(records: Iterable[list[str]], header: list[str]) -> Iterator[Row]:
    width = len(header)
    for values in records:
        if _is_blank(values):
            continue
        row: Row = {}
        for i in range(width):
            value = values[i].strip() if i < len(values) else ""
            row[header[i]] = value or None
        yield row


def parse_text(
    text: str,
    header: list[str] | None = None,
    *,
    required_columns: Collection[str] = (),
    filename: str = "",
) -> tuple[list[str], Iterator[Row]]:
    """Parse decoded CSV text.

    When ``header`` is None the first non-blank record is the header.
    Returns the header in effect and a lazy row iterator.

    Raises:
        MissingColumnError: If a required column is absent from the header.
    """
    records = csv.reader(io.StringIO(text, newline=""))
    if header is None:
        header = []
        for values in records:
            if not _is_blank(values):
                header = _clean_header(values)
                break
        if not header and required_columns:
            msg = f"Empty GTFS file: {filename}"
            raise MissingColumnError(msg)
    _validate_header(header, required_columns, filename)
    return header, _iter_records(records, header)


def iter_rows(
    stream: BinaryIO,
    *,
    required_columns: Collection[str] = (),
    filename: str = "",
) -> Iterator[Row]:
    """Lazily parse a binary stream; the first record is the header."""
    text_io = io.TextIOWrapper(stream, encoding="utf-8-sig", errors="replace", newline="")
    records = csv.reader(text_io)
    header: list[str] = []
    for values in records:
        if not _is_blank(values):
            header = _clean_header(values)
            break
    if not header and required_columns:
        msg = f"Empty GTFS file: {filename}"
        raise MissingColumnError(msg)
    _validate_header(header, required_columns, filename)
    yield from _iter_records(records, header)


@dataclass
class TableChunk:
    """One chunk of a table file.

    ``rows`` is single-pass. ``consumed`` is the number of bytes of the file
    this chunk accounts for; the next chunk starts at ``offset + consumed``.
    """

    header: list[str]
    rows: Iterator[Row]
    consumed: int
    at_eof: bool


class ChunkedTableReader:
    """Reads a staged table file as a sequence of row-aligned byte ranges."""

    def __init__(
        self,
        blob_store: BlobStore,
        key: str,
        chunk_bytes: int | None = None,
        *,
        required_columns: Collection[str] = (),
        filename: str = "",
    ) -> None:
        self._blob = blob_store
        self.key = key
        self.chunk_bytes = chunk_bytes
        self.required_columns = required_columns
        self.filename = filename or key.rsplit("/", 1)[-1]
        self._size: int | None = None

    async def size(self) -> int:
        if self._size is None:
            self._size = await self._blob.head(self.key) or 0
        return self._size

    async def read_header(self) -> list[str]:
        """Read just the header row from the start of the file."""
        size = await self.size()
        length = HEADER_PROBE_BYTES
        while True:
            data = await self._blob.get_range(self.key, 0, length)
            cut = find_row_boundary(data)
            if cut or length >= size:
                break
            length *= 2
        text = data[: cut or len(data)].decode("utf-8-sig", errors="replace")
        header, _ = parse_text(
            text, required_columns=self.required_columns, filename=self.filename
        )
        return header

    async def read_chunk(self, offset: int, header: list[str] | None = None) -> TableChunk:
        """Read the chunk starting at ``offset``.

        The first chunk supplies the header. Later chunks use the running
        ``header``; if none is supplied it is re-read from the file start.
        """
        size = await self.size()
        if offset >= size:
            return TableChunk(header=header or [], rows=iter(()), consumed=0, at_eof=True)

        if header is None and offset > 0:
            header = await self.read_header()

        length = self.chunk_bytes or size - offset
        while True:
            data = await self._blob.get_range(self.key, offset, length)
            if offset + len(data) >= size:
                cut = len(data)
                break
            cut = find_row_boundary(data)
            if cut:
                break
            # a single row is longer than the range; widen and retry
            length *= 2

        encoding = "utf-8-sig" if offset == 0 else "utf-8"
        text = data[:cut].decode(encoding, errors="replace")
        header, rows = parse_text(
            text,
            header if offset > 0 else None,
            required_columns=self.required_columns,
            filename=self.filename,
        )
        at_eof = offset + cut >= size
        logger.debug(
            "Read table chunk",
            file=self.filename,
            offset=offset,
            consumed=cut,
            at_eof=at_eof,
        )
        return TableChunk(header=header, rows=rows, consumed=cut, at_eof=at_eof)
